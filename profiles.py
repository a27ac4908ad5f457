"""
Profile store accessor: user documents, discovery, moderation and reviews.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import as_utc, now_utc, serialize, to_object_id
from schemas import Feedback, Userprofile

logger = logging.getLogger(__name__)

COLLECTION = "userprofile"
USERS_PER_PAGE = 6

_PRIVATE_FIELDS = ("password", "tokens")

# Fields an owner may change from the profile form
EDITABLE_FIELDS = (
    "name",
    "location",
    "skills_offered",
    "skills_wanted",
    "availability",
    "profile_photo_url",
    "visibility",
    "contact_info",
)


def public_view(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not user:
        return user
    return {k: v for k, v in user.items() if k not in _PRIVATE_FIELDS}


def create_profile(db: Database, name: str, email: str, password: Dict[str, str],
                   token: Optional[str] = None) -> Dict[str, Any]:
    email = email.lower()
    if db[COLLECTION].find_one({"email": email}):
        raise HTTPException(status_code=409, detail="Email already registered")
    doc = Userprofile(name=name, email=email).model_dump()
    stamp = now_utc()
    doc.update({
        "password": password,
        "tokens": [token] if token else [],
        "created_at": stamp,
        "updated_at": stamp,
    })
    try:
        inserted_id = db[COLLECTION].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already registered")
    return serialize(db[COLLECTION].find_one({"_id": inserted_id}))


def get_profile(db: Database, uid: str) -> Dict[str, Any]:
    user = db[COLLECTION].find_one({"_id": to_object_id(uid)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return public_view(serialize(user))


def update_profile(db: Database, uid: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the given profile fields and mark the profile complete.

    Saving the profile form is what completes a profile, so a name is required.
    """
    update = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
    current = get_profile(db, uid)
    name = update.get("name", current.get("name", ""))
    if not str(name).strip():
        raise HTTPException(status_code=400, detail="Name is required")
    update["is_profile_complete"] = True
    update["updated_at"] = now_utc()
    db[COLLECTION].update_one({"_id": to_object_id(uid)}, {"$set": update})
    return get_profile(db, uid)


def set_photo(db: Database, uid: str, url: str) -> Dict[str, Any]:
    db[COLLECTION].update_one({"_id": to_object_id(uid)},
                              {"$set": {"profile_photo_url": url, "updated_at": now_utc()}})
    return get_profile(db, uid)


def _matches(user: Dict[str, Any], query: str, availability: str) -> bool:
    if availability and availability != "All" and user.get("availability") != availability:
        return False
    if not query:
        return True
    q = query.lower()
    skills = user.get("skills_offered", []) + user.get("skills_wanted", [])
    return any(q in s.lower() for s in skills) or q in user.get("name", "").lower()


def list_public_users(db: Database, exclude_uid: Optional[str] = None, query: str = "",
                      availability: str = "All", page: int = 1,
                      per_page: int = USERS_PER_PAGE) -> Dict[str, Any]:
    """Discovery listing: public, complete, unbanned profiles other than the caller."""
    cursor = db[COLLECTION].find({
        "visibility": "public",
        "is_profile_complete": True,
        "is_banned": False,
    })
    users = [public_view(serialize(u)) for u in cursor]
    filtered = [
        u for u in users
        if u["id"] != exclude_uid and _matches(u, query.strip(), availability)
    ]
    total = len(filtered)
    total_pages = math.ceil(total / per_page) if total else 0
    page = max(page, 1)
    start = (page - 1) * per_page
    return {
        "items": filtered[start:start + per_page],
        "total": total,
        "page": page,
        "total_pages": total_pages,
    }


def list_all_users(db: Database) -> List[Dict[str, Any]]:
    docs = list(db[COLLECTION].find())
    docs.sort(key=lambda d: as_utc(d.get("created_at")), reverse=True)
    return [public_view(serialize(d)) for d in docs]


def set_banned(db: Database, uid: str, banned: bool) -> Dict[str, Any]:
    result = db[COLLECTION].update_one({"_id": to_object_id(uid)},
                                       {"$set": {"is_banned": banned, "updated_at": now_utc()}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s %s", uid, "banned" if banned else "unbanned")
    return get_profile(db, uid)


def add_feedback(db: Database, target_uid: str, reviewer: Dict[str, Any], rating: int,
                 comment: str) -> Dict[str, Any]:
    """Append a review and recompute the mean rating.

    Callers are expected to have checked that the two users completed a swap.
    """
    if reviewer["id"] == target_uid:
        raise HTTPException(status_code=400, detail="Cannot review yourself")
    comment = comment.strip()
    if not comment:
        raise HTTPException(status_code=400, detail="Comment is required")
    target = get_profile(db, target_uid)
    existing = target.get("feedback", [])
    if any(f.get("from_user_id") == reviewer["id"] for f in existing):
        raise HTTPException(status_code=409, detail="Feedback already given")

    entry = Feedback(
        from_name=reviewer.get("name", ""),
        from_user_id=reviewer["id"],
        rating=rating,
        comment=comment,
        created_at=now_utc(),
    ).model_dump()
    ratings = [f["rating"] for f in existing] + [entry["rating"]]
    new_rating = sum(ratings) / len(ratings)
    db[COLLECTION].update_one(
        {"_id": to_object_id(target_uid)},
        {"$push": {"feedback": entry}, "$set": {"rating": new_rating, "updated_at": now_utc()}},
    )
    return get_profile(db, target_uid)
