"""
Skill swap requests: creation, listing and the pending -> accepted/rejected
workflow. Accepting a request opens a chat between the two users.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import HTTPException
from pymongo.database import Database

from database import as_utc, create_document, now_utc, serialize, to_object_id
from realtime import Cancel, hub
from schemas import Skillrequest
import chats
import profiles

logger = logging.getLogger(__name__)

COLLECTION = "skillrequest"
STATUSES = ("pending", "accepted", "rejected")


def _received_topic(uid: str) -> Tuple[str, str]:
    return (COLLECTION, uid)


def _newest_first(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # Sorted here rather than in the query; ties keep the order the store returned
    docs.sort(key=lambda d: as_utc(d.get("created_at")), reverse=True)
    return [serialize(d) for d in docs]


def create_request(db: Database, sender: Dict[str, Any], to_user_id: str, offered_skill: str,
                   wanted_skill: str, message: str) -> Dict[str, Any]:
    if sender["id"] == to_user_id:
        raise HTTPException(status_code=400, detail="Cannot send a request to yourself")
    receiver = profiles.get_profile(db, to_user_id)
    request = Skillrequest(
        from_user_id=sender["id"],
        from_user_name=sender.get("name", ""),
        from_user_photo=sender.get("profile_photo_url") or "",
        to_user_id=to_user_id,
        to_user_name=receiver.get("name", ""),
        offered_skill=offered_skill.strip(),
        wanted_skill=wanted_skill.strip(),
        message=message.strip(),
    )
    new_id = create_document(db, COLLECTION, request)
    hub.publish(_received_topic(to_user_id))
    return get_request(db, new_id)


def get_request(db: Database, request_id: str) -> Dict[str, Any]:
    doc = db[COLLECTION].find_one({"_id": to_object_id(request_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Request not found")
    return serialize(doc)


def list_received(db: Database, uid: str) -> List[Dict[str, Any]]:
    return _newest_first(list(db[COLLECTION].find({"to_user_id": uid})))


def list_sent(db: Database, uid: str) -> List[Dict[str, Any]]:
    return _newest_first(list(db[COLLECTION].find({"from_user_id": uid})))


def list_all(db: Database, status: Optional[str] = None) -> Dict[str, Any]:
    """All requests newest first, with a count per status for the admin view."""
    requests = _newest_first(list(db[COLLECTION].find()))
    counts = {s: 0 for s in STATUSES}
    for r in requests:
        counts[r["status"]] = counts.get(r["status"], 0) + 1
    if status:
        requests = [r for r in requests if r["status"] == status]
    return {"counts": counts, "items": requests}


def _bootstrap_chat(db: Database, request: Dict[str, Any]) -> None:
    try:
        sender = profiles.get_profile(db, request["from_user_id"])
        receiver = profiles.get_profile(db, request["to_user_id"])
        chat, created = chats.get_or_create_conversation(db, sender, receiver)
        if created:
            logger.info("Chat %s opened for accepted request %s", chat["id"], request["id"])
    except Exception:
        # The accept stands; the "Message" action creates the chat lazily
        logger.exception("Could not create chat for accepted request %s", request["id"])


def set_status(db: Database, request_id: str, status: str, acting_uid: str) -> Dict[str, Any]:
    if status not in ("accepted", "rejected"):
        raise HTTPException(status_code=400, detail="Status must be accepted or rejected")
    request = get_request(db, request_id)
    if request["to_user_id"] != acting_uid:
        raise HTTPException(status_code=403, detail="Only the receiver can respond to a request")

    result = db[COLLECTION].update_one(
        {"_id": to_object_id(request_id), "status": "pending"},
        {"$set": {"status": status, "updated_at": now_utc()}},
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=409, detail=f"Request is already {request['status']}")
    logger.info("Request %s %s", request_id, status)

    if status == "accepted":
        _bootstrap_chat(db, request)
    hub.publish(_received_topic(request["to_user_id"]))
    return get_request(db, request_id)


def mark_read(db: Database, request_id: str, acting_uid: str) -> Dict[str, Any]:
    request = get_request(db, request_id)
    if request["to_user_id"] != acting_uid:
        raise HTTPException(status_code=403, detail="Only the receiver can mark a request read")
    if not request.get("is_read"):
        db[COLLECTION].update_one({"_id": to_object_id(request_id)},
                                  {"$set": {"is_read": True, "updated_at": now_utc()}})
        hub.publish(_received_topic(acting_uid))
    return get_request(db, request_id)


def has_accepted_request(db: Database, user1_id: str, user2_id: str) -> bool:
    found = db[COLLECTION].find_one({
        "status": "accepted",
        "$or": [
            {"from_user_id": user1_id, "to_user_id": user2_id},
            {"from_user_id": user2_id, "to_user_id": user1_id},
        ],
    })
    return found is not None


def subscribe_to_requests(db: Database, uid: str,
                          on_change: Callable[[List[Dict[str, Any]]], None]) -> Cancel:
    return hub.subscribe(_received_topic(uid), lambda: list_received(db, uid), on_change)
