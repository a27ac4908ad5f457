"""
Platform announcements broadcast by admins, with per-user "seen" tracking.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import HTTPException
from pymongo.database import Database

from database import as_utc, create_document, get_documents, serialize, to_object_id
from realtime import Cancel, hub
from schemas import Adminmessage

logger = logging.getLogger(__name__)

COLLECTION = "adminmessage"
TOPIC = (COLLECTION, "*")


def create_announcement(db: Database, text: str, created_by: Optional[str] = None) -> Dict[str, Any]:
    text = text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    new_id = create_document(db, COLLECTION, Adminmessage(message=text, created_by=created_by))
    logger.info("Announcement %s broadcast by %s", new_id, created_by)
    hub.publish(TOPIC)
    return serialize(db[COLLECTION].find_one({"_id": to_object_id(new_id)}))


def list_announcements(db: Database) -> List[Dict[str, Any]]:
    docs = get_documents(db, COLLECTION)
    docs.sort(key=lambda d: as_utc(d.get("created_at")), reverse=True)
    return [serialize(d) for d in docs]


def mark_seen(db: Database, message_id: str, uid: str) -> None:
    result = db[COLLECTION].update_one({"_id": to_object_id(message_id)}, {"$addToSet": {"seen_by": uid}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Announcement not found")
    if result.modified_count:
        hub.publish(TOPIC)


def mark_all_seen(db: Database, uid: str) -> int:
    """Record that ``uid`` has viewed every announcement; returns how many were new."""
    result = db[COLLECTION].update_many({"seen_by": {"$ne": uid}}, {"$addToSet": {"seen_by": uid}})
    if result.modified_count:
        hub.publish(TOPIC)
    return result.modified_count


def subscribe_to_announcements(db: Database, on_change: Callable[[List[Dict[str, Any]]], None]) -> Cancel:
    return hub.subscribe(TOPIC, lambda: list_announcements(db), on_change)
