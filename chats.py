"""
Two-party conversations and their messages.

A conversation is identified by its sorted participant pair. Each chat keeps a
denormalized summary of its last message and a per-participant unread counter
that is bumped on send and zeroed when the reader opens the thread.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import HTTPException
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import as_utc, now_utc, serialize, to_object_id
from realtime import Cancel, hub
from schemas import Chat, Chatmessage

logger = logging.getLogger(__name__)

CHATS = "chat"
MESSAGES = "chatmessage"


def pair_key(a: str, b: str) -> str:
    return ":".join(sorted([a, b]))


def _conversations_topic(uid: str) -> Tuple[str, str]:
    return (CHATS, uid)


def _messages_topic(chat_id: str) -> Tuple[str, str]:
    return (MESSAGES, chat_id)


def get_conversation(db: Database, user1_id: str, user2_id: str) -> Optional[Dict[str, Any]]:
    participants = sorted([user1_id, user2_id])
    return serialize(db[CHATS].find_one({"participants": participants}))


def get_or_create_conversation(db: Database, user_a: Dict[str, Any],
                               user_b: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Return the chat for this pair, creating it if needed.

    ``user_a`` and ``user_b`` are profile documents. The second element of the
    result tells whether this call created the chat.
    """
    if user_a["id"] == user_b["id"]:
        raise HTTPException(status_code=400, detail="Cannot open a chat with yourself")
    existing = get_conversation(db, user_a["id"], user_b["id"])
    if existing:
        return existing, False

    first, second = sorted([user_a, user_b], key=lambda u: u["id"])
    stamp = now_utc()
    doc = Chat(
        participants=[first["id"], second["id"]],
        pair_key=pair_key(first["id"], second["id"]),
        participant_names=[first.get("name", ""), second.get("name", "")],
        participant_photos=[first.get("profile_photo_url") or "", second.get("profile_photo_url") or ""],
        last_message_time=stamp,
        unread_count={first["id"]: 0, second["id"]: 0},
    ).model_dump()
    doc["created_at"] = stamp
    doc["updated_at"] = stamp

    key = doc.pop("pair_key")
    # The unique pair_key index turns a concurrent second insert into a no-op
    try:
        result = db[CHATS].update_one({"pair_key": key}, {"$setOnInsert": doc}, upsert=True)
        created = result.upserted_id is not None
    except DuplicateKeyError:
        created = False
    chat = serialize(db[CHATS].find_one({"pair_key": key}))
    if created:
        logger.info("Created chat %s between %s and %s", chat["id"], first["id"], second["id"])
        hub.publish(*(_conversations_topic(uid) for uid in chat["participants"]))
    return chat, created


def get_chat(db: Database, chat_id: str) -> Dict[str, Any]:
    chat = db[CHATS].find_one({"_id": to_object_id(chat_id)})
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return serialize(chat)


def require_participant(chat: Dict[str, Any], uid: str) -> None:
    if uid not in chat["participants"]:
        raise HTTPException(status_code=403, detail="Not part of this chat")


def other_participant(chat: Dict[str, Any], uid: str) -> str:
    require_participant(chat, uid)
    return next(p for p in chat["participants"] if p != uid)


def _sorted_by_update(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    docs.sort(key=lambda d: as_utc(d.get("updated_at")), reverse=True)
    return [serialize(d) for d in docs]


def list_conversations(db: Database, uid: str) -> List[Dict[str, Any]]:
    return _sorted_by_update(list(db[CHATS].find({"participants": uid})))


def list_all_conversations(db: Database) -> List[Dict[str, Any]]:
    return _sorted_by_update(list(db[CHATS].find()))


def send_message(db: Database, chat_id: str, sender: Dict[str, Any], text: str,
                 other_user_id: str) -> Dict[str, Any]:
    text = text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    stamp = now_utc()
    message = Chatmessage(
        chat_id=chat_id,
        sender_id=sender["id"],
        sender_name=sender.get("name", ""),
        sender_photo=sender.get("profile_photo_url") or "",
        message=text,
        timestamp=stamp,
    )
    inserted_id = db[MESSAGES].insert_one(message.model_dump()).inserted_id

    db[CHATS].update_one(
        {"_id": to_object_id(chat_id)},
        {
            "$set": {
                "last_message": text,
                "last_message_time": stamp,
                "last_message_sender": sender["id"],
                "updated_at": stamp,
            },
            "$inc": {f"unread_count.{other_user_id}": 1},
        },
    )
    hub.publish(
        _messages_topic(chat_id),
        _conversations_topic(sender["id"]),
        _conversations_topic(other_user_id),
    )
    return serialize(db[MESSAGES].find_one({"_id": inserted_id}))


def get_messages(db: Database, chat_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Newest ``limit`` messages of a chat, oldest first."""
    cursor = db[MESSAGES].find({"chat_id": chat_id}).sort("timestamp", -1).limit(limit)
    docs = list(cursor)
    docs.reverse()
    return [serialize(d) for d in docs]


def mark_read(db: Database, chat_id: str, uid: str) -> None:
    db[MESSAGES].update_many(
        {"chat_id": chat_id, "sender_id": {"$ne": uid}, "is_read": False},
        {"$set": {"is_read": True}},
    )
    db[CHATS].update_one({"_id": to_object_id(chat_id)}, {"$set": {f"unread_count.{uid}": 0}})
    hub.publish(_messages_topic(chat_id), _conversations_topic(uid))


def list_all_messages(db: Database, chat_id: Optional[str] = None) -> List[Dict[str, Any]]:
    filt = {"chat_id": chat_id} if chat_id else {}
    return [serialize(d) for d in db[MESSAGES].find(filt).sort("timestamp", -1)]


def message_counts(db: Database) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for doc in db[MESSAGES].find({}, {"chat_id": 1}):
        counts[doc["chat_id"]] = counts.get(doc["chat_id"], 0) + 1
    return counts


def subscribe_to_conversations(db: Database, uid: str,
                               on_change: Callable[[List[Dict[str, Any]]], None]) -> Cancel:
    return hub.subscribe(_conversations_topic(uid), lambda: list_conversations(db, uid), on_change)


def subscribe_to_messages(db: Database, chat_id: str,
                          on_change: Callable[[List[Dict[str, Any]]], None]) -> Cancel:
    def snapshot() -> List[Dict[str, Any]]:
        return [serialize(d) for d in db[MESSAGES].find({"chat_id": chat_id}).sort("timestamp", 1)]

    return hub.subscribe(_messages_topic(chat_id), snapshot, on_change)
