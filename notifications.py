"""
Unread counters derived from the request, chat and announcement streams.

Nothing here is stored: counts are recomputed from the latest snapshots every
time one of the underlying live queries changes.
"""
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from pymongo.database import Database

import announcements
import chats
import skill_requests


class NotificationCounts(BaseModel):
    requests: int = 0
    chats: int = 0
    announcements: int = 0


def unread_request_count(requests: List[Dict[str, Any]], uid: str) -> int:
    return sum(
        1 for r in requests
        if r.get("to_user_id") == uid and r.get("status") == "pending" and not r.get("is_read")
    )


def unread_chat_count(conversations: List[Dict[str, Any]], uid: str) -> int:
    return sum((c.get("unread_count") or {}).get(uid, 0) for c in conversations)


def unread_announcement_count(messages: List[Dict[str, Any]], uid: str) -> int:
    return sum(1 for m in messages if uid not in (m.get("seen_by") or []))


def compute_counts(db: Database, uid: str) -> NotificationCounts:
    return NotificationCounts(
        requests=unread_request_count(skill_requests.list_received(db, uid), uid),
        chats=unread_chat_count(chats.list_conversations(db, uid), uid),
        announcements=unread_announcement_count(announcements.list_announcements(db), uid),
    )


class NotificationWatcher:
    """Keeps live counts for one user until :meth:`close` is called."""

    def __init__(self, db: Database, uid: str, on_change: Callable[[NotificationCounts], None]):
        self.uid = uid
        self._on_change = on_change
        self._lock = threading.Lock()
        self._requests: Optional[List[Dict[str, Any]]] = None
        self._conversations: Optional[List[Dict[str, Any]]] = None
        self._announcements: Optional[List[Dict[str, Any]]] = None
        self._cancels = [
            skill_requests.subscribe_to_requests(db, uid, self._set_requests),
            chats.subscribe_to_conversations(db, uid, self._set_conversations),
            announcements.subscribe_to_announcements(db, self._set_announcements),
        ]

    @property
    def counts(self) -> NotificationCounts:
        with self._lock:
            return NotificationCounts(
                requests=unread_request_count(self._requests or [], self.uid),
                chats=unread_chat_count(self._conversations or [], self.uid),
                announcements=unread_announcement_count(self._announcements or [], self.uid),
            )

    def _set_requests(self, snapshot: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._requests = snapshot
        self._emit()

    def _set_conversations(self, snapshot: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._conversations = snapshot
        self._emit()

    def _set_announcements(self, snapshot: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._announcements = snapshot
        self._emit()

    def _emit(self) -> None:
        # Hold back until every stream has delivered its first snapshot
        with self._lock:
            ready = None not in (self._requests, self._conversations, self._announcements)
        if ready:
            self._on_change(self.counts)

    def close(self) -> None:
        cancels, self._cancels = self._cancels, []
        for cancel in cancels:
            cancel()
