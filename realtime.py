"""
In-process live query hub.

Accessor modules publish a topic after every write that can change a live
query; subscribers get the full, freshly read snapshot (never a diff). A topic
is a ``(collection, key)`` tuple such as ``("chat", uid)``.
"""
import logging
import threading
from itertools import count
from typing import Any, Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)

Snapshot = Callable[[], Any]
Listener = Callable[[Any], None]
Cancel = Callable[[], None]


class Hub:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = count(1)
        self._topics: Dict[Hashable, Dict[int, Tuple[Snapshot, Listener]]] = {}

    def subscribe(self, topic: Hashable, snapshot: Snapshot, listener: Listener) -> Cancel:
        """Register ``listener`` on ``topic`` and deliver the current snapshot.

        Returns a cancel function; calling it more than once is harmless.
        """
        with self._lock:
            sub_id = next(self._ids)
            self._topics.setdefault(topic, {})[sub_id] = (snapshot, listener)

        def cancel() -> None:
            with self._lock:
                subs = self._topics.get(topic)
                if subs is None:
                    return
                subs.pop(sub_id, None)
                if not subs:
                    del self._topics[topic]

        self._deliver(topic, snapshot, listener)
        return cancel

    def publish(self, *topics: Hashable) -> None:
        for topic in topics:
            with self._lock:
                subs = list(self._topics.get(topic, {}).values())
            for snapshot, listener in subs:
                self._deliver(topic, snapshot, listener)

    def subscriber_count(self, topic: Hashable) -> int:
        with self._lock:
            return len(self._topics.get(topic, {}))

    @staticmethod
    def _deliver(topic: Hashable, snapshot: Snapshot, listener: Listener) -> None:
        # A broken listener must not fail the write that published
        try:
            listener(snapshot())
        except Exception:
            logger.exception("Listener for %s failed", topic)


hub = Hub()
