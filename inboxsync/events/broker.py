"""In-process pub/sub broker for inbox events."""

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

NOTIFICATION_NEW = "notification:new"
UNREAD_COUNT = "unread_count"
INBOX_CHANGED = "inbox:changed"
TOAST_SHOWN = "toast:shown"
TOAST_DISMISSED = "toast:dismissed"

Listener = Callable[[Any], None]


class EventBroker:
    """Publish/subscribe broker keyed by event name.

    Each subscriber registers a callback for one event. publish() fans out
    to every callback registered for that event, in subscription order.
    A failing callback is logged and does not stop the fan-out.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, tuple[str, Listener]] = {}
        self._lock = threading.Lock()
        self._counter = 0

    def subscribe(self, event: str, callback: Listener) -> int:
        """Register a callback. Returns subscriber ID."""
        with self._lock:
            self._counter += 1
            sid = self._counter
            self._subscribers[sid] = (event, callback)
            logger.debug(f"Subscriber {sid} registered for '{event}' ({len(self._subscribers)} total)")
            return sid

    def unsubscribe(self, sid: int) -> None:
        """Remove a subscriber. Unknown IDs are ignored."""
        with self._lock:
            self._subscribers.pop(sid, None)

    def publish(self, event: str, data: Any = None) -> int:
        """Fan-out an event. Returns the number of callbacks reached."""
        with self._lock:
            targets = [cb for name, cb in self._subscribers.values() if name == event]

        delivered = 0
        for callback in targets:
            try:
                callback(data)
                delivered += 1
            except Exception:
                logger.debug(f"Listener for '{event}' failed", exc_info=True)
        return delivered

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
