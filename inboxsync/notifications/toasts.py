"""Ephemeral toast queue with one auto-dismiss timer per entry."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

from ..config import config
from ..events.broker import TOAST_DISMISSED, TOAST_SHOWN
from .models import Notification

if TYPE_CHECKING:
    from ..events.broker import EventBroker

logger = logging.getLogger(__name__)

MarkRead = Callable[[int], Awaitable[Any]]
Navigate = Callable[[str], Any]
Lookup = Callable[[int], "Notification | None"]


@dataclass
class ToastEntry:
    notification: Notification
    shown_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    timer: asyncio.TimerHandle | None = field(default=None, repr=False, compare=False)

    @property
    def id(self) -> int:
        return self.notification.id


class ToastQueue:
    """Insertion-ordered toasts, at most one per notification id.

    Dismissing a toast (manually, by click or by timeout) only removes it
    from the queue; the underlying notification is never touched here.
    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        duration_ms: int | None = None,
        max_visible: int | None = None,
        on_mark_read: MarkRead | None = None,
        navigate: Navigate | None = None,
        lookup: Lookup | None = None,
        broker: EventBroker | None = None,
    ) -> None:
        self.duration = (duration_ms if duration_ms is not None else config.TOAST_DURATION_MS) / 1000
        self.max_visible = max_visible if max_visible is not None else config.TOAST_MAX_VISIBLE
        self.on_mark_read = on_mark_read
        self.navigate = navigate
        self.lookup = lookup
        self.broker = broker
        self._entries: dict[int, ToastEntry] = {}

    @property
    def entries(self) -> list[ToastEntry]:
        return list(self._entries.values())

    @property
    def ids(self) -> list[int]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._entries

    def push(self, notification: Notification) -> bool:
        """Queue a toast. Returns False if one is already shown for this id."""
        if notification.id in self._entries:
            return False

        loop = asyncio.get_running_loop()
        entry = ToastEntry(notification)
        entry.timer = loop.call_later(self.duration, self._expire, notification.id)
        self._entries[notification.id] = entry
        logger.debug(f"Toast shown for notification {notification.id}")

        if self.broker:
            self.broker.publish(TOAST_SHOWN, notification)

        if self.max_visible and len(self._entries) > self.max_visible:
            oldest = next(iter(self._entries))
            self.dismiss(oldest, reason="overflow")
        return True

    def extend(self, notifications: Iterable[Notification]) -> list[Notification]:
        """Queue several toasts in order. Returns the ones actually added."""
        return [n for n in notifications if self.push(n)]

    def dismiss(self, notification_id: int, reason: str = "closed") -> bool:
        """Remove a toast and cancel its timer. Unknown ids are a no-op."""
        entry = self._entries.pop(notification_id, None)
        if entry is None:
            return False
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        logger.debug(f"Toast {notification_id} dismissed ({reason})")

        if self.broker:
            self.broker.publish(TOAST_DISMISSED, {"id": notification_id, "reason": reason})
        return True

    def _expire(self, notification_id: int) -> None:
        self.dismiss(notification_id, reason="expired")

    def _is_unread(self, entry: ToastEntry) -> bool:
        current = self.lookup(entry.id) if self.lookup else None
        return not (current or entry.notification).read

    async def click(self, notification_id: int) -> bool:
        """Mark read if needed, hand the url to the host, then dismiss."""
        entry = self._entries.get(notification_id)
        if entry is None:
            return False

        try:
            if self.on_mark_read and self._is_unread(entry):
                try:
                    await self.on_mark_read(notification_id)
                except Exception as e:
                    logger.error(f"Marking toast {notification_id} read failed: {e}")
            if entry.notification.url and self.navigate:
                try:
                    self.navigate(entry.notification.url)
                except Exception as e:
                    logger.error(f"Navigation to {entry.notification.url} failed: {e}")
        finally:
            self.dismiss(notification_id, reason="clicked")
        return True

    def clear(self) -> None:
        """Cancel every timer and empty the queue."""
        for entry in self._entries.values():
            if entry.timer is not None:
                entry.timer.cancel()
                entry.timer = None
        self._entries.clear()
