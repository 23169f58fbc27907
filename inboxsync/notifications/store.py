"""Local notification state: the active inbox, the trash and the unread count."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from ..events.broker import INBOX_CHANGED, UNREAD_COUNT
from .models import Notification

if TYPE_CHECKING:
    from ..events.broker import EventBroker

logger = logging.getLogger(__name__)


def _dedupe(records: Iterable[Notification], source: str) -> list[Notification]:
    seen: set[int] = set()
    unique = []
    for record in records:
        if record.id in seen:
            logger.warning(f"Duplicate notification id {record.id} in {source}, keeping first")
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


class NotificationStore:
    """Holds the Active and Trashed partitions of a user's notifications.

    The sync engine replaces the Active list wholesale on each poll; the
    command layer applies targeted mutations after the server confirms them.
    Every mutation publishes ``inbox:changed``, and ``unread_count`` when the
    count moved.
    """

    def __init__(self, broker: EventBroker | None = None) -> None:
        self.broker = broker
        self._active: list[Notification] = []
        self._trash: list[Notification] = []
        self._last_count = 0

    # ── Views ──

    @property
    def active(self) -> list[Notification]:
        return list(self._active)

    @property
    def trash(self) -> list[Notification]:
        return list(self._trash)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._active if not n.read)

    @property
    def unread_ids(self) -> list[int]:
        return [n.id for n in self._active if not n.read]

    def get(self, notification_id: int) -> Notification | None:
        """Return the Active record with this id, or None."""
        for record in self._active:
            if record.id == notification_id:
                return record
        return None

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, notification_id: object) -> bool:
        return any(n.id == notification_id for n in self._active)

    # ── Active mutations ──

    def replace_all(self, records: Iterable[Notification]) -> None:
        """Install a full snapshot. No per-field merge with local state."""
        self._active = _dedupe(records, "snapshot")
        active_ids = {n.id for n in self._active}
        self._trash = [n for n in self._trash if n.id not in active_ids]
        self._changed()

    def upsert_read_flag(self, notification_id: int, read_at: datetime | None = None) -> Notification | None:
        """Mark one Active record read. Returns the record, or None if absent."""
        for index, record in enumerate(self._active):
            if record.id == notification_id:
                updated = record.as_read(read_at)
                if updated is not record:
                    self._active[index] = updated
                    self._changed()
                return updated
        return None

    def mark_all_read(self, ids: Iterable[int] | None = None, read_at: datetime | None = None) -> list[int]:
        """Mark the given Active ids (all when None) read. Returns ids changed."""
        wanted = None if ids is None else set(ids)
        changed = []
        for index, record in enumerate(self._active):
            if record.read or (wanted is not None and record.id not in wanted):
                continue
            self._active[index] = record.as_read(read_at)
            changed.append(record.id)
        if changed:
            self._changed()
        return changed

    def remove_from_active(self, notification_id: int) -> Notification | None:
        for index, record in enumerate(self._active):
            if record.id == notification_id:
                del self._active[index]
                self._changed()
                return record
        return None

    def add_to_active(self, record: Notification) -> bool:
        """Prepend a record. Returns False if its id is already Active."""
        if record.id in self:
            return False
        self.remove_from_trash(record.id)
        self._active.insert(0, record)
        self._changed()
        return True

    def clear_active(self) -> None:
        self._active = []
        self._changed()

    # ── Trash ──

    def replace_trash(self, records: Iterable[Notification]) -> None:
        active_ids = {n.id for n in self._active}
        self._trash = [n for n in _dedupe(records, "trash") if n.id not in active_ids]
        self._changed()

    def add_to_trash(self, record: Notification) -> bool:
        if any(n.id == record.id for n in self._trash):
            return False
        self._trash.insert(0, record)
        self._changed()
        return True

    def remove_from_trash(self, notification_id: int) -> Notification | None:
        for index, record in enumerate(self._trash):
            if record.id == notification_id:
                del self._trash[index]
                self._changed()
                return record
        return None

    def reset(self) -> None:
        """Drop everything (identity change)."""
        self._active = []
        self._trash = []
        self._changed()

    # ── Change notification ──

    def _changed(self) -> None:
        if self.broker is None:
            return
        count = self.unread_count
        self.broker.publish(INBOX_CHANGED, {"active": len(self._active), "trash": len(self._trash)})
        if count != self._last_count:
            self._last_count = count
            self.broker.publish(UNREAD_COUNT, {"count": count})
