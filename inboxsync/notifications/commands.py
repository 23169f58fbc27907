"""Inbox commands: read, delete, restore.

Each command asks the server first and changes the local store only once
the server has acknowledged it. Results are reported as CommandResult.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..api.client import GatewayError
from ..config import config

if TYPE_CHECKING:
    from ..api.client import NotificationGateway
    from ..auth.session import SessionManager
    from .store import NotificationStore
    from .sync import SyncEngine

logger = logging.getLogger(__name__)

NOT_SIGNED_IN = "not_signed_in"
REJECTED = "rejected"
TRANSPORT = "transport_error"
PARTIAL = "partial_failure"
SUPERSEDED = "identity_changed"


@dataclass
class CommandResult:
    success: bool
    reason: str | None = None
    ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


class NotificationCommands:
    """Read/trash operations for the signed-in user."""

    def __init__(
        self,
        gateway: NotificationGateway,
        session: SessionManager,
        store: NotificationStore,
        sync: SyncEngine | None = None,
        mark_all_strategy: str | None = None,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.store = store
        self.sync = sync
        self.mark_all_strategy = mark_all_strategy or config.MARK_ALL_STRATEGY

    def _user(self, action: str) -> str | None:
        user_id = self.session.user_id
        if not user_id:
            logger.debug(f"Skipping {action}: no signed-in user")
        return user_id

    def _superseded(self, user_id: str, action: str) -> bool:
        """True when the signed-in identity changed while ``action`` was in flight."""
        if self.session.user_id == user_id:
            return False
        logger.warning(f"{action}: identity changed from {user_id}, result not applied")
        return True

    async def _call(self, action: str, coro, user_id: str) -> CommandResult:
        try:
            ok = await coro
        except GatewayError as e:
            logger.error(f"{action} failed: {e}")
            return CommandResult(False, TRANSPORT)
        if self._superseded(user_id, action):
            return CommandResult(False, SUPERSEDED)
        if not ok:
            logger.error(f"{action} rejected by server")
            return CommandResult(False, REJECTED)
        return CommandResult(True)

    async def mark_as_read(self, notification_id: int) -> CommandResult:
        """Acknowledge one notification, then flag it read locally."""
        user_id = self._user("mark_as_read")
        if not user_id:
            return CommandResult(False, NOT_SIGNED_IN)

        result = await self._call(
            f"Marking notification {notification_id} as read",
            self.gateway.mark_read(notification_id, user_id),
            user_id,
        )
        if result:
            self.store.upsert_read_flag(notification_id, datetime.now(timezone.utc))
            result.ids = [notification_id]
        else:
            result.failed_ids = [notification_id]
        return result

    async def mark_all_as_read(self) -> CommandResult:
        """Mark every unread Active notification read.

        The sequential strategy acknowledges ids one at a time and flags
        locally only the ids the server accepted; the rest stay unread and
        are listed in ``failed_ids``.
        """
        user_id = self._user("mark_all_as_read")
        if not user_id:
            return CommandResult(False, NOT_SIGNED_IN)

        if self.mark_all_strategy == "bulk":
            result = await self._call(
                "Marking all notifications as read", self.gateway.mark_all_read(user_id), user_id
            )
            if result:
                result.ids = self.store.mark_all_read(read_at=datetime.now(timezone.utc))
            return result

        acknowledged: list[int] = []
        failed: list[int] = []
        for notification_id in self.store.unread_ids:
            outcome = await self._call(
                f"Marking notification {notification_id} as read",
                self.gateway.mark_read(notification_id, user_id),
                user_id,
            )
            if outcome.reason == SUPERSEDED:
                return CommandResult(False, SUPERSEDED, ids=acknowledged)
            (acknowledged if outcome else failed).append(notification_id)

        self.store.mark_all_read(acknowledged, read_at=datetime.now(timezone.utc))
        if failed:
            logger.warning(f"{len(failed)} of {len(acknowledged) + len(failed)} notifications not acknowledged")
            return CommandResult(False, PARTIAL, ids=acknowledged, failed_ids=failed)
        return CommandResult(True, ids=acknowledged)

    async def delete(self, notification_id: int) -> CommandResult:
        """Trash one notification (Active -> Trashed)."""
        user_id = self._user("delete")
        if not user_id:
            return CommandResult(False, NOT_SIGNED_IN)

        result = await self._call(
            f"Deleting notification {notification_id}",
            self.gateway.delete_notification(notification_id, user_id),
            user_id,
        )
        if not result:
            result.failed_ids = [notification_id]
            return result

        record = self.store.remove_from_active(notification_id)
        if record is not None:
            self.store.add_to_trash(record)
        result.ids = [notification_id]
        logger.info(f"Notification {notification_id} moved to trash")
        return result

    async def delete_all(self) -> CommandResult:
        """Delete every notification; the trash is reconciled on its next fetch."""
        user_id = self._user("delete_all")
        if not user_id:
            return CommandResult(False, NOT_SIGNED_IN)

        result = await self._call(
            "Deleting all notifications", self.gateway.delete_all_notifications(user_id), user_id
        )
        if result:
            result.ids = [n.id for n in self.store.active]
            self.store.clear_active()
            logger.info(f"Cleared {len(result.ids)} notifications")
        return result

    async def restore(self, notification_id: int) -> CommandResult:
        """Restore from trash, then reload inbox and trash from the server."""
        user_id = self._user("restore")
        if not user_id:
            return CommandResult(False, NOT_SIGNED_IN)

        result = await self._call(
            f"Restoring notification {notification_id}",
            self.gateway.restore_notification(notification_id, user_id),
            user_id,
        )
        if not result:
            result.failed_ids = [notification_id]
            return result

        result.ids = [notification_id]
        if self.sync is not None and self.sync.running:
            await self.sync.reload(include_trash=True)
        else:
            await self._reload(user_id)
        return result

    async def load_trash(self) -> CommandResult:
        """Fetch the trash and install it locally."""
        user_id = self._user("load_trash")
        if not user_id:
            return CommandResult(False, NOT_SIGNED_IN)

        try:
            trash = await self.gateway.fetch_trashed_notifications(user_id)
        except GatewayError as e:
            logger.error(f"Loading trash failed: {e}")
            return CommandResult(False, TRANSPORT)
        if self._superseded(user_id, "Loading trash"):
            return CommandResult(False, SUPERSEDED)

        self.store.replace_trash(trash)
        return CommandResult(True, ids=[n.id for n in trash])

    async def _reload(self, user_id: str) -> None:
        try:
            active = await self.gateway.fetch_active_notifications(user_id)
            trash = await self.gateway.fetch_trashed_notifications(user_id)
        except GatewayError as e:
            logger.warning(f"Reload after restore failed: {e}")
            return
        if self._superseded(user_id, "Reload after restore"):
            return
        self.store.replace_all(active)
        self.store.replace_trash(trash)
