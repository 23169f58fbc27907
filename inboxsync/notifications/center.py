"""
NotificationCenter wires session, API client, store, toasts and sync together
"""
import logging
from typing import Any, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..api.client import NotificationGateway
from ..auth.session import SessionManager
from ..events.broker import NOTIFICATION_NEW, UNREAD_COUNT, EventBroker
from .commands import CommandResult, NotificationCommands
from .models import Notification
from .store import NotificationStore
from .sync import SyncEngine
from .toasts import Navigate, ToastQueue

logger = logging.getLogger(__name__)


class NotificationCenter:
    """
    Entry point for the inbox: one instance per running application
    """

    def __init__(self,
                 session: Optional[SessionManager] = None,
                 gateway: Optional[NotificationGateway] = None,
                 broker: Optional[EventBroker] = None,
                 navigate: Optional[Navigate] = None,
                 scheduler: Optional[AsyncIOScheduler] = None,
                 interval_ms: Optional[int] = None,
                 toast_duration_ms: Optional[int] = None):
        """
        Initialize NotificationCenter

        Args:
            session: Signed-in user holder
            gateway: Notification API client
            broker: Event broker for inbox events
            navigate: Host callback receiving a toast's url on click
            scheduler: Shared asyncio scheduler (one is created if omitted)
            interval_ms: Poll interval
            toast_duration_ms: Toast lifetime
        """
        self.session = session or SessionManager()
        self.broker = broker or EventBroker()
        self.gateway = gateway or NotificationGateway(self.session)
        self.store = NotificationStore(self.broker)
        self.toasts = ToastQueue(
            duration_ms=toast_duration_ms,
            navigate=navigate,
            lookup=self.store.get,
            broker=self.broker,
        )
        self.sync = SyncEngine(
            self.gateway, self.session, self.store,
            toasts=self.toasts, broker=self.broker,
            scheduler=scheduler, interval_ms=interval_ms,
        )
        self.commands = NotificationCommands(self.gateway, self.session, self.store, sync=self.sync)
        self.toasts.on_mark_read = self.commands.mark_as_read

    async def __aenter__(self):
        """Async context manager entry"""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.stop()

    async def start(self) -> None:
        await self.gateway.connect()
        await self.sync.start()

    async def stop(self) -> None:
        await self.sync.stop()
        self.toasts.clear()
        await self.gateway.close()

    # ── Views and subscriptions ──

    @property
    def notifications(self) -> List[Notification]:
        return self.store.active

    @property
    def trash(self) -> List[Notification]:
        return self.store.trash

    @property
    def unread_count(self) -> int:
        return self.store.unread_count

    def on_new_unread(self, callback: Callable[[List[Notification]], Any]) -> int:
        """Subscribe to newly arrived unread notifications. Returns subscriber ID."""
        return self.broker.subscribe(NOTIFICATION_NEW, callback)

    def on_unread_count(self, callback: Callable[[int], Any]) -> int:
        """Subscribe to unread count changes. The callback gets the new count."""
        return self.broker.subscribe(UNREAD_COUNT, lambda payload: callback(payload["count"]))

    def unsubscribe(self, sid: int) -> None:
        self.broker.unsubscribe(sid)

    # ── Operations ──

    def add_notification(self, notification: Notification) -> bool:
        """
        Insert a notification produced locally

        Returns:
            False if the id is already in the inbox (nothing happens)
        """
        if not self.store.add_to_active(notification):
            return False
        self.sync.remember(notification.id)
        self.toasts.push(notification)
        return True

    async def refresh(self) -> Optional[List[Notification]]:
        return await self.sync.refresh()

    async def mark_as_read(self, notification_id: int) -> CommandResult:
        return await self.commands.mark_as_read(notification_id)

    async def mark_all_as_read(self) -> CommandResult:
        return await self.commands.mark_all_as_read()

    async def delete(self, notification_id: int) -> CommandResult:
        return await self.commands.delete(notification_id)

    async def delete_all(self) -> CommandResult:
        return await self.commands.delete_all()

    async def restore(self, notification_id: int) -> CommandResult:
        return await self.commands.restore(notification_id)

    async def load_trash(self) -> CommandResult:
        return await self.commands.load_trash()

    def dismiss_toast(self, notification_id: int) -> bool:
        return self.toasts.dismiss(notification_id)

    async def click_toast(self, notification_id: int) -> bool:
        return await self.toasts.click(notification_id)

    def get_status(self) -> dict:
        status = self.sync.get_status()
        status['toasts'] = len(self.toasts)
        status['trash'] = len(self.store.trash)
        return status
