"""
Notification polling and reconciliation.
Uses APScheduler's asyncio scheduler to poll the API on a fixed interval.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..api.client import GatewayError
from ..config import config
from ..events.broker import NOTIFICATION_NEW
from .models import Notification

if TYPE_CHECKING:
    from ..api.client import NotificationGateway
    from ..auth.session import SessionManager
    from ..events.broker import EventBroker
    from .store import NotificationStore
    from .toasts import ToastQueue

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps the store in step with the server and announces new unread items.

    The first snapshot installed for a user becomes the baseline silently.
    Each later snapshot is diffed against the previous one: records whose id
    was not in the previous snapshot and that are unread are announced.
    Polls never overlap, and every poll carries the generation it started in;
    an identity change or shutdown bumps the generation so late responses are
    dropped.
    """

    JOB_ID = 'notification_poll'

    def __init__(self,
                 gateway: NotificationGateway,
                 session: SessionManager,
                 store: NotificationStore,
                 toasts: Optional[ToastQueue] = None,
                 broker: Optional[EventBroker] = None,
                 scheduler: Optional[AsyncIOScheduler] = None,
                 interval_ms: Optional[int] = None):
        self.gateway = gateway
        self.session = session
        self.store = store
        self.toasts = toasts
        self.broker = broker
        self.interval = (interval_ms or config.POLL_INTERVAL_MS) / 1000

        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncIOScheduler(
            job_defaults={
                'coalesce': True,  # merge missed runs into one
                'max_instances': 1,
                'misfire_grace_time': max(1, int(self.interval)),
            }
        )

        self._running = False
        self._user_id: Optional[str] = None
        self._baseline: Optional[set[int]] = None
        self._generation = 0
        self._poll_lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future] = None
        self.stats = {'polls': 0, 'failures': 0, 'discarded': 0, 'announced': 0}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Begin polling for the current user and follow identity changes."""
        if self._running:
            logger.warning("Sync engine is already running")
            return

        self._running = True
        self.session.add_listener(self.on_identity_change)
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        if self._owns_scheduler and not self.scheduler.running:
            self.scheduler.start()

        self._activate(self.session.user_id)
        logger.info(f"Sync engine started (interval {self.interval:g}s)")

    async def stop(self) -> None:
        """Stop polling and drop any in-flight result."""
        if not self._running:
            return

        self._running = False
        self.session.remove_listener(self.on_identity_change)
        self.scheduler.remove_listener(self._on_job_event)
        self._deactivate()
        self._user_id = None
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync engine stopped")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_baseline(self) -> bool:
        return self._baseline is not None

    def on_identity_change(self, user_id: Optional[str]) -> None:
        """Session listener: restart from scratch for the new identity."""
        if not self._running:
            return
        self._deactivate()
        self.store.reset()
        if self.toasts is not None:
            self.toasts.clear()
        self._activate(user_id)

    def _activate(self, user_id: Optional[str]) -> None:
        self._user_id = user_id
        self._baseline = None

        if not user_id:
            logger.info("No signed-in user, notification polling idle")
            return

        # next_run_time=now gives the immediate fetch on start / sign-in
        self.scheduler.add_job(
            self._scheduled_poll,
            IntervalTrigger(seconds=self.interval),
            id=self.JOB_ID,
            name=f'Notification poll for {user_id}',
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.debug(f"Polling scheduled for {user_id}")

    def _deactivate(self) -> None:
        self._generation += 1
        try:
            self.scheduler.remove_job(self.JOB_ID)
        except JobLookupError:
            pass

        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._baseline = None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _scheduled_poll(self) -> None:
        if self._poll_lock.locked():
            logger.debug("Previous poll still in flight, skipping this tick")
            return
        await self.poll()

    async def poll(self) -> Optional[List[Notification]]:
        """
        Run one sync cycle, waiting for any poll already in flight

        Returns:
            Records announced by this cycle, or None when no snapshot
            was installed (no user, fetch failed, or result superseded)
        """
        user_id = self._user_id
        if not self._running or not user_id:
            return None

        generation = self._generation
        async with self._poll_lock:
            snapshot = await self._fetch(generation, user_id)
            if snapshot is None:
                return None
            return self._install(snapshot, announce=True)

    refresh = poll

    async def reload(self, include_trash: bool = True) -> bool:
        """
        Re-fetch the inbox (and trash) outside the schedule

        The snapshot becomes the new baseline without announcing anything.

        Args:
            include_trash: Also replace the local trash

        Returns:
            True if the snapshot was installed
        """
        user_id = self._user_id
        if not self._running or not user_id:
            return False

        generation = self._generation
        async with self._poll_lock:
            snapshot = await self._fetch(generation, user_id)
            if snapshot is None:
                return False

            trash = None
            if include_trash:
                try:
                    trash = await self.gateway.fetch_trashed_notifications(user_id)
                except GatewayError as e:
                    logger.warning(f"Trash reload failed for {user_id}: {e}")
                if generation != self._generation:
                    self.stats['discarded'] += 1
                    return False

            self._install(snapshot, announce=False)
            if trash is not None:
                self.store.replace_trash(trash)
            return True

    async def _fetch(self, generation: int, user_id: str) -> Optional[List[Notification]]:
        if generation != self._generation:
            self.stats['discarded'] += 1
            return None

        fetch = asyncio.ensure_future(self.gateway.fetch_active_notifications(user_id))
        self._inflight = fetch
        try:
            snapshot = await fetch
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug(f"In-flight poll for {user_id} abandoned")
            self.stats['discarded'] += 1
            return None
        except GatewayError as e:
            self.stats['failures'] += 1
            logger.warning(f"Notification poll failed for {user_id}: {e}")
            return None
        finally:
            if self._inflight is fetch:
                self._inflight = None

        if generation != self._generation:
            self.stats['discarded'] += 1
            logger.debug(f"Discarding stale snapshot for {user_id}")
            return None
        return snapshot

    def _install(self, snapshot: List[Notification], announce: bool) -> List[Notification]:
        previous = self._baseline
        fresh: List[Notification] = []

        if announce and previous is not None:
            seen = set(previous)
            for record in snapshot:
                if record.id in seen:
                    continue
                seen.add(record.id)
                if not record.read:
                    fresh.append(record)

        self.store.replace_all(snapshot)
        self._baseline = {record.id for record in snapshot}
        self.stats['polls'] += 1

        if previous is None:
            logger.debug(f"Baseline of {len(self._baseline)} notifications installed for {self._user_id}")

        if fresh:
            self.stats['announced'] += len(fresh)
            logger.info(f"{len(fresh)} new unread notification(s) for {self._user_id}")
            if self.toasts is not None:
                self.toasts.extend(fresh)
            if self.broker:
                self.broker.publish(NOTIFICATION_NEW, fresh)

        return fresh

    def remember(self, notification_id: int) -> None:
        """Treat a locally inserted record as already seen."""
        if self._baseline is not None:
            self._baseline.add(notification_id)

    # ------------------------------------------------------------------
    # Event handling & status
    # ------------------------------------------------------------------

    def _on_job_event(self, event):
        if event.job_id != self.JOB_ID:
            return
        if getattr(event, 'exception', None):
            logger.error(f"Notification poll crashed: {event.exception}")
        elif event.code == EVENT_JOB_MISSED:
            logger.warning("Notification poll missed its run window")

    def get_status(self) -> Dict:
        """Return sync status summary."""
        job = self.scheduler.get_job(self.JOB_ID) if self._running else None
        return {
            'running': self._running,
            'user': self._user_id,
            'interval_seconds': self.interval,
            'next_poll': job.next_run_time.isoformat() if job and job.next_run_time else None,
            'has_baseline': self.has_baseline,
            'unread': self.store.unread_count,
            'stats': dict(self.stats),
        }
