"""
Shared pytest fixtures for inboxsync tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from inboxsync.auth.session import SessionManager, SessionUser
from inboxsync.events.broker import EventBroker
from inboxsync.notifications.models import Notification
from inboxsync.notifications.store import NotificationStore

CREATED = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_notification():
    """Factory for Notification records with sensible defaults."""

    def _make(id: int, read: bool = False, **fields) -> Notification:
        data = {
            "id": id,
            "user_id": "alice",
            "title": f"Notification {id}",
            "message": f"Message {id}",
            "type": "CASE_CREATED",
            "created_at": CREATED + timedelta(minutes=id),
            "read": read,
        }
        data.update(fields)
        return Notification(**data)

    return _make


@pytest.fixture
def session(tmp_path):
    """Signed-in session persisted to a temp file."""
    s = SessionManager(session_file=tmp_path / "session.json", base_url="http://test/api")
    s.set_user(SessionUser(name="alice"), persist=False)
    return s


@pytest.fixture
def anonymous_session(tmp_path):
    """Session with nobody signed in."""
    return SessionManager(session_file=tmp_path / "nobody.json", base_url="http://test/api")


@pytest.fixture
def broker():
    return EventBroker()


@pytest.fixture
def store(broker):
    return NotificationStore(broker)


@pytest.fixture
def mock_gateway():
    """Mocked NotificationGateway with async methods."""
    mock = MagicMock()
    mock.connect = AsyncMock()
    mock.close = AsyncMock()
    mock.fetch_active_notifications = AsyncMock(return_value=[])
    mock.fetch_trashed_notifications = AsyncMock(return_value=[])
    mock.fetch_unread_count = AsyncMock(return_value=0)
    mock.mark_read = AsyncMock(return_value=True)
    mock.mark_all_read = AsyncMock(return_value=True)
    mock.delete_notification = AsyncMock(return_value=True)
    mock.delete_all_notifications = AsyncMock(return_value=True)
    mock.restore_notification = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def mock_scheduler():
    """Stand-in for AsyncIOScheduler that records job calls."""
    mock = MagicMock()
    mock.running = True
    mock.get_job.return_value = None
    return mock
