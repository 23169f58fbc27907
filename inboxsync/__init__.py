"""
inboxsync - notification inbox sync for the insurance anti-fraud dashboard
"""

__version__ = "1.0.0"
__author__ = "inboxsync Team"

from .api.client import NotificationGateway
from .auth.session import SessionManager
from .notifications.center import NotificationCenter
from .notifications.models import Notification

__all__ = [
    "NotificationGateway",
    "SessionManager",
    "NotificationCenter",
    "Notification"
]
