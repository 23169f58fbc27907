"""Notification state, toasts and presentation."""

from .models import Notification, NotificationType
from .store import NotificationStore
from .toasts import ToastEntry, ToastQueue

__all__ = ["Notification", "NotificationType", "NotificationStore", "ToastEntry", "ToastQueue"]
