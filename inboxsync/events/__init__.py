"""Inbox event surface."""

from .broker import (
    INBOX_CHANGED,
    NOTIFICATION_NEW,
    TOAST_DISMISSED,
    TOAST_SHOWN,
    UNREAD_COUNT,
    EventBroker,
)

__all__ = [
    "EventBroker",
    "NOTIFICATION_NEW",
    "UNREAD_COUNT",
    "INBOX_CHANGED",
    "TOAST_SHOWN",
    "TOAST_DISMISSED",
]
