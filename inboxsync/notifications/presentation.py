"""Display helpers for notifications: icons, tones and relative times."""

from __future__ import annotations

from datetime import datetime, timezone

from .models import Notification, NotificationType

_ICONS = {
    NotificationType.CASE_CREATED: "📁",
    NotificationType.CASE_STATUS_CHANGED: "🔄",
    NotificationType.REPORT_CREATED: "📄",
    NotificationType.REPORT_REQUEST_TO_OWNER: "⚠️",
    NotificationType.REPORT_REQUEST_CONFIRMATION: "✅",
    NotificationType.VALIDATION_CODE_GENERATED: "🔐",
    NotificationType.REPORT_DOWNLOADED: "📥",
    NotificationType.DOWNLOAD_COMPLETED: "✅",
}
DEFAULT_ICON = "🔔"

# click color names
_TONES = {
    NotificationType.CASE_CREATED: "blue",
    NotificationType.REPORT_CREATED: "green",
    NotificationType.REPORT_REQUEST_TO_OWNER: "yellow",
    NotificationType.REPORT_REQUEST_CONFIRMATION: "green",
    NotificationType.VALIDATION_CODE_GENERATED: "magenta",
    NotificationType.REPORT_DOWNLOADED: "blue",
    NotificationType.DOWNLOAD_COMPLETED: "green",
}
DEFAULT_TONE = "white"


def icon_for(notification: Notification) -> str:
    return _ICONS.get(notification.kind, DEFAULT_ICON)


def tone_for(notification: Notification) -> str:
    return _TONES.get(notification.kind, DEFAULT_TONE)


def time_ago(moment: datetime | None, now: datetime | None = None) -> str:
    """Short relative label: 'just now', '5 min ago', '3h ago', '2d ago'."""
    if moment is None:
        return ""
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60} min ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def render_line(notification: Notification, now: datetime | None = None) -> str:
    """One-line summary used by the CLI inbox and toast output."""
    marker = "●" if not notification.read else " "
    when = time_ago(notification.created_at, now)
    suffix = f" ({when})" if when else ""
    return f"{marker} [{notification.id}] {icon_for(notification)} {notification.title}{suffix}"
