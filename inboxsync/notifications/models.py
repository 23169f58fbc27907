"""Notification record as delivered by the case-management API."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic.alias_generators import to_camel


class NotificationType(str, Enum):
    CASE_CREATED = "CASE_CREATED"
    CASE_STATUS_CHANGED = "CASE_STATUS_CHANGED"
    REPORT_CREATED = "REPORT_CREATED"
    REPORT_REQUEST_TO_OWNER = "REPORT_REQUEST_TO_OWNER"
    REPORT_REQUEST_CONFIRMATION = "REPORT_REQUEST_CONFIRMATION"
    VALIDATION_CODE_GENERATED = "VALIDATION_CODE_GENERATED"
    REPORT_DOWNLOADED = "REPORT_DOWNLOADED"
    DOWNLOAD_COMPLETED = "DOWNLOAD_COMPLETED"

    @classmethod
    def parse(cls, value: str | None) -> NotificationType | None:
        """Return the matching member, or None for unknown categories."""
        try:
            return cls(value)
        except ValueError:
            return None


class Notification(BaseModel):
    """Immutable notification record.

    Only ``read`` and ``read_at`` ever change, and only through
    :meth:`as_read`, which returns a new record.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    id: int
    user_id: str | None = None
    title: str = ""
    message: str = ""
    type: str = ""
    created_at: datetime | None = None
    read: bool = False
    read_at: datetime | None = None
    action: str | None = None
    url: str | None = None
    metadata: str | None = None

    @property
    def kind(self) -> NotificationType | None:
        return NotificationType.parse(self.type)

    def as_read(self, when: datetime | None = None) -> Notification:
        """Return a read copy. Already-read records are returned unchanged."""
        if self.read:
            return self
        return self.model_copy(
            update={"read": True, "read_at": when or datetime.now(timezone.utc)}
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


_notification_list = TypeAdapter(list[Notification])


def parse_notifications(payload: object) -> list[Notification]:
    """Validate a JSON array of notification objects."""
    return _notification_list.validate_python(payload)
