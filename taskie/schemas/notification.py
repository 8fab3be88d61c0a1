"""Notification schemas: enumerations, the canonical record shape and feed types."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class NotificationType(str, Enum):
    """Closed set of events that produce notifications."""

    WORKSPACE_CREATED = "WORKSPACE_CREATED"
    WORKSPACE_DELETED = "WORKSPACE_DELETED"
    WORKSPACE_UPDATED = "WORKSPACE_UPDATED"
    USER_ADDED_TO_WORKSPACE = "USER_ADDED_TO_WORKSPACE"
    USER_REMOVED_FROM_WORKSPACE = "USER_REMOVED_FROM_WORKSPACE"
    USER_ROLE_UPDATED = "USER_ROLE_UPDATED"
    TEAM_CREATED = "TEAM_CREATED"
    TEAM_UPDATED = "TEAM_UPDATED"
    TEAM_DELETED = "TEAM_DELETED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    MENTION = "MENTION"
    DEADLINE_APPROACHING = "DEADLINE_APPROACHING"
    PROJECT_MILESTONE = "PROJECT_MILESTONE"


class NotificationChannel(str, Enum):
    """Delivery channels a notification can be dispatched through."""

    EMAIL = "EMAIL"
    PUSH = "PUSH"
    IN_APP = "IN_APP"
    WEBSOCKET = "WEBSOCKET"


# Channels that need an outbound send; the others are satisfied by persistence.
ACTIVE_CHANNELS = frozenset({NotificationChannel.EMAIL, NotificationChannel.PUSH})


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive timestamps
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def unique_channels(channels: list[NotificationChannel]) -> list[NotificationChannel]:
    """Drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(channels))


class NotificationRecord(BaseModel):
    """
    Canonical notification shape.

    Built from the ORM row on the durable side and serialized to JSON for the
    cache mirror; both stores round-trip through this one model.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    workspace_id: UUID
    notification_type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    channels: list[NotificationChannel] = Field(default_factory=list)
    is_read: bool = False
    created_at: datetime
    read_at: datetime | None = None

    @field_validator("created_at", "read_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode="after")
    def check_read_state(self) -> "NotificationRecord":
        if self.is_read != (self.read_at is not None):
            raise ValueError("read_at must be set if and only if the notification is read")
        if self.read_at is not None and self.read_at < self.created_at:
            raise ValueError("read_at cannot precede created_at")
        return self


class NotificationTemplate(BaseModel):
    """Notification content without a recipient, used for bulk fan-out."""

    notification_type: NotificationType
    title: str = Field(min_length=1, max_length=255)
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    channels: list[NotificationChannel] = Field(
        default_factory=list,
        description="Maximum set of channels this event may use",
    )

    def for_recipient(self, user_id: UUID, workspace_id: UUID) -> "NotificationInput":
        return NotificationInput(user_id=user_id, workspace_id=workspace_id, **self.model_dump())


class NotificationInput(NotificationTemplate):
    """Event data handed to the composer."""

    user_id: UUID
    workspace_id: UUID


class FeedOptions(BaseModel):
    """Pagination and filters for a notification feed."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=100)
    unread_only: bool = False
    types: list[NotificationType] | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def matches(self, record: NotificationRecord) -> bool:
        """In-memory twin of the durable filter predicates."""
        if self.unread_only and record.is_read:
            return False
        if self.types and record.notification_type not in self.types:
            return False
        return True


class FeedPage(BaseModel):
    """One page of a user's notification feed."""

    notifications: list[NotificationRecord]
    total: int
    unread_count: int
    page: int
    limit: int


class UnreadCountResponse(BaseModel):
    """Response for the unread counter endpoint."""

    unread_count: int
    workspace_id: UUID | None = None


class MarkAllReadResponse(BaseModel):
    """Response for marking notifications as read in bulk."""

    marked_count: int
