"""Pydantic schemas for notifications and preferences."""

from taskie.schemas.notification import (
    ACTIVE_CHANNELS,
    FeedOptions,
    FeedPage,
    MarkAllReadResponse,
    NotificationChannel,
    NotificationInput,
    NotificationRecord,
    NotificationTemplate,
    NotificationType,
    UnreadCountResponse,
)
from taskie.schemas.preferences import (
    MASTER_SWITCHES,
    NotificationPreferences,
    NotificationPreferencesUpdate,
)

__all__ = [
    "ACTIVE_CHANNELS",
    "MASTER_SWITCHES",
    "NotificationType",
    "NotificationChannel",
    "NotificationRecord",
    "NotificationTemplate",
    "NotificationInput",
    "FeedOptions",
    "FeedPage",
    "UnreadCountResponse",
    "MarkAllReadResponse",
    "NotificationPreferences",
    "NotificationPreferencesUpdate",
]
