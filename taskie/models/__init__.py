"""Database models for the Taskie notification subsystem."""

from taskie.models.notification import Notification
from taskie.models.preference import NotificationPreference
from taskie.models.user import User

__all__ = [
    "Notification",
    "NotificationPreference",
    "User",
]
