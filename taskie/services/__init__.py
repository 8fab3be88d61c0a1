"""Notification services."""

from taskie.services.composer import NotificationComposer
from taskie.services.counters import UnreadCounterManager
from taskie.services.dispatch import ChannelDispatcher, ChannelSender, UserDirectory
from taskie.services.events import NotificationEvents
from taskie.services.feed import FeedReader
from taskie.services.notifications import NotificationService
from taskie.services.preferences import PreferenceStore
from taskie.services.store import NotificationStore

__all__ = [
    "ChannelDispatcher",
    "ChannelSender",
    "FeedReader",
    "NotificationComposer",
    "NotificationEvents",
    "NotificationService",
    "NotificationStore",
    "PreferenceStore",
    "UnreadCounterManager",
    "UserDirectory",
]
