"""Notification service: the operations event producers and controllers call."""

import asyncio
import logging
from datetime import timedelta
from uuid import UUID

from redis.asyncio import Redis

from taskie.config import settings
from taskie.schemas.notification import (
    FeedOptions,
    FeedPage,
    NotificationInput,
    NotificationRecord,
    NotificationTemplate,
)
from taskie.schemas.preferences import NotificationPreferences, NotificationPreferencesUpdate
from taskie.services.composer import NotificationComposer
from taskie.services.counters import UnreadCounterManager
from taskie.services.dispatch import ChannelDispatcher, ChannelSender, UserDirectory
from taskie.services.durable import SessionFactory, utcnow
from taskie.services.feed import FeedReader
from taskie.services.preferences import PreferenceStore
from taskie.services.store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationService:
    """Facade over composition, storage, counters and feeds."""

    def __init__(
        self,
        sessions: SessionFactory,
        redis: Redis,
        sender: ChannelSender,
        directory: UserDirectory,
        bulk_concurrency: int | None = None,
    ):
        self.preferences = PreferenceStore(sessions, redis)
        self.store = NotificationStore(sessions, redis)
        self.counters = UnreadCounterManager(sessions, redis)
        self.dispatcher = ChannelDispatcher(sender, directory)
        self.composer = NotificationComposer(self.preferences, self.store, self.counters, self.dispatcher)
        self.feed = FeedReader(sessions, self.store, self.counters)
        self.bulk_concurrency = bulk_concurrency or settings.bulk_max_concurrency

    async def create_and_send(self, notification: NotificationInput) -> NotificationRecord:
        """Compose, persist, count and dispatch one notification."""
        return await self.composer.compose(notification)

    async def get_notification(self, notification_id: UUID, user_id: UUID) -> NotificationRecord | None:
        return await self.store.fetch(notification_id, user_id)

    async def mark_as_read(self, notification_id: UUID, user_id: UUID) -> bool:
        """
        Mark one notification as read.

        Returns False when it does not exist for this user or is already read;
        repeating the call never touches the counters again.
        """
        workspace_id = await self.store.mark_read(notification_id, user_id)
        if workspace_id is None:
            return False
        await self.counters.increment(user_id, workspace_id, -1)
        return True

    async def mark_all_as_read(self, user_id: UUID, workspace_id: UUID | None = None) -> int:
        """Mark every unread notification in scope as read; returns how many changed."""
        per_workspace = await self.store.mark_all_read(user_id, workspace_id)
        for marked_workspace, count in per_workspace.items():
            await self.counters.increment(user_id, marked_workspace, -count)
        return sum(per_workspace.values())

    async def delete_notification(self, notification_id: UUID, user_id: UUID) -> bool:
        removed = await self.store.delete(notification_id, user_id)
        if removed is None:
            return False
        if removed.was_unread:
            await self.counters.increment(user_id, removed.workspace_id, -1)
        return True

    async def get_user_notifications(
        self,
        user_id: UUID,
        workspace_id: UUID | None = None,
        options: FeedOptions | None = None,
    ) -> FeedPage:
        return await self.feed.get_user_notifications(user_id, workspace_id, options)

    async def get_unread_count(self, user_id: UUID, workspace_id: UUID | None = None) -> int:
        return await self.counters.get(user_id, workspace_id)

    async def get_notification_preferences(
        self, user_id: UUID, workspace_id: UUID
    ) -> NotificationPreferences:
        return await self.preferences.resolve(user_id, workspace_id)

    async def update_notification_preferences(
        self,
        user_id: UUID,
        workspace_id: UUID,
        update: NotificationPreferencesUpdate,
    ) -> NotificationPreferences:
        return await self.preferences.upsert(user_id, workspace_id, update)

    async def delete_old_notifications(self, days_old: int | None = None) -> int:
        """
        Retention sweep: delete read notifications older than ``days_old`` days.

        Unread notifications are never removed. Counters of every affected
        (user, workspace) are rebuilt from the durable store afterwards.
        """
        days = settings.retention_days if days_old is None else days_old
        cutoff = utcnow() - timedelta(days=days)
        removed = await self.store.delete_read_before(cutoff)

        affected: dict[UUID, set[UUID]] = {}
        for item in removed:
            affected.setdefault(item.user_id, set()).add(item.workspace_id)
        for user_id, workspace_ids in affected.items():
            await self.counters.reconcile(user_id, workspace_ids)

        logger.info("Deleted %d old notifications", len(removed))
        return len(removed)

    async def send_bulk_notification(
        self,
        user_ids: list[UUID],
        workspace_id: UUID,
        template: NotificationTemplate,
    ) -> None:
        """
        Fan a notification out to many users; one failure never stops the rest.

        At most ``bulk_concurrency`` compositions run at once so a large
        recipient list cannot exhaust the connection pool.
        """
        recipients = list(dict.fromkeys(user_ids))
        slots = asyncio.Semaphore(self.bulk_concurrency)

        async def send_to(user_id: UUID) -> NotificationRecord:
            async with slots:
                return await self.create_and_send(template.for_recipient(user_id, workspace_id))

        results = await asyncio.gather(*(send_to(user_id) for user_id in recipients), return_exceptions=True)

        failed = 0
        for user_id, result in zip(recipients, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error("Bulk notification to user %s failed: %s", user_id, result)
            elif isinstance(result, BaseException):
                raise result
        logger.info(
            "Bulk notification sent to %d users (%d failed)", len(recipients) - failed, failed
        )
