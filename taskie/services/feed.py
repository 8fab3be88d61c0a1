"""Paginated notification feeds, cache first with a durable fallback."""

import logging
from uuid import UUID

from sqlalchemy import func, select

from taskie.models.notification import Notification
from taskie.schemas.notification import FeedOptions, FeedPage, NotificationRecord
from taskie.services.counters import UnreadCounterManager
from taskie.services.durable import SessionFactory, durable_transaction
from taskie.services.store import NotificationStore

logger = logging.getLogger(__name__)


class FeedReader:
    """
    Serves feeds for a (user, workspace) scope or for a user across workspaces.

    Both paths order by ``created_at DESC, id DESC`` and apply the same
    unread/type filters, so for the same durable state they return the same
    page and total. The cache path is taken only when the scope's index has
    been warmed from the durable store and the page fits inside it.
    """

    def __init__(self, sessions: SessionFactory, store: NotificationStore, counters: UnreadCounterManager):
        self.sessions = sessions
        self.store = store
        self.counters = counters

    async def get_user_notifications(
        self,
        user_id: UUID,
        workspace_id: UUID | None = None,
        options: FeedOptions | None = None,
    ) -> FeedPage:
        options = options or FeedOptions()

        cached = await self._from_cache(user_id, workspace_id, options)
        if cached is not None:
            notifications, total = cached
        else:
            notifications, total = await self._from_durable(user_id, workspace_id, options)
            await self.store.cache_records(notifications)

        unread_count = await self.counters.get(user_id, workspace_id)
        return FeedPage(
            notifications=notifications,
            total=total,
            unread_count=unread_count,
            page=options.page,
            limit=options.limit,
        )

    async def _from_cache(
        self, user_id: UUID, workspace_id: UUID | None, options: FeedOptions
    ) -> tuple[list[NotificationRecord], int] | None:
        snapshot = await self.store.read_index(user_id, workspace_id)
        if snapshot is None:
            await self.store.warm_index(user_id, workspace_id)
            return None

        records = await self.store.fetch_many(snapshot.ids, user_id)
        ghosts = [i for i, record in zip(snapshot.ids, records) if record is None]
        if ghosts:
            # Deleted durably but still indexed: prune and let the durable path answer
            await self.store.drop_from_index(user_id, workspace_id, ghosts)
            return None

        # Indexes are per user, but a record must also belong to the scope
        matching = [
            record
            for record in records
            if (workspace_id is None or record.workspace_id == workspace_id) and options.matches(record)
        ]
        start, end = options.offset, options.offset + options.limit

        if snapshot.complete:
            total = len(matching)
        elif end <= len(matching):
            # The index holds the newest entries of the scope, so a page inside it is exact
            total = await self._count(user_id, workspace_id, options)
        else:
            return None

        page = matching[start:end]
        if not page:
            return None
        return page, total

    async def _from_durable(
        self, user_id: UUID, workspace_id: UUID | None, options: FeedOptions
    ) -> tuple[list[NotificationRecord], int]:
        conditions = _feed_conditions(user_id, workspace_id, options)
        async with durable_transaction(self.sessions, "read notification feed") as session:
            result = await session.execute(
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(options.offset)
                .limit(options.limit)
            )
            notifications = [NotificationRecord.model_validate(row) for row in result.scalars().all()]
            total = await session.scalar(select(func.count(Notification.id)).where(*conditions))
        return notifications, total or 0

    async def _count(self, user_id: UUID, workspace_id: UUID | None, options: FeedOptions) -> int:
        conditions = _feed_conditions(user_id, workspace_id, options)
        async with durable_transaction(self.sessions, "count notification feed") as session:
            total = await session.scalar(select(func.count(Notification.id)).where(*conditions))
        return total or 0


def _feed_conditions(user_id: UUID, workspace_id: UUID | None, options: FeedOptions) -> list:
    conditions = [Notification.user_id == user_id]
    if workspace_id is not None:
        conditions.append(Notification.workspace_id == workspace_id)
    if options.unread_only:
        conditions.append(Notification.is_read.is_(False))
    if options.types:
        conditions.append(Notification.notification_type.in_([t.value for t in options.types]))
    return conditions
