"""Notification persistence: durable rows first, Redis mirror second.

The durable store is the source of truth. Every Redis write here is a copy of
something already committed, and every Redis failure is logged and
swallowed; readers always have a durable fallback.

Redis layout per notification:
- ``notification:{id}``: JSON of the canonical record (TTL 24h by default)
- ``notification_feed:{user}:{workspace}`` and ``notification_feed:{user}:all``:
  sorted sets of ids scored by creation time in microseconds, trimmed to the
  most recent N entries
- ``notification_feed_state:{user}:{scope}``: "complete" when the index holds
  the whole scope, "partial" when older entries were trimmed away; absent
  until the index is warmed from the durable store
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import WatchError
from sqlalchemy import delete, func, select, update

from taskie.cache import feed_index_key, feed_state_key, notification_key
from taskie.config import settings
from taskie.models.notification import Notification
from taskie.schemas.notification import NotificationRecord
from taskie.services.durable import SessionFactory, durable_transaction, utcnow

logger = logging.getLogger(__name__)

INDEX_COMPLETE = "complete"
INDEX_PARTIAL = "partial"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def index_score(created_at: datetime) -> int:
    """Exact creation time in microseconds since the epoch."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (created_at - _EPOCH) // timedelta(microseconds=1)


def to_row(record: NotificationRecord) -> Notification:
    payload = record.model_dump(mode="json")
    return Notification(
        id=record.id,
        user_id=record.user_id,
        workspace_id=record.workspace_id,
        notification_type=payload["notification_type"],
        title=record.title,
        message=record.message,
        data=payload["data"],
        channels=payload["channels"],
        is_read=record.is_read,
        created_at=record.created_at,
        read_at=record.read_at,
    )


@dataclass
class IndexSnapshot:
    """Ids of a warmed feed index, newest first."""

    ids: list[str]
    complete: bool


@dataclass
class RemovedNotification:
    id: UUID
    user_id: UUID
    workspace_id: UUID
    was_unread: bool


class NotificationStore:
    """Write-through persistence for notification records."""

    MIRROR_ATTEMPTS = 3

    def __init__(
        self,
        sessions: SessionFactory,
        redis: Redis,
        record_ttl_seconds: int | None = None,
        index_ttl_seconds: int | None = None,
        index_max_entries: int | None = None,
    ):
        self.sessions = sessions
        self.redis = redis
        self.record_ttl_seconds = record_ttl_seconds or settings.notification_cache_ttl_seconds
        self.index_ttl_seconds = index_ttl_seconds or settings.feed_cache_ttl_seconds
        self.index_max_entries = index_max_entries or settings.feed_cache_max_entries

    # --- Durable writes ---

    async def persist(self, record: NotificationRecord) -> NotificationRecord:
        """
        Insert the record durably, then mirror it into Redis.

        Raises:
            NotificationPersistenceError: the insert failed; nothing was cached
        """
        async with durable_transaction(self.sessions, "persist notification") as session:
            session.add(to_row(record))

        # Hand back exactly what both stores hold
        stored = NotificationRecord.model_validate_json(record.model_dump_json())
        await self._mirror(stored)
        return stored

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> UUID | None:
        """
        Flip one unread notification to read.

        Returns the notification's workspace id, or None when it does not
        exist, belongs to someone else or was already read.
        """
        async with durable_transaction(self.sessions, "mark notification read") as session:
            result = await session.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=utcnow())
                .returning(Notification.workspace_id)
                .execution_options(synchronize_session=False)
            )
            workspace_id = result.scalar_one_or_none()

        if workspace_id is not None:
            await self._forget_records([notification_id])
        return workspace_id

    async def mark_all_read(
        self, user_id: UUID, workspace_id: UUID | None = None
    ) -> dict[UUID, int]:
        """
        Flip every unread notification in scope to read.

        Returns the number of transitioned notifications per workspace.
        """
        conditions = [Notification.user_id == user_id, Notification.is_read.is_(False)]
        if workspace_id is not None:
            conditions.append(Notification.workspace_id == workspace_id)

        async with durable_transaction(self.sessions, "mark all notifications read") as session:
            result = await session.execute(
                update(Notification)
                .where(*conditions)
                .values(is_read=True, read_at=utcnow())
                .returning(Notification.id, Notification.workspace_id)
                .execution_options(synchronize_session=False)
            )
            marked = result.all()

        per_workspace: dict[UUID, int] = {}
        for _, marked_workspace in marked:
            per_workspace[marked_workspace] = per_workspace.get(marked_workspace, 0) + 1

        await self._forget_records([marked_id for marked_id, _ in marked])
        return per_workspace

    async def delete(self, notification_id: UUID, user_id: UUID) -> RemovedNotification | None:
        """Delete a notification owned by the user; None when there was nothing to delete."""
        async with durable_transaction(self.sessions, "delete notification") as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.id == notification_id, Notification.user_id == user_id)
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            removed = RemovedNotification(
                id=row.id,
                user_id=row.user_id,
                workspace_id=row.workspace_id,
                was_unread=not row.is_read,
            )
            await session.delete(row)

        await self._unlink([removed])
        return removed

    async def delete_read_before(self, cutoff: datetime) -> list[RemovedNotification]:
        """Retention: delete notifications that are read and created before the cutoff."""
        async with durable_transaction(self.sessions, "delete old notifications") as session:
            result = await session.execute(
                delete(Notification)
                .where(Notification.created_at < cutoff, Notification.is_read.is_(True))
                .returning(Notification.id, Notification.user_id, Notification.workspace_id)
                .execution_options(synchronize_session=False)
            )
            removed = [
                RemovedNotification(id=row.id, user_id=row.user_id, workspace_id=row.workspace_id, was_unread=False)
                for row in result.all()
            ]

        await self._unlink(removed)
        return removed

    # --- Reads ---

    async def fetch(self, notification_id: UUID, user_id: UUID) -> NotificationRecord | None:
        """Cache-first lookup of one notification owned by the user."""
        records = await self.fetch_many([str(notification_id)], user_id)
        return records[0]

    async def fetch_many(self, ids: list[str], user_id: UUID) -> list[NotificationRecord | None]:
        """
        Look up several notifications, preserving order.

        Cache misses are loaded from the durable store in one query and
        re-warmed. Ids that exist nowhere come back as None.
        """
        if not ids:
            return []

        found: dict[str, NotificationRecord] = {}
        try:
            raw_values = await self.redis.mget([notification_key(i) for i in ids])
        except Exception:
            logger.warning("Failed to read cached notifications for user %s", user_id, exc_info=True)
            raw_values = [None] * len(ids)

        for notification_id, raw in zip(ids, raw_values):
            if raw is None:
                continue
            try:
                record = NotificationRecord.model_validate_json(raw)
            except ValidationError:
                logger.error("Discarding unparseable cached notification %s", notification_id)
                continue
            if record.user_id == user_id:
                found[notification_id] = record

        missing: list[UUID] = []
        for notification_id in ids:
            if notification_id in found:
                continue
            try:
                missing.append(UUID(notification_id))
            except ValueError:
                logger.warning("Ignoring malformed notification id %r in feed index", notification_id)

        if missing:
            async with durable_transaction(self.sessions, "fetch notifications") as session:
                result = await session.execute(
                    select(Notification).where(
                        Notification.id.in_(missing), Notification.user_id == user_id
                    )
                )
                loaded = [NotificationRecord.model_validate(row) for row in result.scalars().all()]
            for record in loaded:
                found[str(record.id)] = record
            await self.cache_records(loaded)

        return [found.get(notification_id) for notification_id in ids]

    async def count(self, user_id: UUID, workspace_id: UUID | None = None) -> int:
        """Durable count of every notification in a feed scope."""
        conditions = [Notification.user_id == user_id]
        if workspace_id is not None:
            conditions.append(Notification.workspace_id == workspace_id)
        async with durable_transaction(self.sessions, "count notifications") as session:
            total = await session.scalar(select(func.count(Notification.id)).where(*conditions))
        return total or 0

    # --- Feed index ---

    async def read_index(self, user_id: UUID, workspace_id: UUID | None) -> IndexSnapshot | None:
        """Return the warmed index for a scope, or None when it is cold or unreachable."""
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.get(feed_state_key(user_id, workspace_id))
                pipe.zrevrange(feed_index_key(user_id, workspace_id), 0, -1)
                state, ids = await pipe.execute()
        except Exception:
            logger.warning("Failed to read feed index for user %s", user_id, exc_info=True)
            return None
        if state is None or not ids:
            # Redis drops empty sorted sets, so a lone state key may outlive its index
            return None
        return IndexSnapshot(ids=list(ids), complete=state == INDEX_COMPLETE)

    async def warm_index(self, user_id: UUID, workspace_id: UUID | None) -> None:
        """
        Rebuild a scope's index from the durable store and mark it warmed.

        Entries written concurrently by ``persist`` are kept (the durable
        entries are merged in, not swapped in).
        """
        conditions = [Notification.user_id == user_id]
        if workspace_id is not None:
            conditions.append(Notification.workspace_id == workspace_id)

        async with durable_transaction(self.sessions, "warm feed index") as session:
            result = await session.execute(
                select(Notification.id, Notification.created_at)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .limit(self.index_max_entries + 1)
            )
            entries = result.all()

        complete = len(entries) <= self.index_max_entries
        mapping = {str(entry.id): index_score(entry.created_at) for entry in entries[: self.index_max_entries]}
        index_key = feed_index_key(user_id, workspace_id)

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                if mapping:
                    pipe.zadd(index_key, mapping)
                pipe.zremrangebyrank(index_key, 0, -(self.index_max_entries + 1))
                pipe.expire(index_key, self.index_ttl_seconds)
                pipe.set(
                    feed_state_key(user_id, workspace_id),
                    INDEX_COMPLETE if complete else INDEX_PARTIAL,
                    ex=self.index_ttl_seconds,
                )
                await pipe.execute()
        except Exception:
            logger.warning("Failed to warm feed index for user %s", user_id, exc_info=True)

    async def drop_from_index(self, user_id: UUID, workspace_id: UUID | None, ids: list[str]) -> None:
        if not ids:
            return
        try:
            await self.redis.zrem(feed_index_key(user_id, workspace_id), *ids)
        except Exception:
            logger.warning("Failed to prune feed index for user %s", user_id, exc_info=True)

    # --- Mirror helpers ---

    async def _mirror(self, record: NotificationRecord) -> None:
        """
        Cache the record and push its id onto both feed indexes.

        An index key that is missing while its state key survives was evicted
        or expired on its own; re-creating it from this one id would leave a
        stub that still looks warmed, so the state key is dropped in the same
        transaction and the next read rebuilds the index from the durable store.
        """
        member = str(record.id)
        score = index_score(record.created_at)
        index_keys = [
            feed_index_key(record.user_id, record.workspace_id),
            feed_index_key(record.user_id, None),
        ]
        state_keys = [
            feed_state_key(record.user_id, record.workspace_id),
            feed_state_key(record.user_id, None),
        ]
        try:
            results = None
            for _ in range(self.MIRROR_ATTEMPTS):
                try:
                    async with self.redis.pipeline(transaction=True) as pipe:
                        await pipe.watch(*index_keys)
                        cold = [
                            state_key
                            for index_key, state_key in zip(index_keys, state_keys)
                            if not await pipe.exists(index_key)
                        ]
                        pipe.multi()
                        pipe.set(notification_key(record.id), record.model_dump_json(), ex=self.record_ttl_seconds)
                        for index_key in index_keys:
                            pipe.zadd(index_key, {member: score})
                            pipe.zremrangebyrank(index_key, 0, -(self.index_max_entries + 1))
                            pipe.expire(index_key, self.index_ttl_seconds)
                        if cold:
                            pipe.delete(*cold)
                        results = await pipe.execute()
                    break
                except WatchError:
                    continue

            if results is None:
                logger.warning("Feed indexes for user %s stayed contended; marking them cold", record.user_id)
                await self.redis.delete(*state_keys)
                return

            # zremrangebyrank results sit at positions 2 and 5
            trimmed = [state_keys[i] for i, pos in enumerate((2, 5)) if results[pos]]
            if trimmed:
                async with self.redis.pipeline(transaction=False) as pipe:
                    for state_key in trimmed:
                        pipe.set(state_key, INDEX_PARTIAL, xx=True, ex=self.index_ttl_seconds)
                    await pipe.execute()
        except Exception:
            logger.warning("Failed to mirror notification %s into Redis", record.id, exc_info=True)

    async def cache_records(self, records: list[NotificationRecord]) -> None:
        if not records:
            return
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                for record in records:
                    pipe.set(notification_key(record.id), record.model_dump_json(), ex=self.record_ttl_seconds)
                await pipe.execute()
        except Exception:
            logger.warning("Failed to re-warm %d cached notifications", len(records), exc_info=True)

    async def _forget_records(self, ids: list[UUID]) -> None:
        if not ids:
            return
        try:
            await self.redis.delete(*[notification_key(i) for i in ids])
        except Exception:
            logger.warning("Failed to invalidate %d cached notifications", len(ids), exc_info=True)

    async def _unlink(self, removed: list[RemovedNotification]) -> None:
        """Drop deleted notifications from the record cache and every index holding them."""
        if not removed:
            return
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                for item in removed:
                    member = str(item.id)
                    pipe.delete(notification_key(item.id))
                    pipe.zrem(feed_index_key(item.user_id, item.workspace_id), member)
                    pipe.zrem(feed_index_key(item.user_id, None), member)
                await pipe.execute()
        except Exception:
            logger.warning("Failed to unlink %d deleted notifications from Redis", len(removed), exc_info=True)
