"""Unread notification counters cached in Redis.

Two counters exist per user: ``unread_count:{user}`` across all workspaces
and ``unread_count:{user}:{workspace}``. Both are disposable; the durable
store can rebuild them at any time.

Increments are optimistic transactions that only touch counters that
already exist, so a missing counter is never seeded from a bare delta.
Every increment bumps a per-user version key, even when the counters are
cold. Recomputes WATCH that key along with the counters they are about to
overwrite and retry when an increment lands in between, so an increment is
never silently lost.
"""

import logging
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError
from sqlalchemy import func, select

from taskie.cache import unread_count_key, unread_count_version_key
from taskie.config import settings
from taskie.models.notification import Notification
from taskie.services.durable import SessionFactory, durable_transaction

logger = logging.getLogger(__name__)


class UnreadCounterManager:
    """Maintains per-user and per-(user, workspace) unread counts."""

    def __init__(
        self,
        sessions: SessionFactory,
        redis: Redis,
        ttl_seconds: int | None = None,
        max_attempts: int | None = None,
    ):
        self.sessions = sessions
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.unread_count_ttl_seconds
        self.max_attempts = max_attempts or settings.counter_recompute_attempts

    async def increment(self, user_id: UUID, workspace_id: UUID, delta: int) -> None:
        """Adjust both cached counters by delta (negative to decrement). Never raises."""
        if delta == 0:
            return
        keys = [unread_count_key(user_id), unread_count_key(user_id, workspace_id)]
        version_key = unread_count_version_key(user_id)

        try:
            for _ in range(self.max_attempts):
                try:
                    async with self.redis.pipeline(transaction=True) as pipe:
                        await pipe.watch(*keys)
                        present = [key for key in keys if await pipe.exists(key)]
                        pipe.multi()
                        # Cold counters stay cold; the version bump still aborts an in-flight recompute
                        pipe.incr(version_key)
                        pipe.expire(version_key, self.ttl_seconds)
                        for key in present:
                            pipe.incrby(key, delta)
                        values = (await pipe.execute())[2:]
                except WatchError:
                    continue

                drifted = [key for key, value in zip(present, values) if int(value) < 0]
                if drifted:
                    logger.warning("Unread counter drifted below zero for user %s; resetting", user_id)
                    await self.redis.delete(*drifted)
                return

            logger.warning("Unread counters for user %s stayed contended; dropping them", user_id)
            await self.redis.delete(*keys)
        except RedisError:
            logger.warning("Failed to adjust unread counters for user %s", user_id, exc_info=True)

    async def get(self, user_id: UUID, workspace_id: UUID | None = None) -> int:
        """
        Return the unread count for a user, optionally within one workspace.

        A missing counter triggers a recompute of both the user-wide and the
        workspace counter from the durable store.

        Raises:
            NotificationPersistenceError: the durable recount failed
        """
        try:
            raw = await self.redis.get(unread_count_key(user_id, workspace_id))
        except RedisError:
            logger.warning("Failed to read unread counter for user %s", user_id, exc_info=True)
            raw = None

        if raw is not None:
            return max(int(raw), 0)

        user_count, workspace_count = await self.recompute(user_id, workspace_id)
        return workspace_count if workspace_id is not None else user_count

    async def recompute(
        self, user_id: UUID, workspace_id: UUID | None = None
    ) -> tuple[int, int | None]:
        """
        Recount unread notifications durably and overwrite the cached counters.

        Returns (user_count, workspace_count); workspace_count is None when no
        workspace was given.
        """
        keys = [unread_count_key(user_id)]
        if workspace_id is not None:
            keys.append(unread_count_key(user_id, workspace_id))

        for _ in range(self.max_attempts):
            try:
                async with self.redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(*keys, unread_count_version_key(user_id))
                    counts = await self._count_unread(user_id, workspace_id)
                    pipe.multi()
                    pipe.set(keys[0], counts[0], ex=self.ttl_seconds)
                    if workspace_id is not None:
                        pipe.set(keys[1], counts[1], ex=self.ttl_seconds)
                    await pipe.execute()
                return counts
            except WatchError:
                logger.debug("Unread counter for user %s changed during recompute; retrying", user_id)
                continue
            except RedisError:
                logger.warning("Failed to store recomputed counters for user %s", user_id, exc_info=True)
                break

        # Still contended or Redis is down: serve a fresh durable count uncached
        return await self._count_unread(user_id, workspace_id)

    async def reconcile(self, user_id: UUID, workspace_ids: set[UUID] | None = None) -> None:
        """Rebuild a user's counters from the durable store."""
        if not workspace_ids:
            await self.recompute(user_id)
            return
        for workspace_id in workspace_ids:
            await self.recompute(user_id, workspace_id)

    async def _count_unread(
        self, user_id: UUID, workspace_id: UUID | None
    ) -> tuple[int, int | None]:
        base = select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        async with durable_transaction(self.sessions, "count unread notifications") as session:
            user_count = await session.scalar(base) or 0
            workspace_count = None
            if workspace_id is not None:
                workspace_count = (
                    await session.scalar(base.where(Notification.workspace_id == workspace_id)) or 0
                )
        return user_count, workspace_count
