"""
Tests for notification feeds:
- ordering, pagination and filters
- cache path and durable path return the same pages
"""

from uuid import uuid4

import pytest
from sqlalchemy import update

from factories import make_event
from taskie.cache import feed_index_key, feed_state_key, notification_key
from taskie.models.notification import Notification
from taskie.schemas.notification import FeedOptions, NotificationType
from taskie.services.store import index_score


async def _compose_many(service, user_id, workspace_id, count, **kwargs):
    records = []
    for i in range(count):
        records.append(await service.create_and_send(make_event(user_id, workspace_id, title=f"Task {i}", **kwargs)))
    return records


def _ids(page):
    return [n.id for n in page.notifications]


class TestFeedOrdering:
    """Ordering, pagination and filtering."""

    async def test_newest_first(self, service, user_id, workspace_id):
        records = await _compose_many(service, user_id, workspace_id, 3)

        page = await service.get_user_notifications(user_id, workspace_id)

        assert _ids(page) == [r.id for r in reversed(records)]
        assert page.total == 3
        assert page.unread_count == 3

    async def test_pagination(self, service, user_id, workspace_id):
        records = list(reversed(await _compose_many(service, user_id, workspace_id, 5)))

        first = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=1, limit=2))
        second = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=2, limit=2))
        third = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=3, limit=2))
        beyond = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=4, limit=2))

        assert _ids(first) == [r.id for r in records[0:2]]
        assert _ids(second) == [r.id for r in records[2:4]]
        assert _ids(third) == [r.id for r in records[4:5]]
        assert _ids(beyond) == []
        assert {first.total, second.total, third.total, beyond.total} == {5}

    async def test_unread_only(self, service, user_id, workspace_id):
        records = await _compose_many(service, user_id, workspace_id, 3)
        await service.mark_as_read(records[1].id, user_id)

        page = await service.get_user_notifications(user_id, workspace_id, FeedOptions(unread_only=True))

        assert _ids(page) == [records[2].id, records[0].id]
        assert page.total == 2
        assert page.unread_count == 2

    async def test_type_filter(self, service, user_id, workspace_id):
        await service.create_and_send(make_event(user_id, workspace_id))
        mention = await service.create_and_send(
            make_event(user_id, workspace_id, notification_type=NotificationType.MENTION)
        )

        page = await service.get_user_notifications(
            user_id, workspace_id, FeedOptions(types=[NotificationType.MENTION])
        )

        assert _ids(page) == [mention.id]
        assert page.total == 1

    async def test_workspace_scope_and_user_wide_feed(self, service, user_id, workspace_id):
        other_workspace = uuid4()
        mine = await service.create_and_send(make_event(user_id, workspace_id))
        other = await service.create_and_send(make_event(user_id, other_workspace))
        await service.create_and_send(make_event(uuid4(), workspace_id))

        scoped = await service.get_user_notifications(user_id, workspace_id)
        everything = await service.get_user_notifications(user_id)

        assert _ids(scoped) == [mine.id]
        assert _ids(everything) == [other.id, mine.id]
        assert everything.unread_count == 2

    async def test_empty_feed(self, service, user_id, workspace_id):
        page = await service.get_user_notifications(user_id, workspace_id)
        assert page.notifications == []
        assert page.total == 0
        assert page.unread_count == 0


class TestFeedCache:
    """Cache path behaviour and cache-miss equivalence."""

    async def test_first_read_warms_index(self, service, redis, user_id, workspace_id):
        await _compose_many(service, user_id, workspace_id, 2)
        assert await redis.get(feed_state_key(user_id, workspace_id)) is None

        await service.get_user_notifications(user_id, workspace_id)

        assert await redis.get(feed_state_key(user_id, workspace_id)) == "complete"
        assert await redis.zcard(feed_index_key(user_id, workspace_id)) == 2

    @pytest.mark.parametrize(
        "options",
        [
            FeedOptions(),
            FeedOptions(page=2, limit=2),
            FeedOptions(unread_only=True),
            FeedOptions(types=[NotificationType.MENTION]),
        ],
    )
    @pytest.mark.parametrize("scoped", [True, False])
    async def test_cache_miss_equivalence(self, service, redis, user_id, workspace_id, options, scoped):
        scope = workspace_id if scoped else None
        records = await _compose_many(service, user_id, workspace_id, 3)
        await _compose_many(service, user_id, uuid4(), 2, notification_type=NotificationType.MENTION)
        await service.mark_as_read(records[0].id, user_id)

        cold = await service.get_user_notifications(user_id, scope, options)
        warm = await service.get_user_notifications(user_id, scope, options)
        await redis.flushall()
        flushed = await service.get_user_notifications(user_id, scope, options)

        assert warm.notifications == cold.notifications
        assert flushed.notifications == cold.notifications
        assert warm.total == cold.total == flushed.total

    async def test_same_timestamp_orders_by_id(self, service, sessions, redis, user_id, workspace_id):
        """Ties on created_at are broken the same way by both paths."""
        records = await _compose_many(service, user_id, workspace_id, 3)
        created_at = records[0].created_at
        async with sessions() as session, session.begin():
            await session.execute(update(Notification).values(created_at=created_at))
        await redis.flushall()

        durable = await service.get_user_notifications(user_id, workspace_id)
        cached = await service.get_user_notifications(user_id, workspace_id)

        expected = sorted((r.id for r in records), key=lambda i: i.hex, reverse=True)
        assert _ids(durable) == expected
        assert _ids(cached) == expected

    async def test_partial_index_serves_front_pages(self, service, redis, user_id, workspace_id):
        service.store.index_max_entries = 3
        records = list(reversed(await _compose_many(service, user_id, workspace_id, 5)))

        first = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=1, limit=2))
        assert await redis.get(feed_state_key(user_id, workspace_id)) == "partial"
        assert await redis.zcard(feed_index_key(user_id, workspace_id)) == 3

        cached_first = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=1, limit=2))
        second = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=2, limit=2))
        third = await service.get_user_notifications(user_id, workspace_id, FeedOptions(page=3, limit=2))

        assert _ids(first) == _ids(cached_first) == [r.id for r in records[0:2]]
        assert _ids(second) == [r.id for r in records[2:4]]
        assert _ids(third) == [r.id for r in records[4:5]]
        assert cached_first.total == second.total == 5

    async def test_trim_on_write_marks_index_partial(self, service, redis, user_id, workspace_id):
        service.store.index_max_entries = 2
        await _compose_many(service, user_id, workspace_id, 2)
        await service.get_user_notifications(user_id, workspace_id)
        assert await redis.get(feed_state_key(user_id, workspace_id)) == "complete"

        newest = await service.create_and_send(make_event(user_id, workspace_id))

        assert await redis.get(feed_state_key(user_id, workspace_id)) == "partial"
        page = await service.get_user_notifications(user_id, workspace_id)
        assert page.total == 3
        assert _ids(page)[0] == newest.id

    async def test_ghost_ids_are_pruned(self, service, redis, user_id, workspace_id):
        """An id indexed in Redis but gone from the durable store never reaches the feed."""
        records = await _compose_many(service, user_id, workspace_id, 2)
        await service.get_user_notifications(user_id, workspace_id)

        ghost = str(uuid4())
        await redis.zadd(feed_index_key(user_id, workspace_id), {ghost: index_score(records[-1].created_at) + 1})

        page = await service.get_user_notifications(user_id, workspace_id)

        assert _ids(page) == [records[1].id, records[0].id]
        assert await redis.zscore(feed_index_key(user_id, workspace_id), ghost) is None

    async def test_read_state_is_not_stale_in_cache(self, service, redis, user_id, workspace_id):
        record = await service.create_and_send(make_event(user_id, workspace_id))
        await service.get_user_notifications(user_id, workspace_id)

        await service.mark_as_read(record.id, user_id)
        assert await redis.get(notification_key(record.id)) is None

        page = await service.get_user_notifications(user_id, workspace_id)
        assert page.notifications[0].is_read is True

    async def test_deleted_notification_leaves_indexes(self, service, redis, user_id, workspace_id):
        record = await service.create_and_send(make_event(user_id, workspace_id))
        await service.get_user_notifications(user_id, workspace_id)

        await service.delete_notification(record.id, user_id)

        assert await redis.zscore(feed_index_key(user_id, workspace_id), str(record.id)) is None
        assert await redis.zscore(feed_index_key(user_id, None), str(record.id)) is None
        page = await service.get_user_notifications(user_id, workspace_id)
        assert page.notifications == []

    async def test_feed_without_redis(self, service, redis_down, user_id, workspace_id):
        records = await _compose_many(service, user_id, workspace_id, 2)

        page = await service.get_user_notifications(user_id, workspace_id)

        assert _ids(page) == [records[1].id, records[0].id]
        assert page.unread_count == 2

    async def test_evicted_index_is_rebuilt_on_next_write(self, service, redis, user_id, workspace_id):
        """A write after the index was evicted must not leave a one-entry index marked warm."""
        records = await _compose_many(service, user_id, workspace_id, 3)
        await service.get_user_notifications(user_id, workspace_id)
        await redis.delete(feed_index_key(user_id, workspace_id))

        newest = await service.create_and_send(make_event(user_id, workspace_id))

        assert await redis.get(feed_state_key(user_id, workspace_id)) is None
        expected = [newest.id] + [r.id for r in reversed(records)]
        page = await service.get_user_notifications(user_id, workspace_id)
        cached = await service.get_user_notifications(user_id, workspace_id)
        assert _ids(page) == _ids(cached) == expected
        assert page.total == cached.total == 4
        assert await redis.zcard(feed_index_key(user_id, workspace_id)) == 4

    async def test_state_key_without_index_is_cold(self, service, redis, user_id, workspace_id):
        records = await _compose_many(service, user_id, workspace_id, 2)
        await service.get_user_notifications(user_id, workspace_id)
        await redis.delete(feed_index_key(user_id, workspace_id))

        page = await service.get_user_notifications(user_id, workspace_id)

        assert _ids(page) == [records[1].id, records[0].id]
        assert page.total == 2
