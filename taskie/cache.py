"""Redis client and cache key layout."""

import logging
from uuid import UUID

from redis.asyncio import Redis

from taskie.config import settings

logger = logging.getLogger(__name__)

# Scope name of the user-wide feed index (all workspaces)
ALL_WORKSPACES = "all"


def build_redis(url: str | None = None) -> Redis:
    """Create a Redis client that returns str values."""
    return Redis.from_url(
        url or settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=10,
        socket_timeout=5,
        health_check_interval=30,
    )


async def ping(client: Redis) -> bool:
    """Return True when the cache answers, False otherwise."""
    try:
        return bool(await client.ping())
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False


def notification_key(notification_id: UUID | str) -> str:
    return f"notification:{notification_id}"


def feed_scope(workspace_id: UUID | str | None) -> str:
    return str(workspace_id) if workspace_id is not None else ALL_WORKSPACES


def feed_index_key(user_id: UUID | str, workspace_id: UUID | str | None) -> str:
    """Sorted set of notification ids for a (user, workspace) scope."""
    return f"notification_feed:{user_id}:{feed_scope(workspace_id)}"


def feed_state_key(user_id: UUID | str, workspace_id: UUID | str | None) -> str:
    """Marks a feed index as warmed from the durable store ("complete" or "partial")."""
    return f"notification_feed_state:{user_id}:{feed_scope(workspace_id)}"


def preferences_key(user_id: UUID | str, workspace_id: UUID | str) -> str:
    return f"notification_preferences:{user_id}:{workspace_id}"


def unread_count_key(user_id: UUID | str, workspace_id: UUID | str | None = None) -> str:
    if workspace_id is None:
        return f"unread_count:{user_id}"
    return f"unread_count:{user_id}:{workspace_id}"


def unread_count_version_key(user_id: UUID | str) -> str:
    """Bumped by every counter adjustment, including ones that find the counters cold."""
    return f"unread_count_version:{user_id}"
