"""Notification preference store (cache-aside over notification_preferences)."""

import logging
from uuid import UUID

from pydantic import ValidationError
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from taskie.cache import preferences_key
from taskie.config import settings
from taskie.errors import NotificationPersistenceError
from taskie.models.preference import NotificationPreference
from taskie.schemas.preferences import NotificationPreferences, NotificationPreferencesUpdate
from taskie.services.durable import SessionFactory, durable_transaction, utcnow

logger = logging.getLogger(__name__)


def _from_row(row: NotificationPreference) -> NotificationPreferences:
    return NotificationPreferences(
        user_id=row.user_id,
        workspace_id=row.workspace_id,
        email_enabled=row.email_enabled,
        push_enabled=row.push_enabled,
        in_app_enabled=row.in_app_enabled,
        channel_overrides=row.channel_overrides or {},
    )


def _overrides_json(preferences: NotificationPreferences) -> dict[str, list[str]]:
    return preferences.model_dump(mode="json")["channel_overrides"]


class PreferenceStore:
    """Reads and writes per (user, workspace) channel preferences."""

    def __init__(self, sessions: SessionFactory, redis: Redis, ttl_seconds: int | None = None):
        self.sessions = sessions
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.preferences_cache_ttl_seconds

    async def resolve(self, user_id: UUID, workspace_id: UUID) -> NotificationPreferences:
        """
        Return the preferences for a user in a workspace.

        Cache hit returns immediately. On a miss the durable row is read (a
        missing row yields the all-enabled default) and written back to the
        cache.

        Raises:
            NotificationPersistenceError: durable read failed
        """
        cached = await self._read_cache(user_id, workspace_id)
        if cached is not None:
            return cached

        async with durable_transaction(self.sessions, "resolve preferences") as session:
            row = await session.get(NotificationPreference, (user_id, workspace_id))
            preferences = (
                _from_row(row) if row is not None
                else NotificationPreferences.defaults(user_id, workspace_id)
            )

        await self._write_cache(preferences)
        return preferences

    async def upsert(
        self,
        user_id: UUID,
        workspace_id: UUID,
        update: NotificationPreferencesUpdate,
    ) -> NotificationPreferences:
        """Merge the provided fields into the stored preferences and refresh the cache."""
        # One retry covers two writers racing to insert the first row.
        for attempt in range(2):
            try:
                preferences = await self._merge(user_id, workspace_id, update)
                break
            except NotificationPersistenceError as exc:
                if attempt == 0 and isinstance(exc.cause, IntegrityError):
                    continue
                raise

        await self._write_cache(preferences)
        logger.info("Updated notification preferences for user %s in workspace %s", user_id, workspace_id)
        return preferences

    async def _merge(
        self,
        user_id: UUID,
        workspace_id: UUID,
        update: NotificationPreferencesUpdate,
    ) -> NotificationPreferences:
        async with durable_transaction(self.sessions, "upsert preferences") as session:
            result = await session.execute(
                select(NotificationPreference)
                .where(NotificationPreference.user_id == user_id)
                .where(NotificationPreference.workspace_id == workspace_id)
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            now = utcnow()

            if row is None:
                merged = update.apply_to(NotificationPreferences.defaults(user_id, workspace_id))
                session.add(
                    NotificationPreference(
                        user_id=user_id,
                        workspace_id=workspace_id,
                        email_enabled=merged.email_enabled,
                        push_enabled=merged.push_enabled,
                        in_app_enabled=merged.in_app_enabled,
                        channel_overrides=_overrides_json(merged),
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                merged = update.apply_to(_from_row(row))
                row.email_enabled = merged.email_enabled
                row.push_enabled = merged.push_enabled
                row.in_app_enabled = merged.in_app_enabled
                row.channel_overrides = _overrides_json(merged)
                row.updated_at = now
            await session.flush()
        return merged

    async def _read_cache(self, user_id: UUID, workspace_id: UUID) -> NotificationPreferences | None:
        try:
            raw = await self.redis.get(preferences_key(user_id, workspace_id))
        except Exception:
            logger.warning("Failed to read cached preferences for user %s", user_id, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return NotificationPreferences.model_validate_json(raw)
        except ValidationError:
            logger.error("Discarding unparseable cached preferences for user %s", user_id)
            return None

    async def _write_cache(self, preferences: NotificationPreferences) -> None:
        try:
            await self.redis.set(
                preferences_key(preferences.user_id, preferences.workspace_id),
                preferences.model_dump_json(),
                ex=self.ttl_seconds,
            )
        except Exception:
            logger.warning(
                "Failed to cache preferences for user %s", preferences.user_id, exc_info=True
            )
