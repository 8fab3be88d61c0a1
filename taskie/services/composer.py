"""Turns event data into a stored, counted and dispatched notification."""

import logging
from uuid import uuid4

from taskie.schemas.notification import NotificationInput, NotificationRecord
from taskie.schemas.preferences import NotificationPreferences
from taskie.services.counters import UnreadCounterManager
from taskie.services.dispatch import ChannelDispatcher
from taskie.services.durable import utcnow
from taskie.services.preferences import PreferenceStore
from taskie.services.store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationComposer:
    """Orchestrates preference filtering, persistence, counting and dispatch."""

    def __init__(
        self,
        preferences: PreferenceStore,
        store: NotificationStore,
        counters: UnreadCounterManager,
        dispatcher: ChannelDispatcher,
    ):
        self.preferences = preferences
        self.store = store
        self.counters = counters
        self.dispatcher = dispatcher

    async def compose(self, event: NotificationInput) -> NotificationRecord:
        """
        Compose and deliver one notification.

        Steps run strictly in order: resolve effective channels, persist,
        bump unread counters, dispatch active channels. Only persistence can
        fail the call; a notification whose channels were all disabled is
        still stored (with no channels) so it shows up in the feed.

        Raises:
            NotificationPersistenceError: the durable insert failed
        """
        preferences = await self._resolve_preferences(event)
        channels = preferences.filter_channels(event.channels, event.notification_type)
        if not channels:
            logger.info(
                "No enabled channels for notification type %s for user %s",
                event.notification_type.value,
                event.user_id,
            )

        record = await self.store.persist(
            NotificationRecord(
                id=uuid4(),
                user_id=event.user_id,
                workspace_id=event.workspace_id,
                notification_type=event.notification_type,
                title=event.title,
                message=event.message,
                data=event.data,
                channels=channels,
                is_read=False,
                created_at=utcnow(),
            )
        )

        await self.counters.increment(record.user_id, record.workspace_id, 1)

        try:
            await self.dispatcher.dispatch(record)
        except Exception:
            logger.exception("Dispatch failed for notification %s", record.id)

        return record

    async def _resolve_preferences(self, event: NotificationInput) -> NotificationPreferences:
        try:
            return await self.preferences.resolve(event.user_id, event.workspace_id)
        except Exception:
            logger.exception(
                "Preference lookup failed for user %s; using defaults", event.user_id
            )
            return NotificationPreferences.defaults(event.user_id, event.workspace_id)
