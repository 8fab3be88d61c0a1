"""Active channel delivery for composed notifications."""

import asyncio
import logging
from typing import Any, Protocol
from uuid import UUID

from taskie.config import settings
from taskie.schemas.notification import ACTIVE_CHANNELS, NotificationChannel, NotificationRecord
from taskie.services.email_templates import render_notification_email

logger = logging.getLogger(__name__)


class ChannelSender(Protocol):
    """Outbound transport for the channels that need an active send."""

    async def send_email(self, recipient: str, subject: str, body: str) -> None: ...

    async def send_push(
        self, user_id: UUID, title: str, message: str, data: dict[str, Any]
    ) -> None: ...


class UserDirectory(Protocol):
    """Resolves user ids to contact details."""

    async def get_email(self, user_id: UUID) -> str | None: ...


class ChannelDispatcher:
    """
    Sends a persisted notification through its EMAIL and PUSH channels.

    IN_APP and WEBSOCKET are satisfied by persistence alone. Each send is
    bounded by a timeout and its failure is logged, never raised: by the time
    dispatch runs the notification is already stored and counted.
    """

    def __init__(
        self,
        sender: ChannelSender,
        directory: UserDirectory,
        timeout_seconds: float | None = None,
    ):
        self.sender = sender
        self.directory = directory
        self.timeout_seconds = timeout_seconds or settings.dispatch_timeout_seconds

    async def dispatch(self, notification: NotificationRecord) -> dict[NotificationChannel, bool]:
        """Attempt every active channel concurrently; returns per-channel success."""
        channels = [c for c in notification.channels if c in ACTIVE_CHANNELS]
        if not channels:
            return {}
        outcomes = await asyncio.gather(*(self._attempt(c, notification) for c in channels))
        return dict(zip(channels, outcomes))

    async def _attempt(self, channel: NotificationChannel, notification: NotificationRecord) -> bool:
        try:
            if channel is NotificationChannel.EMAIL:
                send = self._send_email(notification)
            else:
                send = self._send_push(notification)
            return await asyncio.wait_for(send, timeout=self.timeout_seconds)
        except Exception:
            logger.exception(
                "%s delivery failed for notification %s (user %s)",
                channel.value,
                notification.id,
                notification.user_id,
            )
            return False

    async def _send_email(self, notification: NotificationRecord) -> bool:
        address = await self.directory.get_email(notification.user_id)
        if not address:
            logger.warning("No email found for user %s", notification.user_id)
            return False
        await self.sender.send_email(
            address,
            notification.title,
            render_notification_email(notification),
        )
        logger.info("Notification email sent to user %s: %s", notification.user_id, notification.title)
        return True

    async def _send_push(self, notification: NotificationRecord) -> bool:
        await self.sender.send_push(
            notification.user_id,
            notification.title,
            notification.message,
            {
                "notification_id": str(notification.id),
                "workspace_id": str(notification.workspace_id),
                "type": notification.notification_type.value,
                **notification.data,
            },
        )
        return True
