"""Notification preference schemas and the channel filtering rule."""

from uuid import UUID

from pydantic import BaseModel, Field

from taskie.schemas.notification import NotificationChannel, NotificationType, unique_channels

# Master switch attribute gating each channel. WEBSOCKET rides on the in-app switch.
MASTER_SWITCHES: dict[NotificationChannel, str] = {
    NotificationChannel.EMAIL: "email_enabled",
    NotificationChannel.PUSH: "push_enabled",
    NotificationChannel.IN_APP: "in_app_enabled",
    NotificationChannel.WEBSOCKET: "in_app_enabled",
}

ChannelOverrides = dict[NotificationType, list[NotificationChannel]]


class NotificationPreferences(BaseModel):
    """Effective channel preferences for one user in one workspace."""

    user_id: UUID
    workspace_id: UUID
    email_enabled: bool = True
    push_enabled: bool = True
    in_app_enabled: bool = True
    channel_overrides: ChannelOverrides = Field(default_factory=dict)

    @classmethod
    def defaults(cls, user_id: UUID, workspace_id: UUID) -> "NotificationPreferences":
        """Preferences used when the user never configured any."""
        return cls(user_id=user_id, workspace_id=workspace_id)

    def is_enabled(self, channel: NotificationChannel, notification_type: NotificationType) -> bool:
        if not getattr(self, MASTER_SWITCHES[channel]):
            return False
        allowed = self.channel_overrides.get(notification_type)
        return allowed is None or channel in allowed

    def filter_channels(
        self,
        requested: list[NotificationChannel],
        notification_type: NotificationType,
    ) -> list[NotificationChannel]:
        """Requested channels that these preferences allow, in request order."""
        return [
            channel
            for channel in unique_channels(requested)
            if self.is_enabled(channel, notification_type)
        ]


class NotificationPreferencesUpdate(BaseModel):
    """
    Partial preference update.

    Omitted switches keep their stored value. Overrides are merged per type;
    mapping a type to null removes its override.
    """

    email_enabled: bool | None = None
    push_enabled: bool | None = None
    in_app_enabled: bool | None = None
    channel_overrides: dict[NotificationType, list[NotificationChannel] | None] | None = None

    def apply_to(self, current: NotificationPreferences) -> NotificationPreferences:
        merged = current.model_copy(deep=True)
        for field in ("email_enabled", "push_enabled", "in_app_enabled"):
            value = getattr(self, field)
            if value is not None:
                setattr(merged, field, value)
        if self.channel_overrides is not None:
            for notification_type, channels in self.channel_overrides.items():
                if channels is None:
                    merged.channel_overrides.pop(notification_type, None)
                else:
                    merged.channel_overrides[notification_type] = unique_channels(channels)
        return merged
