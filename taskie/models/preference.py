"""Per (user, workspace) notification channel preferences."""

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Column,
    Uuid,
    true,
)

from taskie.database import Base, JSONPayload


class NotificationPreference(Base):
    """
    Channel switches for one user in one workspace.

    A missing row means every channel is enabled with no per-type overrides.
    """

    __tablename__ = "notification_preferences"

    user_id = Column(Uuid(as_uuid=True), primary_key=True)
    workspace_id = Column(Uuid(as_uuid=True), primary_key=True)
    email_enabled = Column(Boolean, nullable=False, default=True, server_default=true())
    push_enabled = Column(Boolean, nullable=False, default=True, server_default=true())
    in_app_enabled = Column(Boolean, nullable=False, default=True, server_default=true())
    # {"TASK_ASSIGNED": ["IN_APP"], ...}
    channel_overrides = Column(JSONPayload, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)
