"""Notification model, the durable record of one composed notification."""

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Column,
    Index,
    String,
    Text,
    Uuid,
    false,
)

from taskie.database import Base, JSONPayload


class Notification(Base):
    """Durable notification record (source of truth for the cache mirror)."""

    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    workspace_id = Column(Uuid(as_uuid=True), nullable=False)
    notification_type = Column(String(64), nullable=False)  # NotificationType value
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSONPayload, nullable=False, default=dict)
    channels = Column(JSONPayload, nullable=False, default=list)  # channels actually dispatched
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    read_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "(is_read AND read_at IS NOT NULL) OR (NOT is_read AND read_at IS NULL)",
            name="ck_notifications_read_at_matches_flag",
        ),
        Index("idx_notifications_user_created", user_id, created_at.desc(), id.desc()),
        Index(
            "idx_notifications_user_workspace_created",
            user_id,
            workspace_id,
            created_at.desc(),
            id.desc(),
        ),
        Index(
            "idx_notifications_unread",
            user_id,
            workspace_id,
            postgresql_where=is_read.is_(False),
        ),
        Index("idx_notifications_retention", created_at, postgresql_where=is_read.is_(True)),
    )
