"""Read-only projection of the user directory."""

from sqlalchemy import TIMESTAMP, Column, String, Text, Uuid

from taskie.database import Base


class User(Base):
    """
    User row as replicated from the account service.

    The notification subsystem only reads it to resolve email addresses.
    """

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    email = Column(String, unique=True)
    full_name = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True))
