"""Durable-store transaction helper shared by the notification services."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskie.errors import NotificationPersistenceError

SessionFactory = async_sessionmaker[AsyncSession]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def durable_transaction(
    sessions: SessionFactory, operation: str
) -> AsyncIterator[AsyncSession]:
    """
    Open a session and a transaction that commits on exit.

    Any SQLAlchemy error is re-raised as NotificationPersistenceError so
    callers only ever deal with one durable failure type.
    """
    try:
        async with sessions() as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise NotificationPersistenceError(operation, exc) from exc
