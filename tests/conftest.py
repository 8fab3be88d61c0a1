"""
Shared test fixtures for the Taskie notification service tests.

Provides a throwaway SQLite database, an in-memory Redis, a recording
channel sender, the notification service and an HTTP test client.
"""

from collections.abc import AsyncGenerator
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from taskie.database import Base, build_session_factory
from taskie.dependencies import get_notification_service, get_redis
from taskie.main import app

# Import models so they're registered with Base.metadata before table creation
from taskie.models import Notification, NotificationPreference, User  # noqa: F401
from taskie.services.notifications import NotificationService
from taskie.services.senders import SqlUserDirectory


class RecordingSender:
    """ChannelSender that records sends and can be told to fail."""

    def __init__(self):
        self.emails: list[dict[str, Any]] = []
        self.pushes: list[dict[str, Any]] = []
        self.fail_email = False
        self.fail_push = False

    async def send_email(self, recipient: str, subject: str, body: str) -> None:
        if self.fail_email:
            raise ConnectionError("SMTP server unreachable")
        self.emails.append({"recipient": recipient, "subject": subject, "body": body})

    async def send_push(self, user_id: UUID, title: str, message: str, data: dict[str, Any]) -> None:
        if self.fail_push:
            raise ConnectionError("Push gateway unreachable")
        self.pushes.append({"user_id": user_id, "title": title, "message": message, "data": data})


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite engine, one database per test.

    NullPool gives every session its own connection, like a real pool would.
    """
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}",
        poolclass=NullPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


# --- Cache Fixtures ---


@pytest.fixture
def redis_server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def redis(redis_server: FakeServer) -> AsyncGenerator[FakeRedis, None]:
    client = FakeRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


class UnreachableRedis:
    """Redis client whose every command fails as if the server were down."""

    def __getattr__(self, name: str):
        def refuse(*args, **kwargs):
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

        return refuse


@pytest.fixture
def redis_down(service: NotificationService, monkeypatch) -> UnreachableRedis:
    """Cut the service off from Redis; every cache call raises ConnectionError."""
    unreachable = UnreachableRedis()
    for component in (service.preferences, service.store, service.counters):
        monkeypatch.setattr(component, "redis", unreachable)
    return unreachable


# --- Service Fixtures ---


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def service(sessions, redis, sender: RecordingSender) -> NotificationService:
    return NotificationService(sessions, redis, sender, SqlUserDirectory(sessions))


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def workspace_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def test_user(sessions, user_id: UUID) -> dict[str, Any]:
    """A user with an email address in the user directory."""
    async with sessions() as session, session.begin():
        session.add(User(id=user_id, email="ada@example.com", full_name="Ada Lovelace"))
    return {"user_id": user_id, "email": "ada@example.com"}


# --- HTTP Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def async_client(service: NotificationService, redis) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client configured for testing.
    Overrides the service and Redis dependencies with the test instances.
    """
    app.dependency_overrides[get_notification_service] = lambda: service
    app.dependency_overrides[get_redis] = lambda: redis

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True,
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Factory fixture for creating X-User-ID headers."""

    def _auth_headers(user_id: UUID) -> dict[str, str]:
        return {"X-User-ID": str(user_id)}

    return _auth_headers
