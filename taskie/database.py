"""Database engine, session factory and migrations."""

import asyncio
from pathlib import Path

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from alembic.command import downgrade, upgrade
from alembic.config import Config
from taskie.config import settings

# JSONB on Postgres, plain JSON on SQLite (local runs and tests)
JSONPayload = JSONB().with_variant(JSON(), "sqlite")

Base = declarative_base()


def build_engine(db_url: str | None = None, **kwargs) -> AsyncEngine:
    """Create an async engine for the given URL (defaults to settings)."""
    kwargs.setdefault("echo", False)
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(db_url or settings.database_url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


def _alembic_config(db_url: str | None = None) -> Config:
    root = Path(__file__).resolve().parents[1]
    config = Config(str(root / "alembic.ini"))
    config.set_main_option("script_location", str(root / "alembic"))
    if db_url:
        config.set_main_option("sqlalchemy.url", db_url)
    return config


def run_migrations(revision: str = "head", db_url: str | None = None) -> None:
    """Run Alembic migrations to a target revision."""
    config = _alembic_config(db_url)
    if revision == "base":
        downgrade(config, revision)
    else:
        upgrade(config, revision)


async def init_db(db_url: str | None = None) -> None:
    """Bring the notification schema up to date without blocking the event loop."""
    await asyncio.to_thread(run_migrations, "head", db_url or settings.database_url)
