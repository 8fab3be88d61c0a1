"""Fail if the notification migrations are out of sync with the SQLAlchemy models.

The notification tables share a database with the rest of the platform, so
only tables declared in ``taskie.models`` are compared.
"""

from __future__ import annotations

import argparse
import asyncio

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from sqlalchemy import text

from taskie import models  # noqa: F401  # Ensure models are registered
from taskie.config import settings
from taskie.database import Base, build_engine


def _owned(obj, name, type_, reflected, compare_to) -> bool:
    if type_ == "table":
        return name in Base.metadata.tables
    table = getattr(obj, "table", None)
    return table is None or table.name in Base.metadata.tables


def _compare(connection) -> list[object]:
    context = MigrationContext.configure(
        connection,
        opts={"compare_type": True, "include_object": _owned},
    )
    return compare_metadata(context, Base.metadata)


async def check(database_url: str) -> list[object]:
    engine = build_engine(database_url)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return await conn.run_sync(_compare)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Compare notification models with the live schema")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="Database to inspect (default: DATABASE_URL)",
    )
    args = parser.parse_args()

    diffs = asyncio.run(check(args.database_url))
    if diffs:
        print(f"Detected {len(diffs)} schema differences in {', '.join(sorted(Base.metadata.tables))}:")
        for diff in diffs:
            print(diff)
        return 1

    print("No schema differences detected.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
