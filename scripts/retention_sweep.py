"""Delete read notifications past the retention window.

Meant to run from cron. Unread notifications are kept regardless of age.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from taskie.cache import build_redis
from taskie.config import settings
from taskie.database import AsyncSessionLocal, engine
from taskie.logging_config import configure_logging
from taskie.services.notifications import NotificationService
from taskie.services.senders import SqlUserDirectory, TransportChannelSender

logger = logging.getLogger("taskie.retention")


async def sweep(days: int) -> int:
    redis = build_redis()
    try:
        service = NotificationService(
            AsyncSessionLocal,
            redis,
            TransportChannelSender(),
            SqlUserDirectory(AsyncSessionLocal),
        )
        return await service.delete_old_notifications(days)
    finally:
        await redis.aclose()
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete read notifications older than N days")
    parser.add_argument(
        "--days",
        type=int,
        default=settings.retention_days,
        help=f"Retention window in days (default: {settings.retention_days})",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run",
    )
    args = parser.parse_args()

    if args.days < 0:
        parser.error("--days must be zero or positive")

    configure_logging(args.log_level)
    deleted = asyncio.run(sweep(args.days))
    logger.info("Retention sweep finished: %d notifications deleted", deleted)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
