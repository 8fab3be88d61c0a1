"""Request dependencies for the notification endpoints."""

from uuid import UUID

from fastapi import Header, HTTPException, Request, status
from redis.asyncio import Redis

from taskie.services.notifications import NotificationService


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> UUID:
    """
    Identify the caller from the X-User-ID header.

    Authentication happens upstream at the gateway, which forwards the
    authenticated user's id.

    Raises:
        HTTPException: 401 if the header is missing or not a UUID
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "UNAUTHORIZED",
                    "message": "X-User-ID header required",
                }
            },
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "UNAUTHORIZED",
                    "message": "Invalid user id",
                }
            },
        ) from None


def get_notification_service(request: Request) -> NotificationService:
    """The service built at startup."""
    return request.app.state.notification_service


def get_redis(request: Request) -> Redis:
    return request.app.state.redis
