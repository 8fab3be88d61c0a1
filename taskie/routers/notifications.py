"""Notification feed and preference endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel

from taskie.dependencies import get_current_user_id, get_notification_service
from taskie.schemas.notification import (
    FeedOptions,
    FeedPage,
    MarkAllReadResponse,
    NotificationType,
    UnreadCountResponse,
)
from taskie.schemas.preferences import NotificationPreferences, NotificationPreferencesUpdate
from taskie.services.notifications import NotificationService

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


class MarkReadResponse(BaseModel):
    """Response for marking one notification as read."""

    id: UUID
    marked: bool


def _not_found(notification_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": {
                "code": "NOT_FOUND",
                "message": f"Notification '{notification_id}' not found",
            }
        },
    )


# --- Feed ---


@router.get(
    "/notifications",
    response_model=FeedPage,
    status_code=status.HTTP_200_OK,
)
async def list_notifications(
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
    workspace_id: UUID | None = Query(default=None, description="Limit to one workspace"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100, description="Items per page"),
    unread_only: bool = Query(default=False, description="Show only unread notifications"),
    types: list[NotificationType] | None = Query(default=None, description="Notification types to include"),
) -> FeedPage:
    """
    List notifications newest first.

    Without ``workspace_id`` the feed spans every workspace of the caller.
    """
    options = FeedOptions(page=page, limit=limit, unread_only=unread_only, types=types)
    return await service.get_user_notifications(user_id, workspace_id, options)


@router.get(
    "/notifications/unread-count",
    response_model=UnreadCountResponse,
    status_code=status.HTTP_200_OK,
)
async def get_unread_count(
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
    workspace_id: UUID | None = Query(default=None),
) -> UnreadCountResponse:
    count = await service.get_unread_count(user_id, workspace_id)
    return UnreadCountResponse(unread_count=count, workspace_id=workspace_id)


# --- Read state ---


@router.post(
    "/notifications/read-all",
    response_model=MarkAllReadResponse,
    status_code=status.HTTP_200_OK,
)
async def mark_all_notifications_read(
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
    workspace_id: UUID | None = Query(default=None),
) -> MarkAllReadResponse:
    """Mark all unread notifications as read, optionally in one workspace."""
    marked = await service.mark_all_as_read(user_id, workspace_id)
    return MarkAllReadResponse(marked_count=marked)


@router.post(
    "/notifications/{notification_id}/read",
    response_model=MarkReadResponse,
    status_code=status.HTTP_200_OK,
)
async def mark_notification_read(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> MarkReadResponse:
    """
    Mark a single notification as read.

    ``marked`` is false when it was already read.
    """
    marked = await service.mark_as_read(notification_id, user_id)
    if not marked and await service.get_notification(notification_id, user_id) is None:
        raise _not_found(notification_id)
    return MarkReadResponse(id=notification_id, marked=marked)


@router.delete(
    "/notifications/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_notification(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> Response:
    """Delete a notification."""
    if not await service.delete_notification(notification_id, user_id):
        raise _not_found(notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Preferences ---


@router.get(
    "/workspaces/{workspace_id}/notification-preferences",
    response_model=NotificationPreferences,
    status_code=status.HTTP_200_OK,
)
async def get_notification_preferences(
    workspace_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationPreferences:
    """Effective preferences; defaults when none were ever saved."""
    return await service.get_notification_preferences(user_id, workspace_id)


@router.patch(
    "/workspaces/{workspace_id}/notification-preferences",
    response_model=NotificationPreferences,
    status_code=status.HTTP_200_OK,
)
async def update_notification_preferences(
    workspace_id: UUID,
    update: NotificationPreferencesUpdate,
    user_id: UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationPreferences:
    return await service.update_notification_preferences(user_id, workspace_id, update)
