"""Domain event helpers that build and send notifications.

Workspace, team and task services call these after their own writes. A
notification problem must never fail the caller's operation, so every
helper logs and swallows errors.
"""

import logging
from datetime import datetime
from uuid import UUID

from taskie.schemas.notification import (
    NotificationChannel,
    NotificationInput,
    NotificationRecord,
    NotificationTemplate,
    NotificationType,
)
from taskie.services.notifications import NotificationService

logger = logging.getLogger(__name__)

EMAIL = NotificationChannel.EMAIL
IN_APP = NotificationChannel.IN_APP
PUSH = NotificationChannel.PUSH
WEBSOCKET = NotificationChannel.WEBSOCKET


class NotificationEvents:
    """Typed senders for the events the workspace backend emits."""

    def __init__(self, service: NotificationService):
        self.service = service

    async def workspace_created(
        self, workspace_id: UUID, workspace_name: str, domain: str | None, owner_id: UUID
    ) -> NotificationRecord | None:
        return await self._send_one(
            NotificationInput(
                user_id=owner_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.WORKSPACE_CREATED,
                title="Workspace Created Successfully",
                message=f'Your workspace "{workspace_name}" has been created successfully.',
                data={
                    "workspace_id": str(workspace_id),
                    "workspace_name": workspace_name,
                    "domain": domain,
                },
                channels=[EMAIL, IN_APP],
            )
        )

    async def workspace_deleted(self, workspace_id: UUID, member_ids: list[UUID]) -> None:
        await self._send_many(
            member_ids,
            workspace_id,
            NotificationTemplate(
                notification_type=NotificationType.WORKSPACE_DELETED,
                title="Workspace Deleted",
                message="A workspace you were a member of has been deleted.",
                data={"workspace_id": str(workspace_id)},
                channels=[EMAIL, IN_APP],
            ),
        )

    async def user_added_to_workspace(
        self,
        workspace_id: UUID,
        workspace_name: str,
        user_id: UUID,
        added_by_id: UUID,
        added_by_name: str,
        role: str,
    ) -> NotificationRecord | None:
        return await self._send_one(
            NotificationInput(
                user_id=user_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.USER_ADDED_TO_WORKSPACE,
                title="Added to Workspace",
                message=(
                    f'You have been added to workspace "{workspace_name}" as {role} by {added_by_name}.'
                ),
                data={
                    "workspace_id": str(workspace_id),
                    "workspace_name": workspace_name,
                    "role": role,
                    "added_by": {"id": str(added_by_id), "name": added_by_name},
                },
                channels=[EMAIL, IN_APP, WEBSOCKET],
            )
        )

    async def user_removed_from_workspace(
        self,
        workspace_id: UUID,
        workspace_name: str,
        user_id: UUID,
        removed_by_id: UUID,
        removed_by_name: str,
    ) -> NotificationRecord | None:
        return await self._send_one(
            NotificationInput(
                user_id=user_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.USER_REMOVED_FROM_WORKSPACE,
                title="Removed from Workspace",
                message=f'You have been removed from workspace "{workspace_name}" by {removed_by_name}.',
                data={
                    "workspace_id": str(workspace_id),
                    "workspace_name": workspace_name,
                    "removed_by": {"id": str(removed_by_id), "name": removed_by_name},
                },
                channels=[EMAIL, IN_APP],
            )
        )

    async def team_created(
        self,
        team_id: UUID,
        team_name: str,
        workspace_id: UUID,
        workspace_name: str,
        creator_id: UUID,
        creator_name: str,
        member_ids: list[UUID],
    ) -> None:
        await self._send_many(
            member_ids,
            workspace_id,
            NotificationTemplate(
                notification_type=NotificationType.TEAM_CREATED,
                title="New Team Created",
                message=(
                    f'Team "{team_name}" has been created in workspace "{workspace_name}" by {creator_name}.'
                ),
                data={
                    "team_id": str(team_id),
                    "team_name": team_name,
                    "workspace_id": str(workspace_id),
                    "workspace_name": workspace_name,
                    "created_by": {"id": str(creator_id), "name": creator_name},
                },
                channels=[IN_APP, WEBSOCKET],
            ),
        )

    async def task_assigned(
        self,
        task_id: UUID,
        task_title: str,
        assignee_id: UUID,
        assigner_id: UUID,
        assigner_name: str,
        workspace_id: UUID,
        workspace_name: str,
        due_date: datetime | None = None,
    ) -> NotificationRecord | None:
        due_text = f" Due: {due_date.date().isoformat()}" if due_date else ""
        return await self._send_one(
            NotificationInput(
                user_id=assignee_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.TASK_ASSIGNED,
                title="New Task Assigned",
                message=f'You have been assigned task "{task_title}" by {assigner_name}.{due_text}',
                data={
                    "task_id": str(task_id),
                    "task_title": task_title,
                    "workspace_id": str(workspace_id),
                    "workspace_name": workspace_name,
                    "assigned_by": {"id": str(assigner_id), "name": assigner_name},
                    "due_date": due_date.isoformat() if due_date else None,
                },
                channels=[EMAIL, IN_APP, WEBSOCKET],
            )
        )

    async def deadline_approaching(
        self,
        task_id: UUID,
        task_title: str,
        assignee_id: UUID,
        workspace_id: UUID,
        workspace_name: str,
        due_date: datetime,
        hours_remaining: int,
    ) -> NotificationRecord | None:
        return await self._send_one(
            NotificationInput(
                user_id=assignee_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.DEADLINE_APPROACHING,
                title="Deadline Approaching",
                message=(
                    f'Task "{task_title}" is due in {hours_remaining} hours '
                    f"({due_date.strftime('%Y-%m-%d %H:%M %Z').strip()})."
                ),
                data={
                    "task_id": str(task_id),
                    "task_title": task_title,
                    "workspace_id": str(workspace_id),
                    "workspace_name": workspace_name,
                    "due_date": due_date.isoformat(),
                    "hours_remaining": hours_remaining,
                },
                channels=[EMAIL, IN_APP, PUSH],
            )
        )

    async def _send_one(self, notification: NotificationInput) -> NotificationRecord | None:
        try:
            record = await self.service.create_and_send(notification)
        except Exception:
            logger.exception(
                "Error sending %s notification to user %s",
                notification.notification_type.value,
                notification.user_id,
            )
            return None
        logger.info(
            "%s notification sent to user %s", notification.notification_type.value, notification.user_id
        )
        return record

    async def _send_many(
        self, user_ids: list[UUID], workspace_id: UUID, template: NotificationTemplate
    ) -> None:
        try:
            await self.service.send_bulk_notification(user_ids, workspace_id, template)
        except Exception:
            logger.exception("Error sending %s notifications", template.notification_type.value)
