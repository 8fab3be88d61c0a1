"""HTML bodies for notification emails."""

from enum import Enum
from html import escape

from taskie.schemas.notification import NotificationRecord, NotificationType


class Severity(str, Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


SEVERITY_COLORS = {
    Severity.SUCCESS: "#22c55e",
    Severity.WARNING: "#f59e0b",
    Severity.ERROR: "#ef4444",
    Severity.INFO: "#3b82f6",
}

_SEVERITY_BY_TYPE = {
    NotificationType.TASK_COMPLETED: Severity.SUCCESS,
    NotificationType.TEAM_CREATED: Severity.SUCCESS,
    NotificationType.WORKSPACE_CREATED: Severity.SUCCESS,
    NotificationType.DEADLINE_APPROACHING: Severity.WARNING,
    NotificationType.WORKSPACE_DELETED: Severity.ERROR,
}


def severity_for(notification_type: NotificationType) -> Severity:
    return _SEVERITY_BY_TYPE.get(notification_type, Severity.INFO)


def render_notification_email(notification: NotificationRecord) -> str:
    """Render the HTML body for a notification email."""
    color = SEVERITY_COLORS[severity_for(notification.notification_type)]
    title = escape(notification.title)
    message = escape(notification.message)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; border-left: 4px solid {color};">
    <h2 style="color: #2c3e50; margin-top: 0;">{title}</h2>
    <p style="color: #4b5563; line-height: 1.6;">{message}</p>
  </div>
  <p style="color: #6b7280; font-size: 14px; margin-top: 20px;">
    This is an automated notification from Taskie. If you believe you received this in error, please contact support.
  </p>
  <p style="color: #6b7280; font-size: 14px;">Thanks,<br>The Taskie Team</p>
</div>
""".strip()
