"""Error types raised by the notification subsystem.

Only durable-store failures ever reach callers. Cache, preference and
channel failures are recovered where they happen and logged.
"""


class NotificationError(Exception):
    """Base class for notification subsystem errors."""

    code = "NOTIFICATION_ERROR"


class NotificationPersistenceError(NotificationError):
    """The durable store rejected a read or write; nothing was committed."""

    code = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        message = f"Durable store failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause.__class__.__name__}"
        super().__init__(message)
