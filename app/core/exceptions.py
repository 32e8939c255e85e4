class NotificationError(Exception):
    """Base class for failures inside the notification core.

    These never leave the public service/engine entry points; they are turned
    into failed :class:`~app.schemas.response.ServiceResult` values there.
    """
    code = "notification_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NotificationError):
    """A required notification field is missing or a value is not allowed."""
    code = "validation_error"


class UnknownEventError(NotificationError):
    """No handler or template exists for the requested event type."""
    code = "unknown_event"


class PersistenceError(NotificationError):
    """The notification store rejected a read or write."""
    code = "persistence_error"


class NotFoundError(NotificationError):
    code = "not_found"
