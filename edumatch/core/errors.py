"""
Domain exceptions.

Route handlers translate these into HTTP responses; services raise them and
let them propagate.
"""


class EduMatchError(Exception):
    """Base class for all application errors."""


class UnsupportedNotificationType(EduMatchError):
    """No email template is registered for a notification type."""

    def __init__(self, notification_type):
        self.notification_type = notification_type
        super().__init__(f"Unsupported notification type: {notification_type}")


class InvalidNotificationMessage(EduMatchError):
    """A queued notification payload failed validation."""


class QueueError(EduMatchError):
    """Sending to, receiving from or deleting on a queue failed."""
