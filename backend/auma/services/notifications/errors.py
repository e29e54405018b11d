"""Notification transport exceptions."""


class NotificationTransportError(Exception):
    """A transport call to an external gateway failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TransportNotConfigured(NotificationTransportError):
    """Credentials or endpoint for a transport are missing."""
