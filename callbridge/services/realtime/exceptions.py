"""Custom exceptions for the realtime speech AI link."""


class RealtimeLinkError(Exception):
    """Base exception for realtime link errors."""

    pass


class RealtimeConnectionError(RealtimeLinkError):
    """Raised when the realtime session cannot be established."""

    pass


class RealtimeProtocolError(RealtimeLinkError):
    """Raised when a message from the service cannot be interpreted."""

    pass
