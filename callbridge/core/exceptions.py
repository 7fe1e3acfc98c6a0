"""Exceptions raised by call sessions and the session registry."""


class CallSessionError(Exception):
    """Base exception for call session errors."""

    pass


class InvalidSessionTransition(CallSessionError):
    """Raised when a session is moved to a state it cannot reach."""

    pass


class DuplicateSessionError(CallSessionError):
    """Raised when a stream start arrives for a call that is already live."""

    pass


class CallCapacityError(CallSessionError):
    """Raised when system is at maximum call capacity."""

    pass
