"""Custom exceptions for telephony services."""


class TelephonyError(Exception):
    """Base exception for telephony errors."""

    pass


class AudioFrameDecodeError(TelephonyError):
    """Raised when an inbound media frame cannot be decoded."""

    pass
