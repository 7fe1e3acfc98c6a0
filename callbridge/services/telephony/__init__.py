"""Telephony services (Twilio).

This module provides integration with Twilio Media Streams:
- TwilioService: TwiML generation
- Media frame codec for base64 μ-law audio
"""

from callbridge.services.telephony.exceptions import AudioFrameDecodeError, TelephonyError
from callbridge.services.telephony.twilio import (
    FRAME_SIZE_BYTES,
    TELEPHONY_SAMPLE_RATE,
    StreamStart,
    TwilioCallInfo,
    TwilioService,
    clear_frame,
    decode_inbound,
    encode_outbound,
)

__all__ = [
    # Service
    "TwilioService",
    # Data classes
    "TwilioCallInfo",
    "StreamStart",
    # Codec
    "decode_inbound",
    "encode_outbound",
    "clear_frame",
    # Exceptions
    "TelephonyError",
    "AudioFrameDecodeError",
    # Constants
    "FRAME_SIZE_BYTES",
    "TELEPHONY_SAMPLE_RATE",
]
