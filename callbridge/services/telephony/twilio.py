"""Twilio telephony helpers for the media stream bridge.

Handles:
- TwiML generation for connecting a call to the media WebSocket
- Media Streams frame encoding/decoding (base64 μ-law)
- Parsing of stream start metadata
"""

from __future__ import annotations

import base64
import binascii
import uuid
from dataclasses import dataclass, field
from typing import Any
from xml.etree.ElementTree import Element, SubElement, tostring

from callbridge.services.telephony.exceptions import AudioFrameDecodeError

# Audio format constants
MULAW_SAMPLE_WIDTH = 1  # μ-law is 8-bit
TELEPHONY_SAMPLE_RATE = 8000
FRAME_DURATION_MS = 20
FRAME_SIZE_BYTES = TELEPHONY_SAMPLE_RATE * FRAME_DURATION_MS // 1000 * MULAW_SAMPLE_WIDTH

UNKNOWN_NUMBER = "Unknown"


@dataclass(frozen=True, slots=True)
class TwilioCallInfo:
    """Information about an incoming Twilio call."""

    call_sid: str
    from_number: str
    to_number: str
    status: str = "ringing"

    @classmethod
    def from_webhook(cls, form_data: dict[str, str]) -> TwilioCallInfo:
        """Create from Twilio voice webhook form data."""
        return cls(
            call_sid=form_data.get("CallSid", ""),
            from_number=form_data.get("From", ""),
            to_number=form_data.get("To", ""),
            status=form_data.get("CallStatus", "ringing"),
        )


@dataclass(frozen=True, slots=True)
class StreamStart:
    """Metadata carried by a Media Streams ``start`` event."""

    call_sid: str
    stream_sid: str
    from_number: str = UNKNOWN_NUMBER
    to_number: str = UNKNOWN_NUMBER
    tenant_id: str | None = None
    media_format: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> StreamStart:
        """Parse a ``start`` event.

        Call metadata is read from the custom parameters set in the
        TwiML ``<Stream>``; the provider's own ``callSid`` is used when
        the parameter is absent.
        """
        start = message.get("start") or {}
        params = start.get("customParameters") or {}

        call_sid = params.get("callSid") or start.get("callSid") or f"call-{uuid.uuid4().hex}"
        stream_sid = message.get("streamSid") or start.get("streamSid") or ""

        return cls(
            call_sid=call_sid,
            stream_sid=stream_sid,
            from_number=params.get("from") or UNKNOWN_NUMBER,
            to_number=params.get("to") or UNKNOWN_NUMBER,
            tenant_id=params.get("tenant") or None,
            media_format=start.get("mediaFormat") or {},
        )


# =============================================================================
# Media Frame Codec
# =============================================================================


def decode_inbound(frame: dict[str, Any]) -> bytes:
    """Extract raw μ-law audio from a ``media`` event.

    Args:
        frame: Parsed Media Streams ``media`` message

    Returns:
        Raw audio bytes (empty for an empty payload)

    Raises:
        AudioFrameDecodeError: If the payload is missing or not valid base64
    """
    media = frame.get("media")
    if not isinstance(media, dict):
        raise AudioFrameDecodeError("media frame has no media object")

    payload = media.get("payload")
    if not isinstance(payload, str):
        raise AudioFrameDecodeError("media frame has no payload")

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioFrameDecodeError(f"invalid base64 payload: {e}") from e


def encode_outbound(chunk: bytes, stream_sid: str) -> dict[str, Any]:
    """Build a ``media`` event carrying raw μ-law audio to the caller."""
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {
            "payload": base64.b64encode(chunk).decode("ascii"),
        },
    }


def clear_frame(stream_sid: str) -> dict[str, Any]:
    """Build a ``clear`` event that flushes audio buffered at the provider."""
    return {
        "event": "clear",
        "streamSid": stream_sid,
    }


# =============================================================================
# TwiML
# =============================================================================


class TwilioService:
    """TwiML generation for the voice webhook."""

    def generate_stream_xml(
        self,
        websocket_url: str,
        *,
        parameters: dict[str, str] | None = None,
        say: str | None = None,
        voice: str = "Polly.Matthew",
    ) -> str:
        """Generate TwiML that connects the call to a bidirectional media stream.

        Args:
            websocket_url: wss:// URL of the media stream endpoint
            parameters: Custom parameters delivered in the ``start`` event
            say: Optional message spoken before the stream connects
            voice: Voice used for the spoken message

        Returns:
            TwiML document as a string
        """
        response = Element("Response")

        if say:
            say_el = SubElement(response, "Say")
            say_el.set("voice", voice)
            say_el.text = say

        connect = SubElement(response, "Connect")
        stream = SubElement(connect, "Stream")
        stream.set("url", websocket_url)

        for name, value in (parameters or {}).items():
            param = SubElement(stream, "Parameter")
            param.set("name", name)
            param.set("value", value)

        xml_str = tostring(response, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>{xml_str}'

    def generate_hangup_xml(self, reason: str = "", *, voice: str = "Polly.Matthew") -> str:
        """Generate TwiML that optionally speaks a reason and hangs up."""
        response = Element("Response")

        if reason:
            say_el = SubElement(response, "Say")
            say_el.set("voice", voice)
            say_el.text = reason

        SubElement(response, "Hangup")

        xml_str = tostring(response, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>{xml_str}'
