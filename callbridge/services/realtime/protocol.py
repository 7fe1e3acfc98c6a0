"""Realtime speech AI link protocol and event types."""

from __future__ import annotations

import base64
import binascii
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Protocol

from callbridge.services.realtime.exceptions import RealtimeProtocolError

if TYPE_CHECKING:
    from callbridge.core.session import CallSession


class RealtimeEventKind(Enum):
    """Kinds of events the bridge reacts to."""

    SESSION_READY = auto()  # session.created / session.updated
    AUDIO_DELTA = auto()  # AI speech audio chunk
    AI_TRANSCRIPT_DONE = auto()  # AI finished speaking a turn
    CALLER_TRANSCRIPT_DONE = auto()  # Caller turn transcribed
    SPEECH_STARTED = auto()  # Caller started speaking (barge-in)
    ERROR = auto()
    OTHER = auto()


# Event type names, including the GA aliases for audio events
_SESSION_READY_TYPES = frozenset({"session.created", "session.updated"})
_AUDIO_DELTA_TYPES = frozenset({"response.audio.delta", "response.output_audio.delta"})
_AI_TRANSCRIPT_TYPES = frozenset({
    "response.audio_transcript.done",
    "response.output_audio_transcript.done",
})
_CALLER_TRANSCRIPT_TYPES = frozenset({"conversation.item.input_audio_transcription.completed"})
_SPEECH_STARTED_TYPES = frozenset({"input_audio_buffer.speech_started"})


@dataclass(frozen=True, slots=True)
class RealtimeEvent:
    """One event received from the realtime service."""

    kind: RealtimeEventKind
    type: str = ""
    audio: bytes = b""
    text: str = ""
    error: dict[str, Any] = field(default_factory=dict)


def parse_event(payload: dict[str, Any]) -> RealtimeEvent:
    """Map a realtime server message onto a RealtimeEvent.

    Raises:
        RealtimeProtocolError: If an audio delta carries undecodable audio
    """
    event_type = str(payload.get("type", ""))

    if event_type in _AUDIO_DELTA_TYPES:
        delta = payload.get("delta") or ""
        try:
            audio = base64.b64decode(delta, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise RealtimeProtocolError(f"undecodable audio delta: {e}") from e
        return RealtimeEvent(kind=RealtimeEventKind.AUDIO_DELTA, type=event_type, audio=audio)

    if event_type in _AI_TRANSCRIPT_TYPES:
        return RealtimeEvent(
            kind=RealtimeEventKind.AI_TRANSCRIPT_DONE,
            type=event_type,
            text=str(payload.get("transcript") or ""),
        )

    if event_type in _CALLER_TRANSCRIPT_TYPES:
        return RealtimeEvent(
            kind=RealtimeEventKind.CALLER_TRANSCRIPT_DONE,
            type=event_type,
            text=str(payload.get("transcript") or ""),
        )

    if event_type in _SPEECH_STARTED_TYPES:
        return RealtimeEvent(kind=RealtimeEventKind.SPEECH_STARTED, type=event_type)

    if event_type in _SESSION_READY_TYPES:
        return RealtimeEvent(kind=RealtimeEventKind.SESSION_READY, type=event_type)

    if event_type == "error":
        error = payload.get("error")
        return RealtimeEvent(
            kind=RealtimeEventKind.ERROR,
            type=event_type,
            error=error if isinstance(error, dict) else {"message": str(error)},
        )

    return RealtimeEvent(kind=RealtimeEventKind.OTHER, type=event_type)


class RealtimeLink(Protocol):
    """Protocol for one call's connection to a realtime speech AI service."""

    async def open(self, session: CallSession) -> None:
        """Connect, configure the session and request the greeting turn.

        Raises:
            RealtimeConnectionError: If the session cannot be established
        """
        ...

    def send_caller_audio(self, chunk: bytes) -> bool:
        """Queue caller audio without blocking.

        Returns:
            False if an older queued chunk was dropped.
        """
        ...

    def events(self) -> AsyncIterator[RealtimeEvent]:
        """Iterate server events until the connection closes."""
        ...

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        ...
