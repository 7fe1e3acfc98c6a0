"""Call session state.

A CallSession binds one gateway media stream to one realtime link for
the lifetime of a phone call. It owns the transcript and urgency flag;
I/O lives in the bridge, the accumulator and the finalizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from typing import Any

from callbridge.core.exceptions import InvalidSessionTransition


class SessionState(Enum):
    """Lifecycle of a call session."""

    OPENING = auto()  # Stream started, realtime link not yet ready
    ACTIVE = auto()  # Audio flowing both ways, transcript accumulating
    CLOSING = auto()  # Stop/disconnect/link loss seen, finalization running
    CLOSED = auto()  # Finalized and removed from the registry


ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.OPENING: frozenset({SessionState.ACTIVE, SessionState.CLOSING}),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class Speaker(str, Enum):
    """Who spoke a transcript turn."""

    CALLER = "Caller"
    AI = "AI"


@dataclass(frozen=True, slots=True)
class TranscriptTurn:
    """One completed utterance."""

    speaker: Speaker
    text: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, str]:
        """Serialized form stored on the call record."""
        return {
            "speaker": self.speaker.value,
            "text": self.text,
            "timestamp": self.occurred_at.isoformat(),
        }


@dataclass
class CallSession:
    """Manages state for a single phone call.

    Created on stream start, finalized exactly once on stream end.
    """

    call_id: str
    caller_number: str
    callee_number: str
    media_stream_id: str = ""
    tenant_id: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    record_ref: str | None = None

    state: SessionState = field(default=SessionState.OPENING, init=False)
    is_urgent: bool = field(default=False, init=False)
    _transcript: list[TranscriptTurn] = field(default_factory=list, init=False, repr=False)
    _finalizing: bool = field(default=False, init=False, repr=False)

    def transition_to(self, new_state: SessionState) -> None:
        """Move to a new lifecycle state.

        Raises:
            InvalidSessionTransition: If the move is not allowed
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidSessionTransition(
                f"Call {self.call_id}: cannot go from {self.state.name} to {new_state.name}"
            )
        self.state = new_state

    def add_turn(self, speaker: Speaker, text: str) -> TranscriptTurn:
        """Append a completed turn to the transcript."""
        turn = TranscriptTurn(speaker=speaker, text=text)
        self._transcript.append(turn)
        return turn

    def mark_urgent(self) -> bool:
        """Raise the urgency flag.

        Returns:
            True if the flag changed (first urgent turn).
        """
        if self.is_urgent:
            return False
        self.is_urgent = True
        return True

    def begin_finalization(self) -> bool:
        """Claim finalization. Returns False if it already started."""
        if self._finalizing:
            return False
        self._finalizing = True
        return True

    @property
    def transcript(self) -> tuple[TranscriptTurn, ...]:
        """Read-only view of the transcript in chronological order."""
        return tuple(self._transcript)

    @property
    def turn_count(self) -> int:
        return len(self._transcript)

    def transcript_payload(self) -> list[dict[str, Any]]:
        """Full transcript in its persisted form."""
        return [turn.to_dict() for turn in self._transcript]

    def render_transcript(self) -> str:
        """Transcript as ``Speaker: text`` lines for the summarizer."""
        return "\n".join(f"{turn.speaker.value}: {turn.text}" for turn in self._transcript)

    def duration_seconds(self, now: datetime | None = None) -> int:
        """Whole seconds since the stream started."""
        end = now or datetime.now(UTC)
        return max(0, int((end - self.started_at).total_seconds()))
