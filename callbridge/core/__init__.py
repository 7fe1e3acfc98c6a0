"""Core call handling components.

This module provides the per-call orchestration:
- CallSession: Per-call state, transcript and urgency flag
- SessionRegistry: Live sessions keyed by call_id
- TranscriptAccumulator: Incremental transcript persistence
- CallFinalizer: Summary, terminal record fields and cleanup
- CallBridge: Relays audio between the gateway and the realtime link
"""

from callbridge.core.bridge import CallBridge, LinkFactory
from callbridge.core.exceptions import (
    CallCapacityError,
    CallSessionError,
    DuplicateSessionError,
    InvalidSessionTransition,
)
from callbridge.core.finalizer import CallFinalizer
from callbridge.core.registry import SessionRegistry
from callbridge.core.session import CallSession, SessionState, Speaker, TranscriptTurn
from callbridge.core.transcript import TranscriptAccumulator
from callbridge.core.urgency import KeywordUrgencyDetector, UrgencyDetector

__all__ = [
    # Session management
    "CallSession",
    "SessionState",
    "Speaker",
    "TranscriptTurn",
    "SessionRegistry",
    # Call handling
    "CallBridge",
    "LinkFactory",
    "TranscriptAccumulator",
    "CallFinalizer",
    "UrgencyDetector",
    "KeywordUrgencyDetector",
    # Exceptions
    "CallSessionError",
    "InvalidSessionTransition",
    "DuplicateSessionError",
    "CallCapacityError",
]
