"""Realtime speech AI services (OpenAI Realtime)."""

from callbridge.services.realtime.exceptions import (
    RealtimeConnectionError,
    RealtimeLinkError,
    RealtimeProtocolError,
)
from callbridge.services.realtime.openai_realtime import (
    OpenAIRealtimeLink,
    build_greeting_request,
    build_session_update,
)
from callbridge.services.realtime.protocol import (
    RealtimeEvent,
    RealtimeEventKind,
    RealtimeLink,
    parse_event,
)

__all__ = [
    # Protocol and types
    "RealtimeLink",
    "RealtimeEvent",
    "RealtimeEventKind",
    "parse_event",
    # Implementation
    "OpenAIRealtimeLink",
    "build_session_update",
    "build_greeting_request",
    # Exceptions
    "RealtimeLinkError",
    "RealtimeConnectionError",
    "RealtimeProtocolError",
]
