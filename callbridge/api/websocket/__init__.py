"""WebSocket handlers for real-time audio streaming.

This module provides the Twilio Media Streams endpoint:
- media_stream_endpoint: Bridges one call to the realtime speech AI
"""

from callbridge.api.websocket.media_stream import media_stream_endpoint

__all__ = [
    "media_stream_endpoint",
]
