"""WebSocket handler for Twilio bidirectional media streams.

Handles the Media Streams protocol:
- Receives connected/start/media/mark/stop events from the gateway
- Sends media and clear events back to the caller
- Hands the call to a CallBridge for its whole lifetime
"""

from __future__ import annotations

from typing import Any

from fastapi import WebSocket

from callbridge.core.bridge import CallBridge
from callbridge.logging_config import get_logger

logger: Any = get_logger(__name__)


async def media_stream_endpoint(websocket: WebSocket) -> None:
    """Handle one Twilio media stream connection."""
    await websocket.accept()
    client = websocket.client.host if websocket.client else "unknown"
    logger.info(f"Media stream connected from {client}")

    state = websocket.app.state
    bridge = CallBridge(
        websocket,
        settings=state.settings,
        registry=state.registry,
        store=state.call_store,
        link_factory=state.link_factory,
        finalizer=state.finalizer,
        urgency_detector=state.urgency_detector,
    )
    await bridge.run()

    logger.info(f"Media stream closed for call {bridge.session.call_id if bridge.session else '-'}")
