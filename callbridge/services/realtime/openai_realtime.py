"""OpenAI Realtime API link over WebSocket."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from callbridge.config import ConnectionConfig, Settings, get_settings
from callbridge.logging_config import bind_call, get_logger
from callbridge.observability.metrics import record_dropped_audio
from callbridge.prompts import build_greeting_instructions, build_receptionist_prompt
from callbridge.services.audio_buffer import AudioChunkQueue
from callbridge.services.realtime.exceptions import (
    RealtimeConnectionError,
    RealtimeProtocolError,
)
from callbridge.services.realtime.protocol import RealtimeEvent, parse_event

if TYPE_CHECKING:
    from callbridge.core.session import CallSession

logger: Any = get_logger(__name__)

AUDIO_FORMAT = "g711_ulaw"  # Passed through unchanged from the phone network


def build_session_update(settings: Settings, instructions: str) -> dict[str, Any]:
    """Build the ``session.update`` message configuring audio and turn detection."""
    return {
        "type": "session.update",
        "session": {
            "modalities": ["text", "audio"],
            "instructions": instructions,
            "voice": settings.realtime_voice,
            "input_audio_format": AUDIO_FORMAT,
            "output_audio_format": AUDIO_FORMAT,
            "input_audio_transcription": {
                "model": settings.realtime_transcription_model,
            },
            "turn_detection": {
                "type": "server_vad",
                "threshold": settings.vad_threshold,
                "prefix_padding_ms": settings.vad_prefix_padding_ms,
                "silence_duration_ms": settings.vad_silence_duration_ms,
            },
        },
    }


def build_greeting_request(instructions: str) -> dict[str, Any]:
    """Build the ``response.create`` message for the opening AI turn."""
    return {
        "type": "response.create",
        "response": {
            "modalities": ["text", "audio"],
            "instructions": instructions,
        },
    }


class OpenAIRealtimeLink:
    """One call's connection to the OpenAI Realtime API.

    Caller audio is queued and sent by a background task so the
    gateway reader never waits on the network. Server messages are
    exposed as a single stream of RealtimeEvent for the bridge's
    dispatch loop.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        settings: Settings | None = None,
    ) -> None:
        self._config = config
        self._settings = settings or get_settings()
        self._ws: ClientConnection | None = None
        self._audio_queue = AudioChunkQueue(self._settings.caller_audio_queue_size)
        self._sender_task: asyncio.Task[None] | None = None
        self._closed = False
        self._log: Any = logger

    @property
    def is_open(self) -> bool:
        """Whether the link is connected and not yet closed."""
        return self._ws is not None and not self._closed

    async def open(self, session: CallSession) -> None:
        """Connect and configure the realtime session.

        Waits for ``session.created``, sends the session configuration,
        then requests the greeting turn.

        Raises:
            RealtimeConnectionError: If the connection or handshake fails
        """
        self._log = bind_call(logger, session.call_id, session.media_stream_id)
        timeout = self._settings.realtime_open_timeout
        headers = [
            ("Authorization", f"Bearer {self._config.api_key}"),
            ("OpenAI-Beta", "realtime=v1"),
        ]

        self._log.info(f"Connecting to realtime API ({self._config.model})")
        try:
            self._ws = await connect(
                self._config.url,
                additional_headers=headers,
                open_timeout=timeout,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            self._log.error(f"Realtime connection failed: {e}")
            raise RealtimeConnectionError(f"Failed to connect to realtime API: {e}") from e

        company_name = self._settings.company_name
        try:
            await self._await_session_created(timeout)
            await self._send(build_session_update(
                self._settings,
                build_receptionist_prompt(company_name),
            ))
            await self._send(build_greeting_request(build_greeting_instructions(company_name)))
        except (ConnectionClosed, TimeoutError, RealtimeProtocolError) as e:
            await self.close()
            raise RealtimeConnectionError(f"Realtime session setup failed: {e}") from e

        self._sender_task = asyncio.create_task(self._send_audio_loop())
        self._log.info("Realtime session ready")

    async def _await_session_created(self, timeout: float) -> None:
        assert self._ws is not None
        raw = await asyncio.wait_for(self._ws.recv(), timeout=timeout)
        try:
            event = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise RealtimeProtocolError(f"Invalid first message: {e}") from e

        event_type = event.get("type")
        if event_type == "error":
            raise RealtimeProtocolError(f"Realtime API refused session: {event.get('error')}")
        if event_type != "session.created":
            self._log.warning(f"Unexpected first realtime event: {event_type}")

    def send_caller_audio(self, chunk: bytes) -> bool:
        """Queue one caller audio chunk for the realtime API.

        Returns:
            False if the chunk was not accepted cleanly (link closed,
            or an older chunk was dropped to make room).
        """
        if self._closed:
            return False

        accepted = self._audio_queue.put(chunk)
        if not accepted:
            record_dropped_audio("inbound")
        return accepted

    async def _send_audio_loop(self) -> None:
        """Drain the caller audio queue into input_audio_buffer.append events."""
        try:
            while True:
                chunk = await self._audio_queue.get()
                await self._send({
                    "type": "input_audio_buffer.append",
                    "audio": base64.b64encode(chunk).decode("ascii"),
                })
        except ConnectionClosed:
            self._log.info("Realtime connection closed while sending audio")

    async def events(self) -> AsyncIterator[RealtimeEvent]:
        """Yield parsed server events until the connection closes."""
        if self._ws is None:
            return

        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    continue
                try:
                    payload = json.loads(message)
                except json.JSONDecodeError:
                    self._log.warning("Invalid JSON from realtime API")
                    continue

                if not isinstance(payload, dict):
                    continue

                try:
                    event = parse_event(payload)
                except RealtimeProtocolError as e:
                    self._log.warning(f"Dropping realtime event: {e}")
                    continue

                yield event

        except ConnectionClosed as e:
            self._log.warning(f"Realtime connection lost: {e}")

    async def close(self) -> None:
        """Close the realtime connection. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._sender_task is not None:
            self._sender_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sender_task
            self._sender_task = None

        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, WebSocketException) as e:
                self._log.debug(f"Error closing realtime connection: {e}")

        dropped = self._audio_queue.dropped
        if dropped:
            self._log.info(f"Dropped {dropped} caller audio chunks")
        self._log.info("Realtime link closed")

    async def _send(self, message: dict[str, Any]) -> None:
        assert self._ws is not None
        await self._ws.send(json.dumps(message))
