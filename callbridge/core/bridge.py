"""Per-call orchestration between the gateway stream and the realtime link.

One CallBridge runs per gateway WebSocket connection. It waits for the
stream ``start`` event, registers the session, opens the realtime link
and relays audio both ways until the stream stops, the caller hangs up
or the link drops. Finalization always runs on the way out.

Relay tasks:
- gateway reader: caller audio frames into the link
- link dispatcher: AI audio, transcripts and barge-in from the link
- gateway writer: AI audio frames back to the caller
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from callbridge.config import ConnectionConfig, Settings, resolve_credentials
from callbridge.core.exceptions import CallCapacityError, DuplicateSessionError
from callbridge.core.finalizer import CallFinalizer
from callbridge.core.registry import SessionRegistry
from callbridge.core.session import CallSession, SessionState, Speaker
from callbridge.core.transcript import TranscriptAccumulator
from callbridge.core.urgency import UrgencyDetector
from callbridge.db.models import CallStatus
from callbridge.db.repositories.calls import CallRecordStore
from callbridge.logging_config import bind_call, get_logger, mask_phone
from callbridge.observability.metrics import (
    FRAME_DECODE_ERRORS,
    LINK_OPEN_FAILURES,
    REGISTRY_CONFLICTS,
    record_dropped_audio,
)
from callbridge.services.audio_buffer import AudioChunkQueue
from callbridge.services.realtime import (
    RealtimeEvent,
    RealtimeEventKind,
    RealtimeLink,
    RealtimeLinkError,
)
from callbridge.services.telephony import (
    AudioFrameDecodeError,
    StreamStart,
    clear_frame,
    decode_inbound,
    encode_outbound,
)

logger: Any = get_logger(__name__)

LinkFactory = Callable[[ConnectionConfig], RealtimeLink]


class CallBridge:
    """Bridges one gateway media stream to one realtime link."""

    def __init__(
        self,
        websocket: WebSocket,
        *,
        settings: Settings,
        registry: SessionRegistry,
        store: CallRecordStore,
        link_factory: LinkFactory,
        finalizer: CallFinalizer,
        urgency_detector: UrgencyDetector,
    ) -> None:
        self._websocket = websocket
        self._settings = settings
        self._registry = registry
        self._store = store
        self._link_factory = link_factory
        self._finalizer = finalizer
        self._urgency_detector = urgency_detector

        self.session: CallSession | None = None
        self._link: RealtimeLink | None = None
        self._accumulator: TranscriptAccumulator | None = None
        self._outbound = AudioChunkQueue(max_size=settings.gateway_audio_queue_size)
        self._send_lock = asyncio.Lock()
        self._status = CallStatus.failed
        self._log: Any = logger

    async def run(self) -> None:
        """Handle the connection until the call ends."""
        start = await self._wait_for_start()
        if start is None:
            await self._close_gateway()
            return

        session = CallSession(
            call_id=start.call_sid,
            caller_number=start.from_number,
            callee_number=start.to_number,
            media_stream_id=start.stream_sid,
            tenant_id=start.tenant_id or self._settings.default_tenant,
        )

        try:
            await self._registry.register(session, asyncio.current_task())
        except DuplicateSessionError as e:
            REGISTRY_CONFLICTS.inc()
            logger.warning(f"Rejecting duplicate stream {start.stream_sid}: {e}")
            await self._close_gateway()
            return
        except CallCapacityError as e:
            logger.warning(f"Rejecting stream {start.stream_sid}: {e}")
            await self._close_gateway()
            return

        self.session = session
        self._log = bind_call(logger, session.call_id, session.media_stream_id)
        self._log.info(
            f"Stream started from {mask_phone(session.caller_number)} "
            f"(tenant: {session.tenant_id or 'default'})"
        )

        try:
            await self._run_session(session)
        finally:
            await self._finalizer.finalize(
                session,
                self._link,
                status=self._status,
                accumulator=self._accumulator,
            )
            await self._close_gateway()

    async def _run_session(self, session: CallSession) -> None:
        try:
            session.record_ref = await self._store.create_record(
                session.call_id,
                session.caller_number,
                session.callee_number,
                tenant_id=session.tenant_id,
                media_stream_id=session.media_stream_id,
            )
        except Exception as e:
            self._log.error(f"Failed to create call record: {e}")
            return

        self._accumulator = TranscriptAccumulator(
            session,
            self._store,
            attempts=self._settings.transcript_persist_attempts,
            retry_delay=self._settings.transcript_persist_retry_delay,
        )

        config = resolve_credentials(session.tenant_id, self._settings)
        self._link = self._link_factory(config)

        if not await self._open_link(session):
            return

        session.transition_to(SessionState.ACTIVE)
        self._status = CallStatus.completed
        await self._relay(session)

    async def _open_link(self, session: CallSession) -> bool:
        """Open the realtime link while watching the gateway.

        Returns True once the link is ready. A caller who hangs up
        before then cancels the open and ends the call as completed.
        """
        assert self._link is not None
        opening = asyncio.create_task(
            asyncio.wait_for(
                self._link.open(session),
                timeout=self._settings.realtime_open_timeout,
            ),
            name=f"link-open-{session.call_id}",
        )
        watcher = asyncio.create_task(
            self._watch_gateway_while_opening(),
            name=f"gateway-watch-{session.call_id}",
        )

        try:
            done, _ = await asyncio.wait({opening, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not opening.done():
                opening.cancel()
            await asyncio.gather(opening, watcher, return_exceptions=True)

        if watcher in done:
            if watcher.exception() is not None:
                self._log.error(f"Gateway watch failed: {watcher.exception()!r}")
            else:
                self._log.info("Caller left while the realtime link was opening")
                self._status = CallStatus.completed
            return False

        try:
            opening.result()
        except TimeoutError:
            LINK_OPEN_FAILURES.inc()
            self._log.error(
                f"Realtime link not ready within {self._settings.realtime_open_timeout}s"
            )
            return False
        except RealtimeLinkError as e:
            LINK_OPEN_FAILURES.inc()
            self._log.error(f"Realtime link failed to open: {e}")
            return False

        return True

    async def _watch_gateway_while_opening(self) -> None:
        """Return once the caller stops the stream or disconnects.

        Caller audio arriving before the link is ready is discarded.
        """
        while True:
            message = await self._receive_message()
            if message is None:
                return

            event = message.get("event")
            if event == "stop":
                return
            if event == "start":
                self._reject_duplicate_start(message)

    async def _relay(self, session: CallSession) -> None:
        tasks = [
            asyncio.create_task(self._read_gateway(session), name=f"gateway-reader-{session.call_id}"),
            asyncio.create_task(self._dispatch_link_events(session), name=f"link-dispatch-{session.call_id}"),
            asyncio.create_task(self._write_gateway(session), name=f"gateway-writer-{session.call_id}"),
        ]

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    self._log.error(
                        f"Relay task {task.get_name()} failed: {task.exception()!r}"
                    )
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Gateway side
    # =========================================================================

    async def _receive_message(self) -> dict[str, Any] | None:
        """Next JSON message from the gateway, None once it disconnects."""
        while True:
            try:
                raw = await self._websocket.receive_text()
            except WebSocketDisconnect:
                return None

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                self._log.warning("Invalid JSON received from gateway")
                continue

            if isinstance(message, dict):
                return message
            self._log.warning(f"Unexpected gateway message: {raw[:100]}")

    async def _wait_for_start(self) -> StreamStart | None:
        while True:
            message = await self._receive_message()
            if message is None:
                self._log.info("Gateway disconnected before stream start")
                return None

            event = message.get("event")
            if event == "start":
                return StreamStart.from_message(message)
            if event == "stop":
                self._log.info("Stream stopped before it started")
                return None
            if event == "connected":
                self._log.debug(f"Gateway connected (protocol {message.get('protocol', '?')})")
                continue

            self._log.debug(f"Ignoring '{event}' event before stream start")

    async def _read_gateway(self, session: CallSession) -> None:
        assert self._link is not None
        while True:
            message = await self._receive_message()
            if message is None:
                self._log.info("Gateway disconnected")
                return

            event = message.get("event")
            if event == "media":
                try:
                    chunk = decode_inbound(message)
                except AudioFrameDecodeError as e:
                    FRAME_DECODE_ERRORS.inc()
                    self._log.warning(f"Dropping bad media frame: {e}")
                    continue

                if chunk:
                    self._link.send_caller_audio(chunk)

            elif event == "stop":
                self._log.info("Stream stopped")
                return

            elif event == "mark":
                self._log.debug(f"Mark {message.get('mark', {}).get('name')}")

            elif event == "start":
                self._reject_duplicate_start(message)

    def _reject_duplicate_start(self, message: dict[str, Any]) -> None:
        """A second ``start`` on a live stream is logged and ignored."""
        REGISTRY_CONFLICTS.inc()
        stream_sid = message.get("streamSid") or message.get("start", {}).get("streamSid")
        self._log.warning(f"Ignoring duplicate start on live stream (got stream {stream_sid})")

    async def _write_gateway(self, session: CallSession) -> None:
        while True:
            chunk = await self._outbound.get()
            try:
                await self._send_gateway(encode_outbound(chunk, session.media_stream_id))
            except WebSocketDisconnect:
                self._log.info("Gateway closed while sending audio")
                return

    async def _send_gateway(self, message: dict[str, Any]) -> None:
        async with self._send_lock:
            await self._websocket.send_json(message)

    async def _close_gateway(self) -> None:
        if self._websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self._websocket.close()
        except RuntimeError as e:
            self._log.debug(f"Gateway already closed: {e}")

    # =========================================================================
    # Link side
    # =========================================================================

    async def _dispatch_link_events(self, session: CallSession) -> None:
        assert self._link is not None
        async for event in self._link.events():
            await self.handle_link_event(session, event)
        self._log.info("Realtime link closed")

    async def handle_link_event(self, session: CallSession, event: RealtimeEvent) -> None:
        """React to one event from the realtime link."""
        if event.kind == RealtimeEventKind.AUDIO_DELTA:
            if event.audio and not self._outbound.put(event.audio):
                record_dropped_audio("outbound")

        elif event.kind == RealtimeEventKind.SPEECH_STARTED:
            dropped = self._outbound.clear()
            self._log.debug(f"Caller barge-in, cleared {dropped} frames")
            try:
                await self._send_gateway(clear_frame(session.media_stream_id))
            except WebSocketDisconnect:
                self._log.debug("Gateway closed before clear")

        elif event.kind == RealtimeEventKind.AI_TRANSCRIPT_DONE:
            self._append_turn(Speaker.AI, event.text)

        elif event.kind == RealtimeEventKind.CALLER_TRANSCRIPT_DONE:
            if self._append_turn(Speaker.CALLER, event.text):
                await self._check_urgency(session, event.text)

        elif event.kind == RealtimeEventKind.ERROR:
            self._log.error(f"Realtime error: {event.error.get('message') or event.error}")

    def _append_turn(self, speaker: Speaker, text: str) -> bool:
        if not text.strip() or self._accumulator is None:
            return False
        self._accumulator.append(speaker, text.strip())
        return True

    async def _check_urgency(self, session: CallSession, text: str) -> None:
        if not self._urgency_detector.judge(text) or not session.mark_urgent():
            return

        self._log.warning("Call flagged urgent")
        if session.record_ref is None:
            return

        try:
            await self._store.update_record(session.record_ref, {"is_urgent": True})
        except Exception as e:
            self._log.error(f"Failed to persist urgency: {e}")
