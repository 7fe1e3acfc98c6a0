"""Transcript accumulation with incremental persistence.

Every completed turn is appended to the session and the whole transcript
is written to the call record in the background. One writer task per
session serializes writes and always persists the latest snapshot, so
the stored transcript only ever grows.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any

from callbridge.core.session import CallSession, Speaker, TranscriptTurn
from callbridge.db.repositories.calls import CallRecordStore
from callbridge.logging_config import bind_call, get_logger
from callbridge.observability.metrics import TRANSCRIPT_PERSIST_FAILURES

logger: Any = get_logger(__name__)


class TranscriptAccumulator:
    """Appends turns to a session and persists them incrementally.

    Usage:
        accumulator = TranscriptAccumulator(session, store)
        accumulator.append(Speaker.CALLER, "Hello")
        ...
        await accumulator.close()
    """

    def __init__(
        self,
        session: CallSession,
        store: CallRecordStore,
        *,
        attempts: int = 2,
        retry_delay: float = 0.25,
    ) -> None:
        self._session = session
        self._store = store
        self._attempts = max(1, attempts)
        self._retry_delay = retry_delay
        self._log = bind_call(logger, session.call_id, session.media_stream_id)

        self._pending = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._writer: asyncio.Task[None] | None = None
        self._persisted_turns = 0
        self._closed = False

    @property
    def persisted_turns(self) -> int:
        """Number of turns in the last successfully written snapshot."""
        return self._persisted_turns

    def append(self, speaker: Speaker, text: str) -> TranscriptTurn:
        """Append a turn and schedule a background write."""
        turn = self._session.add_turn(speaker, text)

        if not self._closed:
            self._pending.set()
            if self._writer is None:
                self._writer = asyncio.create_task(
                    self._write_loop(),
                    name=f"transcript-writer-{self._session.call_id}",
                )
        return turn

    async def drain(self) -> None:
        """Write the latest snapshot now if it is not yet persisted."""
        await self._write_latest()

    async def close(self) -> None:
        """Stop the writer and flush whatever is left."""
        if self._closed:
            return
        self._closed = True

        if self._writer is not None:
            self._writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer
            self._writer = None

        await self._write_latest()

    async def _write_loop(self) -> None:
        while True:
            await self._pending.wait()
            self._pending.clear()
            await self._write_latest()

    async def _write_latest(self) -> None:
        record_ref = self._session.record_ref
        if record_ref is None:
            return

        async with self._write_lock:
            snapshot = self._session.transcript_payload()
            if len(snapshot) <= self._persisted_turns:
                return

            for attempt in range(1, self._attempts + 1):
                try:
                    await self._store.update_record(record_ref, {"transcript": snapshot})
                except Exception as e:
                    if attempt < self._attempts:
                        self._log.warning(
                            f"Transcript write failed (attempt {attempt}/{self._attempts}): {e}"
                        )
                        await asyncio.sleep(self._retry_delay)
                        continue

                    TRANSCRIPT_PERSIST_FAILURES.inc()
                    self._log.error(f"Giving up on transcript write ({len(snapshot)} turns): {e}")
                    return

                self._persisted_turns = len(snapshot)
                self._log.debug(f"Persisted {len(snapshot)} transcript turns")
                return
