"""End-of-call finalization.

Runs exactly once per session, on every exit path: closes the realtime
link, flushes the transcript, summarizes completed calls, persists the
terminal fields and releases the registry entry.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import Any

from callbridge.core.registry import SessionRegistry
from callbridge.core.session import CallSession, SessionState
from callbridge.core.transcript import TranscriptAccumulator
from callbridge.db.models import CallStatus
from callbridge.db.repositories.calls import CallRecordStore
from callbridge.logging_config import bind_call, get_logger
from callbridge.observability.metrics import (
    SUMMARY_FAILURES,
    SUMMARY_LATENCY,
    record_call_metrics,
)
from callbridge.services.llm import CallSummary, Summarizer, SummaryParseError
from callbridge.services.realtime import RealtimeLink

logger: Any = get_logger(__name__)


class CallFinalizer:
    """Drains, summarizes and persists a finished call."""

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        store: CallRecordStore,
        summarizer: Summarizer,
        default_intent: str = "General Inquiry",
        summary_timeout: float = 15.0,
        link_close_grace: float = 2.0,
    ) -> None:
        self._registry = registry
        self._store = store
        self._summarizer = summarizer
        self._default_intent = default_intent
        self._summary_timeout = summary_timeout
        self._link_close_grace = link_close_grace

    async def finalize(
        self,
        session: CallSession,
        link: RealtimeLink | None,
        *,
        status: CallStatus,
        accumulator: TranscriptAccumulator | None = None,
    ) -> None:
        """Finalize a session. Later calls for the same session are no-ops.

        Cancellation while draining or summarizing does not skip the
        terminal write: the record is persisted with the fallback summary
        and the cancellation is re-raised afterwards.
        """
        if not session.begin_finalization():
            logger.debug(f"Call {session.call_id} already finalized")
            return

        if session.state in (SessionState.OPENING, SessionState.ACTIVE):
            session.transition_to(SessionState.CLOSING)

        log = bind_call(logger, session.call_id, session.media_stream_id)
        log.info(f"Finalizing call (status: {status.value})")

        result = CallSummary(summary="", intent=self._default_intent)
        interrupted = False

        try:
            try:
                if link is not None:
                    await self._close_link(log, link)

                if accumulator is not None:
                    await accumulator.close()

                if status == CallStatus.completed and session.turn_count > 0:
                    result = await self._summarize(log, session)
            except asyncio.CancelledError:
                interrupted = True
                result = CallSummary(summary="", intent=self._default_intent)
                log.warning("Finalization cancelled, persisting fallback record")
                if accumulator is not None:
                    await asyncio.shield(accumulator.close())

            ended_at = datetime.now(UTC)
            duration = session.duration_seconds(ended_at)

            if session.record_ref is not None:
                await asyncio.shield(
                    self._persist(log, session, session.record_ref, status, ended_at, duration, result)
                )

            record_call_metrics(status.value, duration, is_urgent=session.is_urgent)
            log.info(
                f"Call finalized: {duration}s, {session.turn_count} turns, "
                f"intent={result.intent}, urgent={session.is_urgent}"
            )
        finally:
            await self._registry.remove(session.call_id)
            session.transition_to(SessionState.CLOSED)

        if interrupted:
            raise asyncio.CancelledError()

    async def _close_link(self, log: Any, link: RealtimeLink) -> None:
        try:
            await asyncio.wait_for(link.close(), timeout=self._link_close_grace)
        except TimeoutError:
            log.warning(f"Realtime link did not close within {self._link_close_grace}s")
        except Exception as e:
            log.error(f"Error closing realtime link: {e}")

    async def _summarize(self, log: Any, session: CallSession) -> CallSummary:
        """Summarize the transcript, falling back to defaults on any failure."""
        fallback = CallSummary(summary="", intent=self._default_intent)
        start = time.perf_counter()

        try:
            return await asyncio.wait_for(
                self._summarizer.summarize(session.render_transcript()),
                timeout=self._summary_timeout,
            )
        except TimeoutError:
            SUMMARY_FAILURES.labels(reason="timeout").inc()
            log.warning(f"Summary timed out after {self._summary_timeout}s")
        except SummaryParseError as e:
            SUMMARY_FAILURES.labels(reason="parse").inc()
            log.warning(f"Unusable summary: {e}")
        except Exception as e:
            SUMMARY_FAILURES.labels(reason="error").inc()
            log.error(f"Summary failed: {e}")
        finally:
            SUMMARY_LATENCY.observe(time.perf_counter() - start)

        return fallback

    async def _persist(
        self,
        log: Any,
        session: CallSession,
        record_ref: str,
        status: CallStatus,
        ended_at: datetime,
        duration: int,
        result: CallSummary,
    ) -> None:
        try:
            await self._store.update_record(
                record_ref,
                {
                    "status": status,
                    "ended_at": ended_at,
                    "duration_seconds": duration,
                    "ai_summary": result.summary,
                    "intent": result.intent,
                    "transcript": session.transcript_payload(),
                },
            )
        except Exception as e:
            log.error(f"Failed to persist call record: {e}")
