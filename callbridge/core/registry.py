"""Registry of live call sessions.

At most one live session per call_id. Entries are added when a stream
starts and removed by the finalizer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from callbridge.core.exceptions import CallCapacityError, DuplicateSessionError
from callbridge.core.session import CallSession, SessionState
from callbridge.logging_config import get_logger
from callbridge.observability.metrics import ACTIVE_CALLS

logger: Any = get_logger(__name__)


@dataclass
class SessionEntry:
    """Entry in the call session registry."""

    session: CallSession
    task: asyncio.Task[Any] | None = None
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class SessionRegistry:
    """Async-safe registry of active call sessions."""

    def __init__(self, max_sessions: int = 50) -> None:
        self._sessions: dict[str, SessionEntry] = {}
        self._lock = asyncio.Lock()
        self._max_sessions = max_sessions

    async def register(
        self,
        session: CallSession,
        task: asyncio.Task[Any] | None = None,
    ) -> None:
        """Add a session.

        Args:
            session: Session to register
            task: Task driving the session, cancelled on shutdown

        Raises:
            DuplicateSessionError: If a live session already has this call_id
            CallCapacityError: If the system is at maximum capacity
        """
        async with self._lock:
            if session.call_id in self._sessions:
                raise DuplicateSessionError(
                    f"Call {session.call_id} already has a live session"
                )

            if len(self._sessions) >= self._max_sessions:
                logger.warning(
                    f"Max concurrent calls reached ({self._max_sessions}), "
                    f"rejecting call {session.call_id}"
                )
                raise CallCapacityError(
                    f"System at capacity ({self._max_sessions} concurrent calls)"
                )

            self._sessions[session.call_id] = SessionEntry(session=session, task=task)
            ACTIVE_CALLS.set(len(self._sessions))

            logger.info(
                f"Registered call {session.call_id} "
                f"(active: {len(self._sessions)}/{self._max_sessions})"
            )

    async def get(self, call_id: str) -> CallSession | None:
        async with self._lock:
            entry = self._sessions.get(call_id)
            return entry.session if entry else None

    async def remove(self, call_id: str) -> CallSession | None:
        """Remove a session. Returns None if it was not registered."""
        async with self._lock:
            entry = self._sessions.pop(call_id, None)
            ACTIVE_CALLS.set(len(self._sessions))
        return entry.session if entry else None

    async def close_all(self, timeout: float = 10.0) -> None:
        """Cancel live session tasks and wait for finalization (shutdown).

        Sessions already closing are left to finish their own
        finalization and are only waited on.
        """
        async with self._lock:
            entries = [
                entry
                for entry in self._sessions.values()
                if entry.task is not None and not entry.task.done()
            ]

        if not entries:
            return

        tasks = [entry.task for entry in entries]
        to_cancel = [
            entry.task
            for entry in entries
            if entry.session.state not in (SessionState.CLOSING, SessionState.CLOSED)
        ]

        logger.info(
            f"Closing {len(entries)} active call sessions "
            f"({len(entries) - len(to_cancel)} already finalizing)"
        )
        for task in to_cancel:
            task.cancel()

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} call sessions did not finish within {timeout}s")

    @property
    def active_count(self) -> int:
        """Number of active sessions."""
        return len(self._sessions)

    @property
    def call_ids(self) -> list[str]:
        return list(self._sessions)
