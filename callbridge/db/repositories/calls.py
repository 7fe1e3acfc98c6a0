"""Call record repository and the store used by live call sessions."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from callbridge.db.models import CallRecord, CallStatus
from callbridge.db.session import get_session_context
from callbridge.logging_config import get_logger

logger: Any = get_logger(__name__)

# Fields a live session may write after the record is created
UPDATABLE_FIELDS = frozenset({
    "transcript",
    "is_urgent",
    "status",
    "ended_at",
    "duration_seconds",
    "ai_summary",
    "intent",
    "is_handled",
})


class AsyncCallRecordRepository:
    """Async repository for call records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, record_id: str) -> CallRecord | None:
        return await self.session.get(CallRecord, record_id)

    async def create(
        self,
        *,
        call_sid: str,
        caller_number: str,
        callee_number: str,
        tenant_id: str | None = None,
        media_stream_id: str | None = None,
    ) -> CallRecord:
        record = CallRecord(
            call_sid=call_sid,
            caller_number=caller_number,
            callee_number=callee_number,
            tenant_id=tenant_id,
            media_stream_id=media_stream_id,
            status=CallStatus.in_progress,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def update(self, record_id: str, **fields: Any) -> CallRecord | None:
        """Apply a partial update.

        The stored transcript only ever grows: a snapshot shorter than
        the one already stored is ignored. ``is_urgent`` never reverts
        to False.

        Raises:
            ValueError: If a field is not writable
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown call record fields: {sorted(unknown)}")

        record = await self.get_by_id(record_id)
        if record is None:
            return None

        for key, value in fields.items():
            if key == "transcript":
                snapshot = list(value)
                if len(snapshot) < len(record.transcript):
                    logger.debug(
                        f"Ignoring stale transcript for {record_id} "
                        f"({len(snapshot)} < {len(record.transcript)} turns)"
                    )
                    continue
                record.transcript = snapshot
            elif key == "is_urgent":
                record.is_urgent = record.is_urgent or bool(value)
            else:
                setattr(record, key, value)

        record.updated_at = datetime.now(UTC)
        self.session.add(record)
        return record


class CallRecordStore(Protocol):
    """Write contract between a live call session and persistent storage."""

    async def create_record(
        self,
        call_id: str,
        caller_number: str,
        callee_number: str,
        *,
        tenant_id: str | None = None,
        media_stream_id: str | None = None,
    ) -> str:
        """Create an in-progress record and return its record_ref."""
        ...

    async def update_record(self, record_ref: str, fields: dict[str, Any]) -> None:
        """Apply a partial update. Safe to call many times per call."""
        ...


class SqlCallRecordStore:
    """CallRecordStore backed by the SQL database.

    Each write runs in its own short transaction so an incremental
    transcript flush is durable as soon as it returns.
    """

    def __init__(
        self,
        session_context: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session_context,
    ) -> None:
        self._session_context = session_context

    async def create_record(
        self,
        call_id: str,
        caller_number: str,
        callee_number: str,
        *,
        tenant_id: str | None = None,
        media_stream_id: str | None = None,
    ) -> str:
        async with self._session_context() as db_session:
            repo = AsyncCallRecordRepository(db_session)
            record = await repo.create(
                call_sid=call_id,
                caller_number=caller_number,
                callee_number=callee_number,
                tenant_id=tenant_id,
                media_stream_id=media_stream_id,
            )
            return record.id

    async def update_record(self, record_ref: str, fields: dict[str, Any]) -> None:
        async with self._session_context() as db_session:
            repo = AsyncCallRecordRepository(db_session)
            record = await repo.update(record_ref, **fields)

        if record is None:
            logger.warning(f"Call record {record_ref} not found for update")
