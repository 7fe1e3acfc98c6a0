"""Tests for the call record repository and SQL store."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from callbridge.db.models import CallRecord, CallStatus
from callbridge.db.repositories import AsyncCallRecordRepository, SqlCallRecordStore


def turns(count: int) -> list[dict]:
    return [
        {"speaker": "Caller" if i % 2 else "AI", "text": f"turn {i}", "timestamp": "2025-01-01T00:00:00+00:00"}
        for i in range(count)
    ]


class TestAsyncCallRecordRepository:
    """Tests for AsyncCallRecordRepository."""

    @pytest.mark.asyncio
    async def test_create(self, async_session) -> None:
        """Test a new record starts in progress with empty results."""
        repo = AsyncCallRecordRepository(async_session)

        record = await repo.create(
            call_sid="CA1",
            caller_number="+15551234567",
            callee_number="+15557654321",
            tenant_id="acme",
            media_stream_id="MZ1",
        )

        assert record.id
        assert record.status == CallStatus.in_progress
        assert record.transcript == []
        assert record.intent == "Unknown"
        assert record.ai_summary == ""
        assert record.is_urgent is False
        assert record.is_handled is False

    @pytest.mark.asyncio
    async def test_update_fields(self, async_session) -> None:
        repo = AsyncCallRecordRepository(async_session)
        record = await repo.create(call_sid="CA1", caller_number="a", callee_number="b")
        ended = datetime.now(UTC)

        updated = await repo.update(
            record.id,
            status=CallStatus.completed,
            ended_at=ended,
            duration_seconds=95,
            ai_summary="Customer asked about billing.",
            intent="Billing Question",
        )

        assert updated is not None
        assert updated.status == CallStatus.completed
        assert updated.duration_seconds == 95
        assert updated.intent == "Billing Question"
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_transcript_never_shrinks(self, async_session) -> None:
        """A stale shorter snapshot is ignored."""
        repo = AsyncCallRecordRepository(async_session)
        record = await repo.create(call_sid="CA1", caller_number="a", callee_number="b")

        await repo.update(record.id, transcript=turns(3))
        await repo.update(record.id, transcript=turns(2))

        fetched = await repo.get_by_id(record.id)
        assert len(fetched.transcript) == 3

    @pytest.mark.asyncio
    async def test_is_urgent_is_monotonic(self, async_session) -> None:
        repo = AsyncCallRecordRepository(async_session)
        record = await repo.create(call_sid="CA1", caller_number="a", callee_number="b")

        await repo.update(record.id, is_urgent=True)
        await repo.update(record.id, is_urgent=False)

        fetched = await repo.get_by_id(record.id)
        assert fetched.is_urgent is True

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, async_session) -> None:
        repo = AsyncCallRecordRepository(async_session)
        record = await repo.create(call_sid="CA1", caller_number="a", callee_number="b")

        with pytest.raises(ValueError):
            await repo.update(record.id, caller_number="+1999")

    @pytest.mark.asyncio
    async def test_update_missing_record(self, async_session) -> None:
        repo = AsyncCallRecordRepository(async_session)

        assert await repo.update("missing", intent="Other") is None


class TestSqlCallRecordStore:
    """Tests for SqlCallRecordStore over a real database."""

    @pytest.fixture
    def store(self, async_engine) -> SqlCallRecordStore:
        factory = sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

        @asynccontextmanager
        async def session_context():
            async with factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        return SqlCallRecordStore(session_context)

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store, async_engine) -> None:
        record_ref = await store.create_record(
            "CA1", "+15551234567", "+15557654321", tenant_id=None, media_stream_id="MZ1"
        )

        await store.update_record(record_ref, {"transcript": turns(1)})
        await store.update_record(record_ref, {"is_urgent": True})
        await store.update_record(record_ref, {"transcript": turns(2)})
        await store.update_record(record_ref, {
            "status": CallStatus.completed,
            "ended_at": datetime.now(UTC),
            "duration_seconds": 30,
            "ai_summary": "Printer outage.",
            "intent": "Technical Support",
        })

        async with AsyncSession(async_engine) as session:
            record = await session.get(CallRecord, record_ref)

        assert record.call_sid == "CA1"
        assert record.media_stream_id == "MZ1"
        assert len(record.transcript) == 2
        assert record.is_urgent is True
        assert record.status == CallStatus.completed
        assert record.ai_summary == "Printer outage."

    @pytest.mark.asyncio
    async def test_repeated_update_is_idempotent(self, store, async_engine) -> None:
        record_ref = await store.create_record("CA2", "a", "b")

        for _ in range(3):
            await store.update_record(record_ref, {"transcript": turns(2)})

        async with AsyncSession(async_engine) as session:
            record = await session.get(CallRecord, record_ref)
        assert len(record.transcript) == 2

    @pytest.mark.asyncio
    async def test_update_unknown_record_is_logged(self, store) -> None:
        await store.update_record("missing", {"intent": "Other"})
