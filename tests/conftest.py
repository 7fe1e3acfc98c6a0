"""Shared pytest fixtures for callbridge tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Generator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from starlette.websockets import WebSocketState

from callbridge.config import Settings
from callbridge.core.session import CallSession
from callbridge.services.llm import CallSummary
from callbridge.services.realtime import RealtimeConnectionError, RealtimeEvent


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe test defaults."""
    base = {
        "openai_api_key": "test-openai-key",
        "groq_api_key": "test-groq-key",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "transcript_persist_retry_delay": 0.0,
        "link_close_grace_seconds": 0.5,
        "summary_timeout_seconds": 0.5,
        "realtime_open_timeout": 1.0,
    }
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)


# =============================================================================
# Fakes
# =============================================================================


class InMemoryCallStore:
    """CallRecordStore keeping records in a dict.

    Applies the same write rules as the SQL store: transcripts never
    shrink and is_urgent never reverts.
    """

    def __init__(self, *, fail_create: bool = False) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_create = fail_create
        self.fail_updates = 0

    async def create_record(
        self,
        call_id: str,
        caller_number: str,
        callee_number: str,
        *,
        tenant_id: str | None = None,
        media_stream_id: str | None = None,
    ) -> str:
        if self.fail_create:
            raise RuntimeError("database unavailable")
        record_ref = f"rec-{len(self.records) + 1}"
        self.records[record_ref] = {
            "call_sid": call_id,
            "caller_number": caller_number,
            "callee_number": callee_number,
            "tenant_id": tenant_id,
            "media_stream_id": media_stream_id,
            "status": "in_progress",
            "transcript": [],
            "is_urgent": False,
            "ai_summary": "",
            "intent": "Unknown",
        }
        return record_ref

    async def update_record(self, record_ref: str, fields: dict[str, Any]) -> None:
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise RuntimeError("write failed")

        self.updates.append((record_ref, dict(fields)))
        record = self.records[record_ref]
        for key, value in fields.items():
            if key == "transcript":
                if len(value) >= len(record["transcript"]):
                    record["transcript"] = list(value)
            elif key == "is_urgent":
                record["is_urgent"] = record["is_urgent"] or bool(value)
            else:
                record[key] = value

    def transcript_snapshots(self, record_ref: str) -> list[list[dict[str, Any]]]:
        return [
            fields["transcript"]
            for ref, fields in self.updates
            if ref == record_ref and "transcript" in fields
        ]


class FakeRealtimeLink:
    """RealtimeLink driven by the test."""

    def __init__(self, *, fail_open: bool = False, open_delay: float = 0.0) -> None:
        self.fail_open = fail_open
        self.open_delay = open_delay
        self.opened_for: CallSession | None = None
        self.caller_audio: list[bytes] = []
        self.closed = False
        self.close_calls = 0
        self._events: asyncio.Queue[RealtimeEvent | None] = asyncio.Queue()

    async def open(self, session: CallSession) -> None:
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open:
            raise RealtimeConnectionError("connection refused")
        self.opened_for = session

    def send_caller_audio(self, chunk: bytes) -> bool:
        self.caller_audio.append(chunk)
        return True

    def push(self, event: RealtimeEvent) -> None:
        self._events.put_nowait(event)

    def finish(self) -> None:
        """End the event stream, as if the service hung up."""
        self._events.put_nowait(None)

    async def events(self) -> AsyncIterator[RealtimeEvent]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self.finish()


class FakeGatewaySocket:
    """Stands in for the Twilio media stream WebSocket."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    def push(self, message: dict[str, Any]) -> None:
        self._incoming.put_nowait(json.dumps(message))

    def push_raw(self, raw: str) -> None:
        self._incoming.put_nowait(raw)

    def disconnect(self) -> None:
        """Simulate the caller's side dropping."""
        self._incoming.put_nowait(None)

    async def receive_text(self) -> str:
        raw = await self._incoming.get()
        if raw is None:
            self.client_state = WebSocketState.DISCONNECTED
            raise WebSocketDisconnect(code=1006)
        return raw

    async def send_json(self, message: dict[str, Any]) -> None:
        if self.client_state != WebSocketState.CONNECTED:
            raise WebSocketDisconnect(code=1006)
        self.sent.append(message)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.client_state = WebSocketState.DISCONNECTED

    def sent_events(self, event: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("event") == event]


class FakeSummarizer:
    """Summarizer returning a canned result, or failing on demand."""

    def __init__(
        self,
        result: CallSummary | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.result = result or CallSummary(
            summary="Caller reported an outage.", intent="Technical Support"
        )
        self.delay = delay
        self.error = error
        self.calls: list[str] = []

    async def summarize(self, transcript_text: str) -> CallSummary:
        self.calls.append(transcript_text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def _start_message(
    call_sid: str = "CA123",
    stream_sid: str = "MZ123",
    *,
    from_number: str = "+15551234567",
    to_number: str = "+15557654321",
    tenant: str | None = None,
) -> dict[str, Any]:
    """Build a Media Streams ``start`` event."""
    params = {"callSid": call_sid, "from": from_number, "to": to_number}
    if tenant:
        params["tenant"] = tenant
    return {
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "callSid": call_sid,
            "accountSid": "AC000",
            "tracks": ["inbound"],
            "customParameters": params,
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
    }


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Return a coroutine function that polls a condition."""
    return _wait_until


@pytest.fixture
def make_start() -> Callable[..., dict[str, Any]]:
    """Return a factory for Media Streams start events."""
    return _start_message


@pytest.fixture
def call_store() -> InMemoryCallStore:
    return InMemoryCallStore()


@pytest.fixture
def fake_link() -> FakeRealtimeLink:
    return FakeRealtimeLink()


@pytest.fixture
def fake_summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def fake_gateway() -> FakeGatewaySocket:
    return FakeGatewaySocket()


@pytest.fixture
def make_link() -> type[FakeRealtimeLink]:
    return FakeRealtimeLink


@pytest.fixture
def make_summarizer() -> type[FakeSummarizer]:
    return FakeSummarizer


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory async SQLite engine for testing."""
    # Import models to register them with SQLModel metadata
    from callbridge.db import models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create an async database session for testing."""
    async_session_maker = sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def app_factory(settings_factory, call_store, fake_summarizer) -> Callable[..., Any]:
    """Build an app wired to in-memory collaborators."""
    from callbridge.main import create_app

    def factory(*, link: FakeRealtimeLink | None = None, **setting_overrides):
        link = link or FakeRealtimeLink()
        return create_app(
            settings_factory(**setting_overrides),
            call_store=call_store,
            link_factory=lambda config: link,
            summarizer=fake_summarizer,
        )

    return factory


@pytest.fixture
def test_client(app_factory) -> Generator:
    """FastAPI TestClient with fake call collaborators and an in-memory database."""
    from fastapi.testclient import TestClient

    app = app_factory()
    with TestClient(app) as client:
        yield client
