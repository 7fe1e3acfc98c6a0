"""Database engine and sessions for call records.

Call records are written from call tasks in short transactions through
``get_session_context``. There is no request-scoped session: the only
HTTP consumer is the detailed health check, which uses ``ping_db``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, text

from callbridge.config import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async engine for the call record store."""
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        url = settings.database_url

        # File-backed SQLite needs its directory before the first write
        if url.startswith("sqlite") and ":memory:" not in url:
            Path(url.split("///")[-1]).parent.mkdir(parents=True, exist_ok=True)

        _engine = create_async_engine(url, echo=settings.debug, future=True)
    return _engine


def get_session_factory() -> sessionmaker:
    """Session factory bound to the engine, built once."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def init_db(settings: Settings | None = None) -> None:
    """Create the call_records table if it does not exist."""
    from callbridge.db import models  # noqa: F401

    async with get_engine(settings).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine. A later call to get_engine builds a fresh one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def ping_db() -> None:
    """Round-trip a trivial query. Raises if the database is unreachable."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """One transaction: commit on success, roll back and re-raise on error.

    Usage:
        async with get_session_context() as session:
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
