"""FastAPI application entry point.

callbridge - live call bridge between Twilio Media Streams and a
realtime speech AI receptionist.

Run with:
    uvicorn --factory callbridge.main:create_app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from callbridge import __version__
from callbridge.api.routes import health, metrics, twilio_webhook
from callbridge.api.websocket import media_stream_endpoint
from callbridge.config import Settings, get_settings
from callbridge.core.bridge import LinkFactory
from callbridge.core.finalizer import CallFinalizer
from callbridge.core.registry import SessionRegistry
from callbridge.core.urgency import KeywordUrgencyDetector
from callbridge.db.repositories.calls import CallRecordStore, SqlCallRecordStore
from callbridge.db.session import close_db, init_db
from callbridge.logging_config import setup_logging
from callbridge.services.llm import CallSummarizer, GroqService, Summarizer
from callbridge.services.realtime import OpenAIRealtimeLink

SHUTDOWN_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup:
    - Initialize logging
    - Initialize database

    Shutdown:
    - Finalize active call sessions
    - Close the summarizer client and database connections
    """
    settings: Settings = app.state.settings

    # Startup
    setup_logging(
        level=settings.log_level,
        enable_file=settings.is_production,
    )

    # Production databases are provisioned ahead of time
    if not settings.is_production:
        await init_db(settings)

    yield

    # Shutdown
    await app.state.registry.close_all(timeout=SHUTDOWN_TIMEOUT_SECONDS)

    close_summarizer = getattr(app.state.summarizer, "close", None)
    if close_summarizer is not None:
        await close_summarizer()

    await close_db()


def create_app(
    settings: Settings | None = None,
    *,
    registry: SessionRegistry | None = None,
    call_store: CallRecordStore | None = None,
    link_factory: LinkFactory | None = None,
    summarizer: Summarizer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to the production implementations and can be
    replaced for tests.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="callbridge",
        description="Live call bridge for an AI phone receptionist",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    registry = registry or SessionRegistry(max_sessions=settings.max_concurrent_calls)
    call_store = call_store or SqlCallRecordStore()
    link_factory = link_factory or partial(OpenAIRealtimeLink, settings=settings)
    summarizer = summarizer or CallSummarizer(
        GroqService(settings),
        intent_labels=settings.intent_labels,
        default_intent=settings.default_intent,
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.call_store = call_store
    app.state.link_factory = link_factory
    app.state.summarizer = summarizer
    app.state.urgency_detector = KeywordUrgencyDetector(settings.urgency_keywords)
    app.state.finalizer = CallFinalizer(
        registry=registry,
        store=call_store,
        summarizer=summarizer,
        default_intent=settings.default_intent,
        summary_timeout=settings.summary_timeout_seconds,
        link_close_grace=settings.link_close_grace_seconds,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Twilio webhook routes
    app.include_router(twilio_webhook.router, prefix="/api")

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # WebSocket endpoint for media streams
    @app.websocket("/ws/media")
    async def media_ws(websocket: WebSocket):
        """WebSocket endpoint for Twilio media streams."""
        await media_stream_endpoint(websocket)

    return app
