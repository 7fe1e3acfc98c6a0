"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for required variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_URGENCY_KEYWORDS = [
    "emergency",
    "urgent",
    "down",
    "not working",
    "critical",
    "broken",
]

DEFAULT_INTENT_LABELS = [
    "Technical Support",
    "Sales Inquiry",
    "Billing Question",
    "General Inquiry",
    "Complaint",
    "Other",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # API Keys
    # ==========================================================================
    openai_api_key: SecretStr = Field(description="OpenAI API key for the Realtime API")
    groq_api_key: SecretStr = Field(description="Groq API key for call summaries")

    # ==========================================================================
    # Database
    # ==========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/callbridge.db",
        description="SQLAlchemy async database URL",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    company_name: str = Field(
        default="Acme Systems",
        description="Company the AI receptionist answers for",
    )
    default_tenant: str | None = Field(
        default=None,
        description="Tenant used when the stream carries no tenant parameter",
    )

    # ==========================================================================
    # Telephony Configuration
    # ==========================================================================
    public_ws_url: str | None = Field(
        default=None,
        description="Public wss:// URL of the media stream endpoint (derived from request if unset)",
    )
    hold_message: str | None = Field(
        default=None,
        description="Optional <Say> message played before the stream connects",
    )
    max_concurrent_calls: int = Field(
        default=50,
        description="Maximum simultaneous call sessions",
    )
    gateway_audio_queue_size: int = Field(
        default=500,
        description="Outbound (AI to caller) audio frames buffered before dropping oldest",
    )

    # ==========================================================================
    # Realtime Speech AI
    # ==========================================================================
    openai_realtime_url: str = Field(
        default="wss://api.openai.com/v1/realtime",
        description="Realtime API WebSocket URL",
    )
    openai_realtime_model: str = Field(
        default="gpt-4o-realtime-preview",
        description="Realtime speech-to-speech model",
    )
    realtime_voice: str = Field(default="alloy", description="Voice used for AI speech")
    realtime_transcription_model: str = Field(
        default="whisper-1",
        description="Model used to transcribe caller audio",
    )
    realtime_open_timeout: float = Field(
        default=10.0,
        description="Seconds allowed to establish the realtime session",
    )
    vad_threshold: float = Field(default=0.5, description="Server VAD activation threshold")
    vad_prefix_padding_ms: int = Field(default=300, description="Audio kept before speech start")
    vad_silence_duration_ms: int = Field(
        default=500,
        description="Silence that ends a caller turn",
    )
    caller_audio_queue_size: int = Field(
        default=100,
        description="Caller audio frames buffered toward the realtime API before dropping oldest",
    )
    link_close_grace_seconds: float = Field(
        default=2.0,
        description="Seconds allowed for closing the realtime connection",
    )

    # ==========================================================================
    # Summaries & Classification
    # ==========================================================================
    summary_model: str = Field(
        default="llama-3.3-70b-versatile",
        description="Groq model for end-of-call summaries",
    )
    summary_timeout_seconds: float = Field(
        default=15.0,
        description="Maximum time spent on the end-of-call summary",
    )
    intent_labels: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INTENT_LABELS),
        description="Closed set of intent labels for call classification",
    )
    default_intent: str = Field(
        default="General Inquiry",
        description="Intent used when classification is unavailable",
    )
    urgency_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_URGENCY_KEYWORDS),
        description="Lexicon that flags a caller turn as urgent",
    )

    # ==========================================================================
    # Persistence
    # ==========================================================================
    transcript_persist_attempts: int = Field(
        default=2,
        description="Attempts per incremental transcript write",
    )
    transcript_persist_retry_delay: float = Field(
        default=0.25,
        description="Seconds between transcript write attempts",
    )

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Credentials and endpoint for one tenant's realtime connection."""

    tenant_id: str | None
    api_key: str
    realtime_url: str
    model: str

    @property
    def url(self) -> str:
        """Full WebSocket URL including the model query parameter."""
        return f"{self.realtime_url}?model={self.model}"


def resolve_credentials(tenant_id: str | None, settings: Settings) -> ConnectionConfig:
    """Resolve realtime credentials for a tenant.

    Tenant overrides are read from prefixed environment variables,
    e.g. tenant ``acme`` uses ``ACME_OPENAI_API_KEY`` and
    ``ACME_OPENAI_REALTIME_MODEL``. Missing overrides fall back to
    the default settings.
    """
    api_key = settings.openai_api_key.get_secret_value()
    model = settings.openai_realtime_model

    if tenant_id:
        prefix = tenant_id.upper().replace("-", "_")
        api_key = os.environ.get(f"{prefix}_OPENAI_API_KEY") or api_key
        model = os.environ.get(f"{prefix}_OPENAI_REALTIME_MODEL") or model

    return ConnectionConfig(
        tenant_id=tenant_id,
        api_key=api_key,
        realtime_url=settings.openai_realtime_url,
        model=model,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()  # type: ignore[call-arg]  # loads from env
