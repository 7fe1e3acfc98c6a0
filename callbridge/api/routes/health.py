"""Health check endpoints.

Provides:
- Basic health check with active session count (GET /health)
- Detailed health check with dependency status (GET /health/detailed)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from callbridge import __version__
from callbridge.api.dependencies import get_app_settings, get_registry
from callbridge.config import Settings
from callbridge.core.registry import SessionRegistry
from callbridge.db.session import ping_db

router = APIRouter()


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    active_sessions: int


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""

    status: str
    active_sessions: int
    checks: dict[str, str]
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    registry: SessionRegistry = Depends(get_registry),
) -> HealthResponse:
    """Basic health check endpoint.

    Returns:
        Status and the number of calls currently bridged.
    """
    return HealthResponse(status="healthy", active_sessions=registry.active_count)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    settings: Settings = Depends(get_app_settings),
    registry: SessionRegistry = Depends(get_registry),
) -> DetailedHealthResponse:
    """Detailed health check including dependency status.

    Checks:
    - Database connectivity
    - External service configuration status
    - Remaining call capacity

    Returns:
        Status with individual component checks.
    """
    checks = {}

    # Database check
    try:
        await ping_db()
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {type(e).__name__}"

    # External services (just check if configured, don't call APIs)
    checks["openai_realtime"] = (
        "configured" if settings.openai_api_key.get_secret_value() else "missing"
    )
    checks["groq"] = "configured" if settings.groq_api_key.get_secret_value() else "missing"
    checks["public_ws_url"] = "configured" if settings.public_ws_url else "derived"

    checks["capacity"] = (
        "full" if registry.active_count >= settings.max_concurrent_calls else "ok"
    )

    # Overall status
    status = "healthy" if checks["database"] == "ok" else "degraded"

    return DetailedHealthResponse(
        status=status,
        active_sessions=registry.active_count,
        checks=checks,
        version=__version__,
    )
