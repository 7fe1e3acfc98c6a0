"""Prometheus metrics for the call bridge.

Provides metrics for monitoring call outcomes, audio loss, and degraded paths.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

CALL_TOTAL = Counter(
    "callbridge_call_total",
    "Total calls finalized by the bridge",
    ["status"],
)

URGENT_CALLS = Counter(
    "callbridge_urgent_calls_total",
    "Calls flagged as urgent",
)

DROPPED_AUDIO_CHUNKS = Counter(
    "callbridge_dropped_audio_chunks_total",
    "Audio chunks dropped under backpressure",
    ["direction"],
)

FRAME_DECODE_ERRORS = Counter(
    "callbridge_frame_decode_errors_total",
    "Inbound media frames that failed to decode",
)

TRANSCRIPT_PERSIST_FAILURES = Counter(
    "callbridge_transcript_persist_failures_total",
    "Incremental transcript writes that failed after all attempts",
)

SUMMARY_FAILURES = Counter(
    "callbridge_summary_failures_total",
    "End-of-call summaries that fell back to defaults",
    ["reason"],
)

REGISTRY_CONFLICTS = Counter(
    "callbridge_registry_conflicts_total",
    "Stream starts rejected because the call was already live",
)

LINK_OPEN_FAILURES = Counter(
    "callbridge_link_open_failures_total",
    "Realtime connections that could not be established",
)

# =============================================================================
# Gauges
# =============================================================================

ACTIVE_CALLS = Gauge(
    "callbridge_active_calls",
    "Currently active call sessions",
)

# =============================================================================
# Histograms
# =============================================================================

CALL_DURATION = Histogram(
    "callbridge_call_duration_seconds",
    "Call duration in seconds",
    buckets=[10, 30, 60, 120, 300, 600, 900, 1800],
)

SUMMARY_LATENCY = Histogram(
    "callbridge_summary_latency_seconds",
    "Time spent generating the end-of-call summary",
    buckets=[0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 15.0],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_call_metrics(
    status: str,
    duration_seconds: float,
    *,
    is_urgent: bool = False,
) -> None:
    """Record metrics for a finalized call.

    Args:
        status: Terminal call status (completed, failed)
        duration_seconds: Total call duration
        is_urgent: Whether the call was flagged urgent
    """
    CALL_TOTAL.labels(status=status).inc()
    CALL_DURATION.observe(duration_seconds)

    if is_urgent:
        URGENT_CALLS.inc()


def record_dropped_audio(direction: str, count: int = 1) -> None:
    """Record audio chunks dropped in one direction (inbound/outbound)."""
    DROPPED_AUDIO_CHUNKS.labels(direction=direction).inc(count)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Metrics in Prometheus text exposition format.
    """
    return generate_latest()


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
