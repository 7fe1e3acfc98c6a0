"""Observability module for metrics."""

from callbridge.observability.metrics import (
    ACTIVE_CALLS,
    CALL_DURATION,
    CALL_TOTAL,
    DROPPED_AUDIO_CHUNKS,
    record_call_metrics,
    record_dropped_audio,
)

__all__ = [
    "CALL_TOTAL",
    "CALL_DURATION",
    "ACTIVE_CALLS",
    "DROPPED_AUDIO_CHUNKS",
    "record_call_metrics",
    "record_dropped_audio",
]
