"""SQLModel database models.

The call record is the persisted counterpart of a live call session.
It is created when the media stream starts and finalized once when
the call ends.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

# =============================================================================
# Enums
# =============================================================================


class CallStatus(str, Enum):
    """Lifecycle status of a call record."""

    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"
    no_answer = "no_answer"


# =============================================================================
# Tables
# =============================================================================


class CallRecord(SQLModel, table=True):
    """Record of a phone call handled by the AI receptionist."""

    __tablename__ = "call_records"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique identifier (record_ref)",
    )
    call_sid: str = Field(index=True, description="Telephony provider call identifier")
    tenant_id: str | None = Field(default=None, index=True)
    caller_number: str = Field(description="Caller phone number")
    callee_number: str = Field(description="Dialed phone number")
    media_stream_id: str | None = Field(default=None)

    status: CallStatus = Field(default=CallStatus.in_progress, index=True)
    is_handled: bool = Field(default=False, description="Followed up by staff")
    is_urgent: bool = Field(default=False, index=True)

    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = Field(default=None)
    duration_seconds: int = Field(default=0, ge=0)

    transcript: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="Conversation turns: speaker, text, timestamp",
    )
    ai_summary: str = Field(default="", description="LLM-generated call summary")
    intent: str = Field(default="Unknown", description="Call intent label")

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
