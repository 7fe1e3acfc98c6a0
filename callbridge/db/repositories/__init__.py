"""Repository pattern implementations for data access."""

from callbridge.db.repositories.calls import (
    AsyncCallRecordRepository,
    CallRecordStore,
    SqlCallRecordStore,
)

__all__ = [
    "AsyncCallRecordRepository",
    "CallRecordStore",
    "SqlCallRecordStore",
]
