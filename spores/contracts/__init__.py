"""
Contracts shared by every layer. Types only, no behavior beyond
construction-time validation.
"""

from .base import (
    Error,
    ErrorCode,
    Result,
    Timestamp,
    truncate_did,
    utc_now,
)
from .records import (
    BacklinkRef,
    CaptureEvent,
    CaptureOutcome,
    HeldSpore,
    Lineage,
    LineageEntry,
    LineageStatus,
    RecordLocator,
    StoredRecord,
)

__all__ = [
    "BacklinkRef",
    "CaptureEvent",
    "CaptureOutcome",
    "Error",
    "ErrorCode",
    "HeldSpore",
    "Lineage",
    "LineageEntry",
    "LineageStatus",
    "RecordLocator",
    "Result",
    "StoredRecord",
    "Timestamp",
    "truncate_did",
    "utc_now",
]
