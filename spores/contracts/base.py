"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- All types are frozen dataclasses for immutability guarantee
- Errors are data, not exceptions, once they cross a layer boundary
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto
import re


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for the spore subsystem.
    Every failure path maps to exactly one of these.
    """
    # Discovery errors (recovered by exclusion)
    RECORD_UNAVAILABLE = auto()

    # Validation errors (recovered by exclusion at read time)
    INVALID_TIMESTAMP = auto()
    FUTURE_TIMESTAMP = auto()

    # Precondition errors (surfaced to the user)
    CAPTURE_TIMESTAMP_INVALID = auto()
    ALREADY_HOLDER = auto()
    COOLDOWN_ACTIVE = auto()
    NOT_A_SPORE = auto()

    # Write errors
    WRITE_FAILED = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def context_value(self, key: str) -> Optional[str]:
        for k, v in self.context:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

# Fractional seconds beyond microseconds are legal ISO-8601 but not
# representable by datetime; they are truncated before parsing.
_FRACTION = re.compile(r"(\.\d{6})\d+")


@dataclass(frozen=True)
class Timestamp:
    """
    Immutable timestamp with explicit semantics.
    All timestamps are UTC, never local time.
    """
    value: datetime

    def __post_init__(self):
        if self.value.tzinfo is None:
            object.__setattr__(self, 'value', self.value.replace(tzinfo=timezone.utc))
        else:
            object.__setattr__(self, 'value', self.value.astimezone(timezone.utc))

    @staticmethod
    def now() -> Timestamp:
        return Timestamp(value=datetime.now(timezone.utc))

    @staticmethod
    def from_iso(iso_string: str) -> Timestamp:
        """
        Parse an ISO-8601 string.

        Raises ValueError for anything that is not a string holding a
        parseable date-time.
        """
        if not isinstance(iso_string, str) or not iso_string.strip():
            raise ValueError(f"Not an ISO-8601 timestamp: {iso_string!r}")
        text = iso_string.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        text = _FRACTION.sub(r"\1", text)
        dt = datetime.fromisoformat(text)
        return Timestamp(value=dt)

    def to_iso(self) -> str:
        """ISO-8601 with millisecond precision and a Z suffix."""
        return self.value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{self.value.microsecond // 1000:03d}Z"

    def __lt__(self, other: Timestamp) -> bool:
        return self.value < other.value

    def __le__(self, other: Timestamp) -> bool:
        return self.value <= other.value


def utc_now() -> datetime:
    """Default wall clock for readers and the capture protocol."""
    return datetime.now(timezone.utc)


# =============================================================================
# IDENTITY HELPERS
# =============================================================================

def truncate_did(did: str, keep: int = 8) -> str:
    """Shorten an identifier for display: did:plc:abcdefgh…"""
    if not did:
        return did
    method, _, ident = did.rpartition(':')
    if not method or len(ident) <= keep:
        return did
    return f"{method}:{ident[:keep]}…"
