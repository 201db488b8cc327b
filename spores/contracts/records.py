"""
Record and Lineage Contracts

Immutable types describing capture events as they are discovered, read and
assembled into a lineage.

INVARIANTS:
- A capture event's owner is the repository that stores it (the locator's
  owner), never a field inside the record value
- Capture events are write-once; lineage is always derived, never stored
- A CaptureOutcome is either a success with a locator or a rejection with
  an error, never both
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .base import Error, Timestamp


# =============================================================================
# LOCATORS
# =============================================================================

@dataclass(frozen=True, order=True)
class RecordLocator:
    """Address of one record inside one repository."""
    owner_did: str
    collection: str
    rkey: str

    def __post_init__(self):
        if not self.owner_did:
            raise ValueError("RecordLocator owner_did must be a non-empty string")
        if not self.collection:
            raise ValueError("RecordLocator collection must be a non-empty string")
        if not self.rkey:
            raise ValueError("RecordLocator rkey must be a non-empty string")

    @property
    def uri(self) -> str:
        return f"at://{self.owner_did}/{self.collection}/{self.rkey}"

    @staticmethod
    def parse(uri: str) -> RecordLocator:
        if not uri.startswith("at://"):
            raise ValueError(f"Not an at:// URI: {uri!r}")
        parts = uri[len("at://"):].split("/", 2)
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Malformed record URI: {uri!r}")
        return RecordLocator(owner_did=parts[0], collection=parts[1], rkey=parts[2])


@dataclass(frozen=True)
class BacklinkRef:
    """
    Pointer returned by the backlink index.

    Discovery only: says where to look, never what the record contains.
    """
    owner_did: str
    collection: str
    rkey: str

    def locator(self, default_collection: str) -> RecordLocator:
        return RecordLocator(
            owner_did=self.owner_did,
            collection=self.collection or default_collection,
            rkey=self.rkey,
        )


@dataclass(frozen=True)
class StoredRecord:
    """A record exactly as read from its owning repository."""
    locator: RecordLocator
    value: Mapping[str, Any]


# =============================================================================
# CAPTURE EVENTS
# =============================================================================

@dataclass(frozen=True)
class CaptureEvent:
    """
    One ownership claim.

    created_at is writer-issued and therefore untrusted; the lineage reader
    filters implausible values before an event is constructed.
    """
    locator: RecordLocator
    subject: str
    created_at: Timestamp

    @property
    def owner_did(self) -> str:
        return self.locator.owner_did

    def sort_key(self) -> Tuple:
        # Ties on created_at are broken by locator so ordering never depends
        # on the order the index returned references in.
        return (self.created_at.value, self.locator.owner_did,
                self.locator.collection, self.locator.rkey)

    @staticmethod
    def record_value(collection: str, subject: str, created_at: Timestamp) -> Dict[str, Any]:
        """The exact value written to the store for a capture."""
        return {
            "$type": collection,
            "subject": subject,
            "createdAt": created_at.to_iso(),
        }


# =============================================================================
# LINEAGE
# =============================================================================

class LineageStatus(Enum):
    """How far a lineage could be resolved."""
    RESOLVED = "resolved"      # Holder known (possibly the origin itself)
    UNKNOWN = "unknown"        # Index unreachable; nothing can be said
    NO_SPORE = "no_spore"      # Origin has no spore and no events exist


@dataclass(frozen=True)
class LineageEntry:
    """One holder in the chronological chain."""
    holder_did: str
    captured_at: Optional[Timestamp]
    is_origin: bool
    is_current: bool
    locator: Optional[RecordLocator] = None

    @property
    def is_synthetic(self) -> bool:
        return self.locator is None


@dataclass(frozen=True)
class Lineage:
    """
    Chronological reconstruction of all valid capture events for an origin.

    entries always starts with the origin entry when resolved; events holds
    only the surviving capture events, sorted ascending.
    """
    origin_did: str
    status: LineageStatus
    entries: Tuple[LineageEntry, ...] = field(default_factory=tuple)
    events: Tuple[CaptureEvent, ...] = field(default_factory=tuple)
    discarded: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def is_resolved(self) -> bool:
        return self.status == LineageStatus.RESOLVED

    @property
    def current_holder(self) -> Optional[str]:
        if not self.entries:
            return None
        return self.entries[-1].holder_did

    @property
    def latest_event(self) -> Optional[CaptureEvent]:
        return self.events[-1] if self.events else None

    @property
    def latest_timestamp(self) -> Optional[Timestamp]:
        latest = self.latest_event
        return latest.created_at if latest else None

    @staticmethod
    def unknown(origin_did: str) -> Lineage:
        return Lineage(origin_did=origin_did, status=LineageStatus.UNKNOWN)

    @staticmethod
    def no_spore(origin_did: str, discarded: Tuple[Tuple[str, str], ...] = ()) -> Lineage:
        return Lineage(origin_did=origin_did, status=LineageStatus.NO_SPORE, discarded=discarded)


@dataclass(frozen=True)
class HeldSpore:
    """A spore some garden currently, validly holds."""
    origin_did: str
    holder_did: str
    lineage: Lineage


# =============================================================================
# CAPTURE OUTCOME
# =============================================================================

@dataclass(frozen=True)
class CaptureOutcome:
    """
    Result of a steal attempt.

    INVARIANT: Either (success=True, locator set) or (success=False, error set)
    """
    success: bool
    origin_did: str
    thief_did: str
    message: str
    previous_holder: Optional[str] = None
    locator: Optional[RecordLocator] = None
    error: Optional[Error] = None

    def __post_init__(self):
        if self.success and (self.locator is None or self.error is not None):
            raise ValueError("Successful capture must have a locator and no error")
        if not self.success and self.error is None:
            raise ValueError("Rejected capture must have an error")

    @staticmethod
    def succeeded(
        origin_did: str,
        thief_did: str,
        previous_holder: Optional[str],
        locator: RecordLocator,
        message: str,
    ) -> CaptureOutcome:
        return CaptureOutcome(
            success=True,
            origin_did=origin_did,
            thief_did=thief_did,
            previous_holder=previous_holder,
            locator=locator,
            message=message,
        )

    @staticmethod
    def rejected(
        origin_did: str,
        thief_did: str,
        error: Error,
        previous_holder: Optional[str] = None,
    ) -> CaptureOutcome:
        return CaptureOutcome(
            success=False,
            origin_did=origin_did,
            thief_did=thief_did,
            previous_holder=previous_holder,
            message=error.message,
            error=error,
        )
