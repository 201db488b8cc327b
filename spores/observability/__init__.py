"""
Observability & Audit Layer

RESPONSIBILITY: Logging setup and the capture audit trail
ALLOWED INPUTS: CaptureOutcome copies from the capture layer
OUTPUTS: CaptureAuditEntry lists and summary reports

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Make ownership decisions based on logged data
- Block or delay a capture
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from ..contracts.base import Timestamp
from ..contracts.records import CaptureOutcome

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the package logger (idempotent)."""
    package_logger = logging.getLogger("spores")
    package_logger.setLevel(level.upper())
    if not any(getattr(h, "_spores_handler", False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._spores_handler = True
        package_logger.addHandler(handler)


@dataclass(frozen=True)
class CaptureAuditEntry:
    """One recorded steal attempt."""
    sequence: int
    recorded_at: Timestamp
    origin_did: str
    thief_did: str
    success: bool
    error_code: Optional[str]
    uri: Optional[str]


class CaptureAuditLog:
    """
    Append-only collector of steal attempts.

    Entries are recorded from outcomes after the fact; nothing here is read
    back when deciding whether a steal is allowed.
    """

    def __init__(self):
        self._entries: List[CaptureAuditEntry] = []

    def collect(self, outcome: CaptureOutcome) -> CaptureAuditEntry:
        entry = CaptureAuditEntry(
            sequence=len(self._entries) + 1,
            recorded_at=Timestamp.now(),
            origin_did=outcome.origin_did,
            thief_did=outcome.thief_did,
            success=outcome.success,
            error_code=outcome.error.code.name if outcome.error else None,
            uri=outcome.locator.uri if outcome.locator else None,
        )
        self._entries.append(entry)
        return entry

    def get_entries(
        self,
        origin_did: Optional[str] = None,
        success: Optional[bool] = None,
    ) -> List[CaptureAuditEntry]:
        entries = self._entries
        if origin_did is not None:
            entries = [e for e in entries if e.origin_did == origin_did]
        if success is not None:
            entries = [e for e in entries if e.success == success]
        return list(entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def report(self) -> Dict[str, object]:
        by_code: Dict[str, int] = {}
        for entry in self._entries:
            if entry.error_code:
                by_code[entry.error_code] = by_code.get(entry.error_code, 0) + 1
        return {
            "total_entries": len(self._entries),
            "successful_captures": sum(1 for e in self._entries if e.success),
            "rejections_by_code": by_code,
        }
