"""
API Mapper
==========

Transforms lineage, held spores and capture outcomes into plain JSON DTOs.
Exposes the raw structure (including discarded references) without
smoothing anything over.
"""
from typing import Any, Dict, List, Mapping, Optional

from ..contracts.base import ErrorCode, truncate_did
from ..contracts.records import CaptureOutcome, HeldSpore, Lineage, LineageEntry

# Outcome code -> HTTP status for rejected steals
STATUS_BY_CODE = {
    ErrorCode.NOT_A_SPORE: 404,
    ErrorCode.ALREADY_HOLDER: 409,
    ErrorCode.COOLDOWN_ACTIVE: 409,
    ErrorCode.CAPTURE_TIMESTAMP_INVALID: 503,
    ErrorCode.WRITE_FAILED: 502,
}


def _label(did: str, labels: Mapping[str, str]) -> str:
    return labels.get(did) or truncate_did(did)


def map_entry(entry: LineageEntry, labels: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "holder_did": entry.holder_did,
        "label": _label(entry.holder_did, labels),
        "captured_at": entry.captured_at.to_iso() if entry.captured_at else None,
        "is_origin": entry.is_origin,
        "is_current": entry.is_current,
        "uri": entry.locator.uri if entry.locator else None,
    }


def map_lineage(lineage: Lineage, labels: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Map Lineage to LineageDTO.

    An UNKNOWN lineage is shown with the origin as holder, flagged as
    unverified; the steal endpoint will refuse it regardless.
    """
    labels = labels or {}
    holder = lineage.current_holder
    return {
        "origin_did": lineage.origin_did,
        "status": lineage.status.value,
        "current_holder": holder,
        "display_holder": holder or lineage.origin_did,
        "verified": lineage.is_resolved,
        "entries": [map_entry(e, labels) for e in lineage.entries],
        "discarded": [{"uri": uri, "reason": reason} for uri, reason in lineage.discarded],
    }


def map_held(garden_did: str, spores: List[HeldSpore]) -> Dict[str, Any]:
    return {
        "garden_did": garden_did,
        "spores": [
            {
                "origin_did": s.origin_did,
                "captured_at": s.lineage.latest_timestamp.to_iso() if s.lineage.latest_timestamp else None,
            }
            for s in spores
        ],
    }


def map_outcome(outcome: CaptureOutcome) -> Dict[str, Any]:
    dto = {
        "success": outcome.success,
        "origin_did": outcome.origin_did,
        "thief_did": outcome.thief_did,
        "previous_holder": outcome.previous_holder,
        "message": outcome.message,
        "uri": outcome.locator.uri if outcome.locator else None,
        "error_code": outcome.error.code.name if outcome.error else None,
    }
    if outcome.error is not None:
        remaining = outcome.error.context_value("remaining_minutes")
        if remaining is not None:
            dto["retry_after_minutes"] = int(remaining)
    return dto


def outcome_status(outcome: CaptureOutcome) -> int:
    if outcome.success:
        return 201
    return STATUS_BY_CODE.get(outcome.error.code, 400)
