"""
Capture Protocol
================

Validate and execute a steal.

PRECONDITIONS (checked in order, each a distinct outcome):
===========================================================
0. The origin carries a spore and the thief is the authenticated writer
1. Freshly re-read lineage resolves, with a usable latest timestamp
2. The thief is not already the holder
3. The latest capture is older than the cooldown

EFFECT:
=======
Exactly one new record in the thief's own repository. Nothing is updated or
deleted, and no other repository is written to.

Races between simultaneous stealers are mitigated, not serialized: both
writes succeed, and whichever sorts last becomes the holder on the next read.
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable, Optional
import asyncio
import logging
import math

from ..config import SporeConfig
from ..contracts.base import Error, ErrorCode, Timestamp, utc_now
from ..contracts.records import CaptureEvent, CaptureOutcome, LineageStatus
from ..lineage.reader import LineageReader
from ..observability import CaptureAuditLog
from ..oracle import is_valid_spore
from ..store import RecordStore, StoreError

logger = logging.getLogger(__name__)

MSG_NOT_A_SPORE = "There is no special spore for this garden."
MSG_NOT_AUTHENTICATED = "You must be logged in as the capturing garden to steal a spore."
MSG_TIMESTAMP_INVALID = "Spore capture timestamp is invalid. Please try again later."
MSG_ALREADY_HOLDER = "You already hold this spore."
MSG_COOLDOWN = "This spore was just captured. Try again in {minutes} minute{plural}."
MSG_WRITE_FAILED = "Failed to steal spore."
MSG_SUCCESS = "You successfully stole the special spore from @{label}! It is now yours. For now..."


class CaptureProtocol:
    """
    Steal protocol over one authenticated record store.

    GUARANTEES:
    ===========
    1. Lineage is re-resolved for every attempt, never reused
    2. Rejections never write
    3. Once issued, the write runs to completion even if the caller is
       cancelled
    """

    def __init__(
        self,
        record_store: RecordStore,
        reader: LineageReader,
        config: Optional[SporeConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        audit: Optional[CaptureAuditLog] = None,
    ):
        self._store = record_store
        self._reader = reader
        self._config = config or SporeConfig()
        self._clock = clock
        self._audit = audit if audit is not None else CaptureAuditLog()

    @property
    def audit(self) -> CaptureAuditLog:
        return self._audit

    async def steal(
        self,
        origin_did: str,
        thief_did: str,
        previous_holder_label: Optional[str] = None,
    ) -> CaptureOutcome:
        outcome = await self._attempt(origin_did, thief_did, previous_holder_label)
        self._audit.collect(outcome)
        if outcome.success:
            logger.info("%s captured spore of %s from %s (%s)",
                        thief_did, origin_did, outcome.previous_holder, outcome.locator.uri)
        else:
            logger.info("Steal of %s by %s rejected: %s",
                        origin_did, thief_did, outcome.error.code.name)
        return outcome

    async def _attempt(
        self,
        origin_did: str,
        thief_did: str,
        previous_holder_label: Optional[str],
    ) -> CaptureOutcome:
        def reject(code: ErrorCode, message: str, holder: Optional[str] = None, **context) -> CaptureOutcome:
            error = Error(
                code=code,
                message=message,
                timestamp=self._clock(),
                context=tuple((k, str(v)) for k, v in context.items()),
            )
            return CaptureOutcome.rejected(origin_did, thief_did, error, previous_holder=holder)

        if not origin_did or not thief_did:
            raise ValueError("origin_did and thief_did must be non-empty strings")

        if not is_valid_spore(origin_did):
            return reject(ErrorCode.NOT_A_SPORE, MSG_NOT_A_SPORE)
        if self._store.authenticated_did != thief_did:
            return reject(ErrorCode.WRITE_FAILED, MSG_NOT_AUTHENTICATED)

        lineage = await self._reader.resolve(origin_did)
        if lineage.status != LineageStatus.RESOLVED:
            return reject(ErrorCode.CAPTURE_TIMESTAMP_INVALID, MSG_TIMESTAMP_INVALID,
                          lineage_status=lineage.status.value)

        holder = lineage.current_holder
        latest = lineage.latest_timestamp
        if holder == thief_did:
            return reject(ErrorCode.ALREADY_HOLDER, MSG_ALREADY_HOLDER, holder)

        now = Timestamp(self._clock())
        if latest is not None:
            elapsed = now.value - latest.value
            cooldown = self._config.rules.cooldown
            if elapsed < cooldown:
                remaining = cooldown - elapsed
                minutes = max(1, math.ceil(remaining.total_seconds() / 60))
                return reject(
                    ErrorCode.COOLDOWN_ACTIVE,
                    MSG_COOLDOWN.format(minutes=minutes, plural="" if minutes == 1 else "s"),
                    holder,
                    remaining_minutes=minutes,
                )

        collection = self._config.namespaces.write_collection()
        value = CaptureEvent.record_value(collection, origin_did, now)
        try:
            # The write is not cancellable once issued.
            locator = await asyncio.shield(self._store.create(collection, value))
        except StoreError as e:
            logger.error("Failed to steal spore %s for %s: %s", origin_did, thief_did, e)
            return reject(ErrorCode.WRITE_FAILED, MSG_WRITE_FAILED, holder, cause=e)

        return CaptureOutcome.succeeded(
            origin_did=origin_did,
            thief_did=thief_did,
            previous_holder=holder,
            locator=locator,
            message=MSG_SUCCESS.format(label=previous_holder_label or holder),
        )
