"""
Lineage Reader
==============

Rebuilds the chronological capture history of one origin from records
scattered across many repositories.

INVARIANTS:
- The backlink index only says where to look; every record is re-read from
  its owning repository before it counts
- Ordering depends on record content only, never on discovery order
- A record dated beyond the clock-skew tolerance never counts
- Nothing is cached: every resolve() re-reads the network
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import asyncio
import logging

from ..config import SporeConfig
from ..contracts.base import Error, ErrorCode, Result, Timestamp, utc_now
from ..contracts.records import (
    BacklinkRef, CaptureEvent, HeldSpore, Lineage, LineageEntry,
    LineageStatus, RecordLocator,
)
from ..oracle import is_valid_spore
from ..store import BacklinkIndex, RecordStore, StoreError

logger = logging.getLogger(__name__)


class LineageReader:
    """
    Resolve lineage and current holder for an origin.

    FAILURE HANDLING:
    =================
    - One backlink source failing is tolerated while another answers
    - Every backlink source failing -> LineageStatus.UNKNOWN
    - A record that cannot be fetched or validated is excluded, not retried
    """

    def __init__(
        self,
        record_store: RecordStore,
        backlink_index: BacklinkIndex,
        config: Optional[SporeConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = record_store
        self._index = backlink_index
        self._config = config or SporeConfig()
        self._clock = clock

    async def resolve(self, origin_did: str) -> Lineage:
        if not origin_did:
            raise ValueError("origin_did must be a non-empty string")

        now = Timestamp(self._clock())
        refs = await self._discover(origin_did)
        if refs is None:
            return Lineage.unknown(origin_did)

        results = await asyncio.gather(*(self._read_event(origin_did, loc, now) for loc in refs))

        events: List[CaptureEvent] = []
        discarded: List[Tuple[str, str]] = []
        for locator, result in zip(refs, results):
            if result.is_success:
                events.append(result.value)
            else:
                discarded.append((locator.uri, result.error.code.name))
                logger.debug("Excluded %s from lineage of %s: %s",
                             locator.uri, origin_did, result.error.message)

        events.sort(key=CaptureEvent.sort_key)

        if not events and not is_valid_spore(origin_did):
            return Lineage.no_spore(origin_did, tuple(discarded))

        return Lineage(
            origin_did=origin_did,
            status=LineageStatus.RESOLVED,
            entries=self.build_entries(origin_did, events),
            events=tuple(events),
            discarded=tuple(discarded),
        )

    async def find_spore(self, origin_did: str) -> Optional[HeldSpore]:
        """Current holder of the origin's spore, or None if unknown / no spore."""
        lineage = await self.resolve(origin_did)
        if not lineage.is_resolved:
            return None
        return HeldSpore(origin_did=origin_did, holder_did=lineage.current_holder, lineage=lineage)

    @staticmethod
    def build_entries(origin_did: str, events: List[CaptureEvent]) -> Tuple[LineageEntry, ...]:
        """
        Lay sorted events out as lineage entries.

        The origin is always entry 0. When the earliest event was written by
        someone other than the origin, a synthetic origin entry is prepended
        and none of the events is marked as origin.
        """
        entries: List[LineageEntry] = []
        synthetic_origin = not events or events[0].owner_did != origin_did
        if synthetic_origin:
            entries.append(LineageEntry(
                holder_did=origin_did,
                captured_at=None,
                is_origin=True,
                is_current=not events,
            ))

        for i, event in enumerate(events):
            entries.append(LineageEntry(
                holder_did=event.owner_did,
                captured_at=event.created_at,
                is_origin=(i == 0 and not synthetic_origin),
                is_current=(i == len(events) - 1),
                locator=event.locator,
            ))
        return tuple(entries)

    async def _discover(self, origin_did: str) -> Optional[List[RecordLocator]]:
        """
        Query every backlink source; None means no source answered.

        References are de-duplicated by locator, keeping first-seen order.
        """
        namespaces = self._config.namespaces
        sources = namespaces.backlink_sources()
        limit = self._config.rules.backlink_limit

        async def query(source: str) -> Optional[List[BacklinkRef]]:
            try:
                return await self._index.query_backlinks(origin_did, source, limit)
            except StoreError as e:
                logger.warning("Backlink query %s for %s failed: %s", source, origin_did, e)
                return None

        responses = await asyncio.gather(*(query(s) for s in sources))
        if all(r is None for r in responses):
            return None

        seen: Dict[RecordLocator, None] = {}
        for source, refs in zip(sources, responses):
            default_collection = source.rpartition(":")[0]
            for ref in refs or []:
                try:
                    locator = ref.locator(default_collection)
                except ValueError:
                    logger.debug("Ignoring malformed backlink %r", ref)
                    continue
                seen.setdefault(locator, None)
        return list(seen)

    async def _read_event(self, origin_did: str, locator: RecordLocator, now: Timestamp) -> Result:
        """Fetch one referenced record and validate it into a CaptureEvent."""
        def reject(code: ErrorCode, message: str) -> Result:
            return Result.failure(Error(code=code, message=message, timestamp=now.value,
                                        context=(("uri", locator.uri),)))

        if not self._config.namespaces.is_spore_collection(locator.collection):
            return reject(ErrorCode.RECORD_UNAVAILABLE, f"Not a spore collection: {locator.collection}")

        try:
            record = await self._store.get(locator.owner_did, locator.collection, locator.rkey)
        except StoreError as e:
            return reject(ErrorCode.RECORD_UNAVAILABLE, f"Fetch failed: {e}")

        value = record.value
        if value.get("subject") != origin_did:
            return reject(ErrorCode.RECORD_UNAVAILABLE, "Record does not reference this origin")

        try:
            created_at = Timestamp.from_iso(value.get("createdAt"))
        except (ValueError, TypeError):
            return reject(ErrorCode.INVALID_TIMESTAMP, f"Unparseable createdAt: {value.get('createdAt')!r}")

        if created_at.value - now.value > self._config.rules.clock_skew_tolerance:
            return reject(ErrorCode.FUTURE_TIMESTAMP, f"createdAt {created_at.to_iso()} is in the future")

        return Result.success(CaptureEvent(locator=locator, subject=origin_did, created_at=created_at))
