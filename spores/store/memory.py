"""
In-Memory Repository Network
============================

Deterministic stand-in for the record store and backlink index.

GUARANTEES:
- Same sequence of writes -> identical record keys and listings
- Explicit failure modes can be triggered (index outage, lag, stale
  pointers, unreadable records, rejected writes)
- No external dependencies
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
import copy
import hashlib

from ..contracts.records import BacklinkRef, RecordLocator, StoredRecord
from . import BacklinkIndex, RecordNotFound, RecordStore, StoreError


class InMemoryNetwork:
    """
    A set of independent repositories, each holding ordered collections.

    Shared by every store/index view so that writes through one garden's
    store are visible to every reader, like the real network.
    """

    def __init__(self):
        self._repos: Dict[str, Dict[str, List[Tuple[str, Dict[str, Any]]]]] = {}
        self._write_count = 0

        # Failure injection
        self.unreadable: Set[RecordLocator] = set()
        self.reject_writes = False

    def put(self, owner_did: str, collection: str, value: Mapping[str, Any], rkey: Optional[str] = None) -> RecordLocator:
        """Write a record directly, bypassing authentication (fixtures, forgeries)."""
        self._write_count += 1
        if rkey is None:
            seed = f"{owner_did}|{collection}|{self._write_count}"
            rkey = hashlib.sha256(seed.encode("utf-8")).hexdigest()[:13]
        records = self._repos.setdefault(owner_did, {}).setdefault(collection, [])
        records.append((rkey, copy.deepcopy(dict(value))))
        return RecordLocator(owner_did=owner_did, collection=collection, rkey=rkey)

    def records(self, owner_did: str, collection: str) -> List[StoredRecord]:
        return [
            StoredRecord(
                locator=RecordLocator(owner_did=owner_did, collection=collection, rkey=rkey),
                value=copy.deepcopy(value),
            )
            for rkey, value in self._repos.get(owner_did, {}).get(collection, [])
        ]

    def find(self, locator: RecordLocator) -> Optional[StoredRecord]:
        for record in self.records(locator.owner_did, locator.collection):
            if record.locator.rkey == locator.rkey:
                return record
        return None

    def owners(self) -> List[str]:
        return sorted(self._repos)

    @property
    def write_count(self) -> int:
        return self._write_count


class InMemoryRecordStore(RecordStore):
    """Record store view of the network, authenticated as one garden."""

    def __init__(self, network: InMemoryNetwork, authenticated_did: Optional[str] = None):
        self._network = network
        self._authenticated_did = authenticated_did

    @property
    def authenticated_did(self) -> Optional[str]:
        return self._authenticated_did

    async def create(self, collection: str, value: Mapping[str, Any]) -> RecordLocator:
        if not self._authenticated_did:
            raise StoreError("Not authenticated", status_code=401)
        if self._network.reject_writes:
            raise StoreError("Repository rejected the write", status_code=500)
        return self._network.put(self._authenticated_did, collection, value)

    async def list(self, owner_did: str, collection: str, limit: int = 50) -> List[StoredRecord]:
        return self._network.records(owner_did, collection)[:limit]

    async def get(self, owner_did: str, collection: str, rkey: str) -> StoredRecord:
        locator = RecordLocator(owner_did=owner_did, collection=collection, rkey=rkey)
        if locator in self._network.unreadable:
            raise StoreError(f"Repository for {owner_did} unreachable", status_code=502)
        record = self._network.find(locator)
        if record is None:
            raise RecordNotFound(f"Record not found: {locator.uri}")
        return record


class InMemoryBacklinkIndex(BacklinkIndex):
    """
    Backlink index over the network with controllable staleness.

    hide(): simulate index lag for a record that exists
    inject(): add a pointer that may be stale, duplicated or bogus
    fail_sources: sources whose queries raise
    """

    def __init__(self, network: InMemoryNetwork):
        self._network = network
        self._hidden: Set[RecordLocator] = set()
        self._injected: Dict[Tuple[str, str], List[BacklinkRef]] = {}
        self.fail_sources: Set[str] = set()
        self.fail_all = False
        self.queries: List[Tuple[str, str]] = []

    def hide(self, locator: RecordLocator):
        self._hidden.add(locator)

    def reveal(self, locator: RecordLocator):
        self._hidden.discard(locator)

    def inject(self, target_did: str, source: str, ref: BacklinkRef):
        self._injected.setdefault((target_did, source), []).append(ref)

    async def query_backlinks(self, target_did: str, source: str, limit: int = 100) -> List[BacklinkRef]:
        self.queries.append((target_did, source))
        if self.fail_all or source in self.fail_sources:
            raise StoreError(f"Backlink index unavailable for {source}", status_code=503)

        collection, _, field_name = source.rpartition(":")
        refs: List[BacklinkRef] = []
        for owner in self._network.owners():
            for record in self._network.records(owner, collection):
                if record.locator in self._hidden:
                    continue
                if record.value.get(field_name) != target_did:
                    continue
                refs.append(BacklinkRef(
                    owner_did=owner,
                    collection=collection,
                    rkey=record.locator.rkey,
                ))
        refs.extend(self._injected.get((target_did, source), []))
        return refs[:limit]
