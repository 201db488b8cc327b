"""
Held-Items Finder
=================

Which spores does a garden currently, validly hold?

Two passes, asymmetric on purpose:
1. The garden's own spore (if its identifier has one) can only be confirmed
   by checking that nobody else's event supersedes it - needs the index.
2. Spores the garden captured are listed from its own collection, which is
   authoritative and index-free; each is then confirmed against lineage.

An origin failing the existence predicate is never reported, even when a
well-formed capture event for it exists somewhere.
"""

from __future__ import annotations
from typing import List, Optional
import asyncio
import logging

from ..config import SporeConfig
from ..contracts.records import HeldSpore, StoredRecord
from ..oracle import is_valid_spore
from ..store import RecordStore, StoreError
from .reader import LineageReader

logger = logging.getLogger(__name__)


class HeldSporeFinder:
    def __init__(
        self,
        record_store: RecordStore,
        reader: LineageReader,
        config: Optional[SporeConfig] = None,
    ):
        self._store = record_store
        self._reader = reader
        self._config = config or SporeConfig()

    async def find_held(self, garden_did: str) -> List[HeldSpore]:
        if not garden_did:
            raise ValueError("garden_did must be a non-empty string")

        held: List[HeldSpore] = []
        counted = set()

        if is_valid_spore(garden_did):
            counted.add(garden_did)
            spore = await self._reader.find_spore(garden_did)
            if spore and spore.holder_did == garden_did:
                held.append(spore)

        candidates: List[str] = []
        for record in await self._own_records(garden_did):
            origin = record.value.get("subject")
            if not isinstance(origin, str) or not origin:
                continue
            if origin in counted or not is_valid_spore(origin):
                continue
            counted.add(origin)
            candidates.append(origin)

        spores = await asyncio.gather(*(self._reader.find_spore(o) for o in candidates))
        for spore in spores:
            if spore and spore.holder_did == garden_did:
                held.append(spore)
        return held

    async def _own_records(self, garden_did: str) -> List[StoredRecord]:
        collections = self._config.namespaces.read_collections()
        limit = self._config.rules.own_records_limit

        async def list_one(collection: str) -> List[StoredRecord]:
            try:
                return await self._store.list(garden_did, collection, limit)
            except StoreError as e:
                logger.warning("Listing %s for %s failed: %s", collection, garden_did, e)
                return []

        listings = await asyncio.gather(*(list_one(c) for c in collections))
        return [record for listing in listings for record in listing]

