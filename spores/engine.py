"""
Engine Orchestration Module

Unified interface over the oracle, lineage and capture layers.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The engine wires collaborators; it holds no ownership state of its own
3. Every steal is recorded by the audit layer
"""

from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional

import httpx

from .capture import CaptureProtocol
from .config import SporeConfig
from .contracts.base import utc_now
from .contracts.records import CaptureOutcome, HeldSpore, Lineage
from .lineage import HeldSporeFinder, LineageReader
from .observability import CaptureAuditLog
from .oracle import is_valid_spore, spore_probability
from .store import BacklinkIndex, RecordStore
from .store.atproto import (
    AtprotoRecordStore, AtprotoSession, ConstellationBacklinkIndex,
    PdsResolver, ProfileDirectory,
)


class SporeBackend:
    """
    Special spore backend for one acting garden.

    FLOW:
    =====
    1. Presentation asks for lineage / held spores (read-only)
    2. On user action, presentation calls steal()
    3. Presentation re-reads lineage / held spores; there is no push
    """

    def __init__(
        self,
        record_store: RecordStore,
        backlink_index: BacklinkIndex,
        config: Optional[SporeConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        profiles: Optional[ProfileDirectory] = None,
    ):
        self._config = config or SporeConfig()
        self._store = record_store
        self._profiles = profiles
        self._audit = CaptureAuditLog()
        self._reader = LineageReader(record_store, backlink_index, self._config, clock)
        self._finder = HeldSporeFinder(record_store, self._reader, self._config)
        self._capture = CaptureProtocol(record_store, self._reader, self._config, clock, self._audit)

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        config: Optional[SporeConfig] = None,
        session: Optional[AtprotoSession] = None,
    ) -> AsyncIterator[SporeBackend]:
        """Backend over the public AT Protocol services, owning its HTTP client."""
        config = config or SporeConfig.from_env()
        endpoints = config.endpoints
        async with httpx.AsyncClient(
            timeout=endpoints.timeout_seconds,
            headers={"User-Agent": endpoints.user_agent},
            follow_redirects=True,
        ) as http:
            store = AtprotoRecordStore(http, endpoints, session=session, resolver=PdsResolver(http, endpoints))
            yield cls(
                record_store=store,
                backlink_index=ConstellationBacklinkIndex(http, endpoints),
                config=config,
                profiles=ProfileDirectory(http, endpoints),
            )

    @property
    def config(self) -> SporeConfig:
        return self._config

    @property
    def acting_did(self) -> Optional[str]:
        return self._store.authenticated_did

    # =========================================================================
    # READ INTERFACE
    # =========================================================================

    @staticmethod
    def is_valid_spore(origin_did: str) -> bool:
        return is_valid_spore(origin_did)

    @staticmethod
    def spore_probability(did: str) -> float:
        return spore_probability(did)

    async def lineage(self, origin_did: str) -> Lineage:
        return await self._reader.resolve(origin_did)

    async def held_spores(self, garden_did: str) -> List[HeldSpore]:
        return await self._finder.find_held(garden_did)

    async def display_labels(self, dids: List[str]) -> Dict[str, str]:
        """Handles for display; empty when no profile directory is wired."""
        if self._profiles is None:
            return {}
        labels = {}
        for did in dict.fromkeys(dids):
            labels[did] = await self._profiles.display_label(did)
        return labels

    # =========================================================================
    # WRITE INTERFACE
    # =========================================================================

    async def steal(
        self,
        origin_did: str,
        thief_did: Optional[str] = None,
        previous_holder_label: Optional[str] = None,
    ) -> CaptureOutcome:
        return await self._capture.steal(origin_did, thief_did or self.acting_did or "", previous_holder_label)

    # =========================================================================
    # AUDIT INTERFACE
    # =========================================================================

    @property
    def audit(self) -> CaptureAuditLog:
        return self._audit

    def audit_report(self) -> Dict[str, object]:
        return self._audit.report()
