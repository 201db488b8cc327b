"""
Store Abstraction Layer
=======================

Interfaces for the two external collaborators: the record store and the
backlink index.

BOUNDARY ENFORCEMENT:
- Implementations move records, they never interpret them
- Failures raise StoreError; callers decide whether to exclude or surface
- create() only ever writes into the authenticated owner's repository
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from ..contracts.records import BacklinkRef, RecordLocator, StoredRecord


class StoreError(Exception):
    """A record store or index call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RecordNotFound(StoreError):
    """The addressed record or repository does not exist."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class RecordStore(ABC):
    """Owner-scoped access to records in independent repositories."""

    @property
    @abstractmethod
    def authenticated_did(self) -> Optional[str]:
        """Owner that create() writes into, or None for a read-only store."""
        pass

    @abstractmethod
    async def create(self, collection: str, value: Mapping[str, Any]) -> RecordLocator:
        """Create a record in the authenticated owner's repository."""
        pass

    @abstractmethod
    async def list(self, owner_did: str, collection: str, limit: int = 50) -> List[StoredRecord]:
        """List records in one collection of one repository."""
        pass

    @abstractmethod
    async def get(self, owner_did: str, collection: str, rkey: str) -> StoredRecord:
        """Fetch one record from its owning repository."""
        pass


class BacklinkIndex(ABC):
    """Possibly-stale pointer list: which records reference a target."""

    @abstractmethod
    async def query_backlinks(self, target_did: str, source: str, limit: int = 100) -> List[BacklinkRef]:
        """
        Args:
            target_did: Identifier being referenced
            source: "{collection}:{field}" the reference lives in
        """
        pass


__all__ = [
    "BacklinkIndex",
    "RecordNotFound",
    "RecordStore",
    "StoreError",
]
