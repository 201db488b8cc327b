"""
Shared Test Fixtures

Fixed timestamps and identifiers for deterministic testing.
All fixtures are explicit - no random generation.

Identifier choice matters here: whether a garden carries a spore is a pure
function of its DID, so origins and thieves are picked from DIDs whose
verdict is known (see tests/oracle for the golden values).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from spores.config import SporeConfig
from spores.contracts.base import Timestamp
from spores.contracts.records import RecordLocator
from spores.store.memory import InMemoryBacklinkIndex, InMemoryNetwork, InMemoryRecordStore
from spores.lineage import HeldSporeFinder, LineageReader
from spores.capture import CaptureProtocol


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

NOW = datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)
T_MINUS_1H = NOW - timedelta(hours=1)
T_MINUS_30M = NOW - timedelta(minutes=30)
T_MINUS_2M = NOW - timedelta(minutes=2)
T_MINUS_30S = NOW - timedelta(seconds=30)


# =============================================================================
# IDENTIFIERS
# =============================================================================

COLLECTION = "garden.spores.item.specialSpore"
NEW_COLLECTION = "coop.hypha.spores.item.specialSpore"

# is_valid_spore() is True for these
ORIGIN = "did:plc:garden61"
ORIGIN_2 = "did:plc:garden63"
ORIGIN_3 = "did:plc:garden65"

# is_valid_spore() is False for these
NOT_AN_ORIGIN = "did:plc:garden0"
ALICE = "did:plc:garden1"
BOB = "did:plc:garden2"
CAROL = "did:plc:garden3"


def iso(dt: datetime) -> str:
    return Timestamp(dt).to_iso()


# =============================================================================
# CLOCK
# =============================================================================

@dataclass
class FixedClock:
    """Injectable clock that only moves when told to."""
    current: datetime = NOW

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


# =============================================================================
# WORLD
# =============================================================================

@dataclass
class World:
    """A network of gardens plus the readers/protocols built over it."""
    network: InMemoryNetwork = field(default_factory=InMemoryNetwork)
    config: SporeConfig = field(default_factory=SporeConfig)
    clock: FixedClock = field(default_factory=FixedClock)
    index: Optional[InMemoryBacklinkIndex] = None

    def __post_init__(self):
        if self.index is None:
            self.index = InMemoryBacklinkIndex(self.network)

    def store(self, as_did: Optional[str] = None) -> InMemoryRecordStore:
        return InMemoryRecordStore(self.network, as_did)

    def reader(self) -> LineageReader:
        return LineageReader(self.store(), self.index, self.config, self.clock)

    def finder(self) -> HeldSporeFinder:
        return HeldSporeFinder(self.store(), self.reader(), self.config)

    def capture(self, as_did: str) -> CaptureProtocol:
        store = self.store(as_did)
        reader = LineageReader(store, self.index, self.config, self.clock)
        return CaptureProtocol(store, reader, self.config, self.clock)

    def put_capture(
        self,
        owner_did: str,
        subject: str,
        created_at,
        collection: str = COLLECTION,
    ) -> RecordLocator:
        """Write a capture record directly into a garden (fixtures, forgeries)."""
        created = created_at if isinstance(created_at, str) or created_at is None else iso(created_at)
        value = {"$type": collection, "subject": subject}
        if created is not None:
            value["createdAt"] = created
        return self.network.put(owner_did, collection, value)

    def captures_by(self, owner_did: str, collection: str = COLLECTION):
        return self.network.records(owner_did, collection)
