"""
Lineage Reader Tests
====================

INVARIANTS TESTED:
1. Holder = owner of the latest valid event, regardless of discovery order
2. Future-dated (beyond skew tolerance) and unparseable events never count
3. The index is a hint: stale, duplicate and mismatched pointers are dropped
4. Index outage -> UNKNOWN, never an exception
"""

import asyncio
import random
from datetime import timedelta

import pytest

from spores.config import NamespaceConfig, SporeConfig
from spores.contracts.records import BacklinkRef, LineageStatus, RecordLocator

from tests.fixtures import (
    ALICE, BOB, CAROL, COLLECTION, NEW_COLLECTION, NOT_AN_ORIGIN, NOW, ORIGIN,
    T_MINUS_1H, T_MINUS_30M, T_MINUS_2M, World, iso,
)


def resolve(world: World, origin: str = ORIGIN):
    return asyncio.run(world.reader().resolve(origin))


# =============================================================================
# EMPTY / SYNTHETIC LINEAGE
# =============================================================================

class TestSyntheticOrigin:
    def test_no_events_synthesizes_origin_as_holder(self):
        lineage = resolve(World())

        assert lineage.status == LineageStatus.RESOLVED
        assert lineage.current_holder == ORIGIN
        assert len(lineage.entries) == 1
        entry = lineage.entries[0]
        assert entry.is_origin and entry.is_current and entry.is_synthetic
        assert entry.captured_at is None
        assert lineage.latest_timestamp is None

    def test_invalid_origin_without_events_has_no_spore(self):
        lineage = resolve(World(), NOT_AN_ORIGIN)

        assert lineage.status == LineageStatus.NO_SPORE
        assert lineage.entries == ()
        assert lineage.current_holder is None

    def test_single_steal_prepends_origin(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_30M)

        lineage = resolve(world)

        assert [(e.holder_did, e.is_origin, e.is_current) for e in lineage.entries] == [
            (ORIGIN, True, False),
            (ALICE, False, True),
        ]
        assert lineage.current_holder == ALICE

    def test_origin_own_record_is_the_origin_entry(self):
        world = World()
        world.put_capture(ORIGIN, ORIGIN, T_MINUS_1H)
        world.put_capture(ALICE, ORIGIN, T_MINUS_30M)

        lineage = resolve(world)

        assert len(lineage.entries) == 2
        assert lineage.entries[0].holder_did == ORIGIN
        assert lineage.entries[0].is_origin
        assert not lineage.entries[0].is_synthetic
        assert lineage.entries[1].holder_did == ALICE


# =============================================================================
# ORDERING
# =============================================================================

class TestOrdering:
    def test_latest_event_wins(self):
        world = World()
        world.put_capture(BOB, ORIGIN, T_MINUS_2M)
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        world.put_capture(CAROL, ORIGIN, T_MINUS_30M)

        lineage = resolve(world)

        assert [e.holder_did for e in lineage.entries] == [ORIGIN, ALICE, CAROL, BOB]
        assert lineage.current_holder == BOB
        assert lineage.latest_timestamp.value == T_MINUS_2M

    @pytest.mark.parametrize("seed", range(5))
    def test_discovery_order_does_not_matter(self, seed):
        events = [(ALICE, T_MINUS_1H), (BOB, T_MINUS_30M), (CAROL, T_MINUS_2M)]
        random.Random(seed).shuffle(events)

        world = World()
        for owner, at in events:
            world.put_capture(owner, ORIGIN, at)

        assert resolve(world).current_holder == CAROL

    def test_ties_break_deterministically(self):
        forward, backward = World(), World()
        forward.put_capture(ALICE, ORIGIN, T_MINUS_30M)
        forward.put_capture(BOB, ORIGIN, T_MINUS_30M)
        backward.put_capture(BOB, ORIGIN, T_MINUS_30M)
        backward.put_capture(ALICE, ORIGIN, T_MINUS_30M)

        holder_a = resolve(forward).current_holder
        holder_b = resolve(backward).current_holder

        assert holder_a == holder_b == BOB  # "garden2" sorts after "garden1"

    def test_mixed_timestamp_formats_compare_as_instants(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, "2026-02-16T11:00:00+00:00")
        world.put_capture(BOB, ORIGIN, "2026-02-16T12:30:00+02:00")  # 10:30Z

        assert resolve(world).current_holder == ALICE


# =============================================================================
# TIMESTAMP VALIDATION
# =============================================================================

class TestTimestampValidation:
    def test_far_future_event_is_excluded(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, NOW + timedelta(minutes=20))

        lineage = resolve(world)

        assert lineage.current_holder == ORIGIN
        assert lineage.events == ()
        assert [reason for _, reason in lineage.discarded] == ["FUTURE_TIMESTAMP"]

    def test_future_within_tolerance_counts(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_30M)
        world.put_capture(BOB, ORIGIN, NOW + timedelta(minutes=4))

        assert resolve(world).current_holder == BOB

    def test_exactly_at_tolerance_counts(self):
        world = World()
        world.put_capture(BOB, ORIGIN, NOW + timedelta(minutes=5))

        assert resolve(world).current_holder == BOB

    def test_future_event_cannot_win_over_valid_history(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_30M)
        world.put_capture(BOB, ORIGIN, "2099-01-01T00:00:00.000Z")

        assert resolve(world).current_holder == ALICE

    @pytest.mark.parametrize("bad", [None, "", "yesterday", "2026-13-45T99:00:00Z", 1739707200])
    def test_unparseable_created_at_is_excluded(self, bad):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        locator = world.network.put(BOB, COLLECTION, {"subject": ORIGIN, "createdAt": bad})

        lineage = resolve(world)

        assert lineage.current_holder == ALICE
        assert (locator.uri, "INVALID_TIMESTAMP") in lineage.discarded

    def test_missing_created_at_is_excluded(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, None)

        lineage = resolve(world)

        assert lineage.current_holder == ORIGIN
        assert lineage.discarded[0][1] == "INVALID_TIMESTAMP"

    def test_skew_is_measured_against_injected_clock(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, NOW + timedelta(minutes=20))
        assert resolve(world).current_holder == ORIGIN

        world.clock.advance(minutes=16)
        assert resolve(world).current_holder == ALICE


# =============================================================================
# INDEX AS HINT
# =============================================================================

class TestIndexIsOnlyAHint:
    def test_record_fetch_failure_excludes_record(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        broken = world.put_capture(BOB, ORIGIN, T_MINUS_30M)
        world.network.unreadable.add(broken)

        lineage = resolve(world)

        assert lineage.current_holder == ALICE
        assert (broken.uri, "RECORD_UNAVAILABLE") in lineage.discarded

    def test_stale_pointer_to_missing_record_is_dropped(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        world.index.inject(ORIGIN, f"{COLLECTION}:subject",
                           BacklinkRef(owner_did=BOB, collection=COLLECTION, rkey="gone"))

        lineage = resolve(world)

        assert lineage.current_holder == ALICE
        assert len(lineage.discarded) == 1

    def test_duplicate_pointers_count_once(self):
        world = World()
        locator = world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        dup = BacklinkRef(owner_did=ALICE, collection=COLLECTION, rkey=locator.rkey)
        world.index.inject(ORIGIN, f"{COLLECTION}:subject", dup)
        world.index.inject(ORIGIN, f"{COLLECTION}:subject", dup)

        lineage = resolve(world)

        assert len(lineage.events) == 1
        assert [e.holder_did for e in lineage.entries] == [ORIGIN, ALICE]

    def test_pointer_without_collection_uses_source_collection(self):
        world = World()
        locator = world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        world.index.hide(locator)
        world.index.inject(ORIGIN, f"{COLLECTION}:subject",
                           BacklinkRef(owner_did=ALICE, collection="", rkey=locator.rkey))

        assert resolve(world).current_holder == ALICE

    def test_record_content_must_reference_origin(self):
        world = World()
        other = world.put_capture(BOB, CAROL, T_MINUS_2M)
        world.index.inject(ORIGIN, f"{COLLECTION}:subject",
                           BacklinkRef(owner_did=BOB, collection=COLLECTION, rkey=other.rkey))

        lineage = resolve(world)

        assert lineage.current_holder == ORIGIN
        assert (other.uri, "RECORD_UNAVAILABLE") in lineage.discarded

    def test_pointer_into_foreign_collection_is_dropped(self):
        world = World()
        foreign = world.network.put(BOB, "app.bsky.feed.post", {"subject": ORIGIN, "createdAt": iso(T_MINUS_2M)})
        world.index.inject(ORIGIN, f"{COLLECTION}:subject",
                           BacklinkRef(owner_did=BOB, collection=foreign.collection, rkey=foreign.rkey))

        assert resolve(world).current_holder == ORIGIN

    def test_lagging_index_hides_event_until_caught_up(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        late = world.put_capture(BOB, ORIGIN, T_MINUS_2M)
        world.index.hide(late)

        assert resolve(world).current_holder == ALICE

        world.index.reveal(late)
        assert resolve(world).current_holder == BOB

    def test_index_outage_yields_unknown(self):
        world = World()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H)
        world.index.fail_all = True

        lineage = resolve(world)

        assert lineage.status == LineageStatus.UNKNOWN
        assert lineage.entries == ()
        assert lineage.current_holder is None
        assert asyncio.run(world.reader().find_spore(ORIGIN)) is None

    def test_reader_rereads_every_time(self):
        world = World()
        reader = world.reader()
        assert asyncio.run(reader.resolve(ORIGIN)).current_holder == ORIGIN

        world.put_capture(ALICE, ORIGIN, T_MINUS_2M)
        assert asyncio.run(reader.resolve(ORIGIN)).current_holder == ALICE


# =============================================================================
# NAMESPACE MIGRATION
# =============================================================================

class TestNamespaceMigration:
    def migrated_world(self) -> World:
        return World(config=SporeConfig(namespaces=NamespaceConfig(migration_enabled=True)))

    def test_reads_both_namespaces(self):
        world = self.migrated_world()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H, collection=COLLECTION)
        world.put_capture(BOB, ORIGIN, T_MINUS_30M, collection=NEW_COLLECTION)

        lineage = resolve(world)

        assert [e.holder_did for e in lineage.entries] == [ORIGIN, ALICE, BOB]
        assert sorted(s for _, s in world.index.queries) == [
            f"{NEW_COLLECTION}:subject", f"{COLLECTION}:subject",
        ]

    def test_one_failing_source_is_tolerated(self):
        world = self.migrated_world()
        world.put_capture(ALICE, ORIGIN, T_MINUS_1H, collection=COLLECTION)
        world.index.fail_sources.add(f"{NEW_COLLECTION}:subject")

        lineage = resolve(world)

        assert lineage.status == LineageStatus.RESOLVED
        assert lineage.current_holder == ALICE

    def test_old_namespace_only_before_cutover(self):
        world = World()
        world.put_capture(BOB, ORIGIN, T_MINUS_30M, collection=NEW_COLLECTION)

        assert resolve(world).current_holder == ORIGIN


def test_empty_origin_is_a_programming_error():
    with pytest.raises(ValueError):
        asyncio.run(World().reader().resolve(""))


def test_lineage_entries_carry_locators():
    world = World()
    locator = world.put_capture(ALICE, ORIGIN, T_MINUS_1H)

    lineage = resolve(world)

    assert lineage.entries[-1].locator == locator
    assert lineage.entries[-1].locator.uri == f"at://{ALICE}/{COLLECTION}/{locator.rkey}"
    assert RecordLocator.parse(locator.uri) == locator
