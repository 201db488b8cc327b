"""
Deterministic Oracle Tests
==========================

INVARIANTS TESTED:
1. The recurrence matches the web client bit-for-bit (golden values)
2. Same seed -> same sequence, same verdict, every time
3. The true-rate over many seeds converges to the threshold
"""

import pytest
from hypothesis import given, strategies as st

from spores.oracle import (
    SEED_SPORE_DIDS,
    SPORE_THRESHOLD,
    STATE_MASK,
    _step,
    fold_seed,
    is_valid_spore,
    seeded_random,
    should_receive_initial_spore,
    spore_probability,
)


# =============================================================================
# GOLDEN VALUES (computed with the JavaScript web client)
# =============================================================================

GOLDEN = [
    # seed, folded hash, first three LCG states
    ("did:plc:abc", -1312228268, (328411136, 467155008, 2108924800)),
    ("did:plc:origin", 615861748, (497727744, 1007613248, 278404096)),
    ("did:plc:new-owner", 1843347128, (125432832, 256185408, 1981108096)),
    ("did:plc:garden61", 427153150, (86122112, 735194304, 245349888)),
    ("did:plc:garden0", -1371694195, (1850867456, 781959936, 532428544)),
    # Astral code point: folded as two UTF-16 surrogate code units
    ("garden-\U0001F331-seed", -1237457103, (1246614016, 1159633408, 1559478784)),
]


class TestGoldenVectors:
    @pytest.mark.parametrize("seed,expected_hash,_states", GOLDEN)
    def test_fold_matches_web_client(self, seed, expected_hash, _states):
        assert fold_seed(seed) == expected_hash

    @pytest.mark.parametrize("seed,_hash,states", GOLDEN)
    def test_draws_match_web_client(self, seed, _hash, states):
        rng = seeded_random(seed)
        for state in states:
            assert rng() == state / STATE_MASK

    def test_step_rounds_like_a_double(self):
        """Products above 2**53 lose low bits before masking, as JavaScript numbers do."""
        assert _step(2147483647) == 1043980800
        assert _step(2147483648) == 12288

    def test_probability_is_first_draw(self):
        assert spore_probability("did:plc:new-owner") == 125432832 / STATE_MASK


class TestExistencePredicate:
    def test_known_verdicts(self):
        assert is_valid_spore("did:plc:garden61") is True
        assert is_valid_spore("did:plc:new-owner") is True
        assert is_valid_spore("did:plc:garden0") is False
        assert is_valid_spore("did:plc:abc") is False

    def test_empty_identifier_never_has_a_spore(self):
        # The raw draw for "" is below the threshold; the guard wins.
        assert spore_probability("") < SPORE_THRESHOLD
        assert should_receive_initial_spore("") is False
        assert is_valid_spore("") is False

    def test_seed_dids_always_have_spores(self):
        for did in SEED_SPORE_DIDS:
            assert spore_probability(did) >= SPORE_THRESHOLD
            assert should_receive_initial_spore(did) is True
            assert is_valid_spore(did) is True

    def test_rate_converges_to_threshold(self):
        n = 20000
        hits = sum(1 for i in range(n) if is_valid_spore(f"did:plc:sample{i}"))
        assert abs(hits / n - SPORE_THRESHOLD) < 0.01


class TestDeterminism:
    @given(st.text())
    def test_predicate_is_referentially_transparent(self, seed):
        assert is_valid_spore(seed) == is_valid_spore(seed)

    @given(st.text(), st.integers(min_value=1, max_value=20))
    def test_sequences_repeat(self, seed, n):
        a, b = seeded_random(seed), seeded_random(seed)
        assert [a() for _ in range(n)] == [b() for _ in range(n)]

    @given(st.text())
    def test_draws_stay_in_unit_interval(self, seed):
        rng = seeded_random(seed)
        for _ in range(5):
            assert 0.0 <= rng() <= 1.0

    @given(st.text())
    def test_fold_stays_in_int32(self, seed):
        assert -2**31 <= fold_seed(seed) < 2**31
