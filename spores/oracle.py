"""
Deterministic Oracle
====================

Seeded pseudo-random generator and the spore existence predicate.

GUARANTEES:
- Same seed string -> identical sequence of draws, on every client
- No I/O, no clock, no external randomness
- The hash fold and LCG constants are part of the public contract

The recurrence reproduces the JavaScript web client exactly, including its
arithmetic: the fold works on UTF-16 code units with 32-bit wraparound, and
the LCG step is evaluated in IEEE-754 doubles before masking, which loses
low-order bits once the product exceeds 2**53. Evaluating the step in exact
integer arithmetic would produce a different (incompatible) sequence.
"""

from __future__ import annotations
from typing import Callable, FrozenSet

LCG_MULTIPLIER = 1103515245
LCG_INCREMENT = 12345
STATE_MASK = 0x7FFFFFFF

SPORE_THRESHOLD = 0.10

# Gardens that always carry a spore regardless of the draw.
SEED_SPORE_DIDS: FrozenSet[str] = frozenset({
    "did:plc:y3lae7hmqiwyq7w2v3bcb2c2",
})


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _utf16_code_units(seed: str):
    data = seed.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def fold_seed(seed: str) -> int:
    """Fold a seed string into a signed 32-bit hash."""
    h = 0
    for unit in _utf16_code_units(seed):
        h = _to_int32(_to_int32(h << 5) - h + unit)
    return h


def _step(state: int) -> int:
    product = float(state) * float(LCG_MULTIPLIER) + float(LCG_INCREMENT)
    return int(product) & STATE_MASK


def seeded_random(seed: str) -> Callable[[], float]:
    """
    Return a generator function closed over the seed's state.

    Each call advances the state once and returns state / 0x7FFFFFFF.
    """
    state = abs(fold_seed(seed))

    def draw() -> float:
        nonlocal state
        state = _step(state)
        return state / STATE_MASK

    return draw


def spore_probability(did: str) -> float:
    """First draw for an identifier; the value compared against the threshold."""
    return seeded_random(did)()


def should_receive_initial_spore(did: str) -> bool:
    if not did:
        return False
    if did in SEED_SPORE_DIDS:
        return True
    return spore_probability(did) < SPORE_THRESHOLD


def is_valid_spore(origin_did: str) -> bool:
    """Whether a spore may legitimately exist for this origin."""
    return should_receive_initial_spore(origin_did)
