"""
Special Spore Subsystem

A free-for-all capture-the-flag ownership mechanic layered over an external,
eventually-consistent record store. Every garden (an independent repository)
may hold at most one spore per origin. Whether an origin has a spore at all is
decided deterministically from its identifier; who currently holds it is
reconstructed from capture events scattered across many repositories.

LAYER STRUCTURE:
================

1. ORACLE (oracle.py)
   - Responsibility: Seeded PRNG and the spore existence predicate
   - Allowed inputs: Identifier strings
   - Outputs: Floats in [0, 1], booleans
   - MUST NOT: Perform I/O, read the clock, hold state

2. STORE (store/)
   - Responsibility: Talk to the record store and backlink index
   - Allowed inputs: Owner identifiers, collections, record keys
   - Outputs: StoredRecord, BacklinkRef, RecordLocator
   - MUST NOT: Interpret records or decide ownership

3. LINEAGE (lineage/)
   - Responsibility: Rebuild capture history and resolve current holders
   - Allowed inputs: Origin / garden identifiers
   - Outputs: Lineage, HeldSpore (immutable)
   - MUST NOT: Write anything, trust index payloads, cache across calls

4. CAPTURE (capture/)
   - Responsibility: Validate and execute a steal
   - Allowed inputs: Origin, thief identifier, display label
   - Outputs: CaptureOutcome (typed success or rejection)
   - MUST NOT: Reuse stale lineage, write outside the thief's repository

5. OBSERVABILITY (observability/)
   - Responsibility: Logging setup and the capture audit trail
   - MUST NOT: Influence any ownership decision

CONSTRAINTS ENFORCED:
=====================
- Capture events are write-once; nothing is updated or deleted
- The backlink index is a discovery hint, never a source of truth
- Current holder is always derived fresh from the discoverable events
- Every failure returns a typed outcome; nothing here aborts the caller
"""

from .oracle import is_valid_spore, seeded_random, spore_probability
from .config import SporeConfig
from .engine import SporeBackend

__all__ = [
    "SporeBackend",
    "SporeConfig",
    "is_valid_spore",
    "seeded_random",
    "spore_probability",
]
