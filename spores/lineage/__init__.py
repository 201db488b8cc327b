"""
Lineage Layer

RESPONSIBILITY: Reconstruct ownership history and resolve current holders
ALLOWED INPUTS: Origin and garden identifiers
OUTPUTS: Lineage, HeldSpore

WHAT THIS LAYER MUST NOT DO:
============================
- Write records
- Trust backlink index payloads for record content
- Cache a resolved holder across calls
"""

from .reader import LineageReader
from .held import HeldSporeFinder

__all__ = ["HeldSporeFinder", "LineageReader"]
