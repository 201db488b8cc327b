"""
Spore Reporter CLI

Operator tooling for checking spore existence and inspecting lineage
against the live services.

Usage:
    spores probability did:plc:xxxx
    spores lineage did:plc:xxxx
    spores held did:plc:xxxx
"""

import argparse
import asyncio
import sys

from .config import SporeConfig
from .contracts.records import LineageStatus
from .engine import SporeBackend
from .observability import configure_logging
from .oracle import SPORE_THRESHOLD, spore_probability, is_valid_spore


def cmd_probability(args) -> int:
    """Deterministic existence check for one identifier."""
    value = spore_probability(args.did)
    valid = is_valid_spore(args.did)

    print(f"\nDID: {args.did}")
    print(f"Random value: {value:.6f}")
    print(f"Threshold: {SPORE_THRESHOLD:.6f} ({SPORE_THRESHOLD:.0%})")
    if valid:
        print("\n[YES] This DID WILL receive a special spore!")
    else:
        print("\n[NO] This DID will NOT receive a special spore.")
    print("\nNote: This is deterministic - the same DID will always get the same result.\n")
    return 0


async def _lineage(config: SporeConfig, origin_did: str) -> int:
    async with SporeBackend.connect(config) as backend:
        lineage = await backend.lineage(origin_did)

    if lineage.status == LineageStatus.UNKNOWN:
        print(f"[!] Lineage for {origin_did} unknown (backlink index unreachable).")
        return 1
    if lineage.status == LineageStatus.NO_SPORE:
        print(f"[*] {origin_did} has no special spore.")
        return 0

    print(f"\nLINEAGE OF {origin_did}")
    print("=" * 80)
    print("#   | CAPTURED AT              | FLAGS          | HOLDER")
    print("-" * 80)
    for i, entry in enumerate(lineage.entries):
        flags = ",".join(f for f, on in (("origin", entry.is_origin), ("current", entry.is_current)) if on)
        when = entry.captured_at.to_iso() if entry.captured_at else "-"
        print(f"{i:<3} | {when:<24} | {flags:<14} | {entry.holder_did}")
    if lineage.discarded:
        print(f"\n[*] {len(lineage.discarded)} reference(s) discarded:")
        for uri, reason in lineage.discarded:
            print(f"    {reason:<20} {uri}")
    return 0


async def _held(config: SporeConfig, garden_did: str) -> int:
    async with SporeBackend.connect(config) as backend:
        held = await backend.held_spores(garden_did)

    if not held:
        print(f"[*] {garden_did} holds no special spores.")
        return 0
    print(f"[*] {garden_did} holds {len(held)} spore(s):")
    for spore in held:
        print(f"    {spore.origin_did}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Special spore reporter")
    parser.add_argument("--log-level", default=None, help="Override SPORES_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command")

    prob_parser = subparsers.add_parser("probability", help="Check whether a DID has a spore")
    prob_parser.add_argument("did")

    lineage_parser = subparsers.add_parser("lineage", help="Show a spore's lineage")
    lineage_parser.add_argument("did")

    held_parser = subparsers.add_parser("held", help="List spores a garden holds")
    held_parser.add_argument("did")

    args = parser.parse_args(argv)

    config = SporeConfig.from_env()
    configure_logging(args.log_level or config.log_level)

    if args.command == "probability":
        return cmd_probability(args)
    elif args.command == "lineage":
        return asyncio.run(_lineage(config, args.did))
    elif args.command == "held":
        return asyncio.run(_held(config, args.did))
    else:
        parser.print_help()
        return 2


if __name__ == "__main__":
    sys.exit(main())
