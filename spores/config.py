"""
Configuration
=============

Dataclass configuration for the spore subsystem. Environment overrides are
read once, by from_env(); nothing else in the package touches os.environ.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Mapping, Optional
import os

OLD_NSID_PREFIX = "garden.spores"
NEW_NSID_PREFIX = "coop.hypha.spores"
SPECIAL_SPORE_NSID = "item.specialSpore"
SUBJECT_FIELD = "subject"

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


@dataclass
class EndpointConfig:
    """External services the AT Protocol clients talk to."""
    slingshot_url: str = "https://slingshot.wisp.place"
    constellation_url: str = "https://constellation.microcosm.blue"
    plc_directory_url: str = "https://plc.directory"
    bluesky_api_url: str = "https://public.api.bsky.app"
    timeout_seconds: float = 15.0
    user_agent: str = "spore-capture/0.1"


@dataclass
class CaptureRules:
    """
    Timing rules for lineage resolution and stealing.

    cooldown: minimum age of the latest capture before the next steal
    clock_skew_tolerance: how far in the future a createdAt may claim to be
    """
    cooldown: timedelta = timedelta(minutes=1)
    clock_skew_tolerance: timedelta = timedelta(minutes=5)
    backlink_limit: int = 100
    own_records_limit: int = 10

    def __post_init__(self):
        if self.cooldown < timedelta(0):
            raise ValueError("cooldown must not be negative")
        if self.clock_skew_tolerance < timedelta(0):
            raise ValueError("clock_skew_tolerance must not be negative")
        if self.backlink_limit < 1 or self.own_records_limit < 1:
            raise ValueError("record limits must be positive")


@dataclass
class NamespaceConfig:
    """
    Collection naming across the NSID migration.

    Before cutover everything reads and writes the old namespace. Once the
    migration is enabled, writes go to the new namespace and reads cover
    both, new first.
    """
    migration_enabled: bool = False

    def write_namespace(self) -> str:
        return "new" if self.migration_enabled else "old"

    def read_namespaces(self) -> List[str]:
        return ["new", "old"] if self.migration_enabled else ["old"]

    @staticmethod
    def collection(namespace: str) -> str:
        prefix = NEW_NSID_PREFIX if namespace == "new" else OLD_NSID_PREFIX
        return f"{prefix}.{SPECIAL_SPORE_NSID}"

    def write_collection(self) -> str:
        return self.collection(self.write_namespace())

    def read_collections(self) -> List[str]:
        return [self.collection(ns) for ns in self.read_namespaces()]

    def backlink_sources(self, field_name: str = SUBJECT_FIELD) -> List[str]:
        return [f"{c}:{field_name}" for c in self.read_collections()]

    def is_spore_collection(self, collection: str) -> bool:
        return collection in (self.collection("old"), self.collection("new"))


@dataclass
class SporeConfig:
    """Unified configuration for the subsystem."""
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    rules: CaptureRules = field(default_factory=CaptureRules)
    namespaces: NamespaceConfig = field(default_factory=NamespaceConfig)
    log_level: str = "INFO"

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> SporeConfig:
        env = os.environ if environ is None else environ
        defaults = EndpointConfig()
        endpoints = EndpointConfig(
            slingshot_url=env.get("SPORES_SLINGSHOT_URL", defaults.slingshot_url),
            constellation_url=env.get("SPORES_CONSTELLATION_URL", defaults.constellation_url),
            plc_directory_url=env.get("SPORES_PLC_DIRECTORY_URL", defaults.plc_directory_url),
            bluesky_api_url=env.get("SPORES_BLUESKY_API_URL", defaults.bluesky_api_url),
            timeout_seconds=float(env.get("SPORES_HTTP_TIMEOUT", defaults.timeout_seconds)),
        )
        return SporeConfig(
            endpoints=endpoints,
            rules=CaptureRules(),
            namespaces=NamespaceConfig(migration_enabled=_flag(env.get("SPORES_NSID_MIGRATION"))),
            log_level=env.get("SPORES_LOG_LEVEL", "INFO").upper(),
        )
