"""
AT Protocol Clients

httpx-based implementations of the store interfaces against the public
network: repositories on their PDS (with Slingshot as a record cache) and
Constellation as the backlink index.

PRINCIPLES:
===========
1. Every failure becomes a StoreError carrying the HTTP status when known
2. Reads fall back to Slingshot when a PDS cannot be resolved or fails
3. A 404 is an answer, not an outage - it is never retried elsewhere
4. Writes only ever go to the session owner's own PDS
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
import logging
import os

import httpx

from ..config import EndpointConfig
from ..contracts.base import truncate_did
from ..contracts.records import BacklinkRef, RecordLocator, StoredRecord
from . import BacklinkIndex, RecordNotFound, RecordStore, StoreError

logger = logging.getLogger(__name__)

GET_RECORD = "/xrpc/com.atproto.repo.getRecord"
LIST_RECORDS = "/xrpc/com.atproto.repo.listRecords"
CREATE_RECORD = "/xrpc/com.atproto.repo.createRecord"
GET_BACKLINKS = "/xrpc/blue.microcosm.links.getBacklinks"
GET_PROFILE = "/xrpc/app.bsky.actor.getProfile"


@dataclass(frozen=True)
class AtprotoSession:
    """Authenticated session for the acting garden."""
    did: str
    access_jwt: str
    pds_url: str

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[AtprotoSession]:
        """Session from SPORES_SESSION_DID / _ACCESS_JWT / _PDS_URL, if all are set."""
        env = os.environ if environ is None else environ
        did = env.get("SPORES_SESSION_DID")
        token = env.get("SPORES_SESSION_ACCESS_JWT")
        pds_url = env.get("SPORES_SESSION_PDS_URL")
        if not (did and token and pds_url):
            return None
        return AtprotoSession(did=did, access_jwt=token, pds_url=pds_url)


async def _get_json(http: httpx.AsyncClient, base_url: str, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
    url = base_url.rstrip("/") + path
    try:
        response = await http.get(url, params=params)
    except httpx.TimeoutException as e:
        raise StoreError(f"Timed out calling {url}: {e}") from e
    except httpx.HTTPError as e:
        raise StoreError(f"Unable to connect to {url}: {e}") from e

    if response.status_code == 404:
        raise RecordNotFound(f"{path} returned 404 from {base_url}")
    if response.status_code != 200:
        raise StoreError(
            f"{path} failed: {response.status_code} {response.text[:200]}",
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as e:
        raise StoreError(f"{path} returned invalid JSON from {base_url}") from e


class PdsResolver:
    """
    Resolve a DID to its PDS endpoint.

    did:plc goes through the PLC directory, did:web through the host's
    well-known DID document. Successful lookups are cached per instance.
    """

    def __init__(self, http: httpx.AsyncClient, endpoints: EndpointConfig):
        self._http = http
        self._endpoints = endpoints
        self._cache: Dict[str, str] = {}

    async def resolve(self, did: str) -> Optional[str]:
        if did in self._cache:
            return self._cache[did]
        try:
            document = await self._fetch_document(did)
        except StoreError as e:
            logger.warning("Failed to resolve PDS for %s: %s", did, e)
            return None
        if document is None:
            return None

        endpoint = self.pds_from_document(document)
        if endpoint:
            self._cache[did] = endpoint
        return endpoint

    async def _fetch_document(self, did: str) -> Optional[Dict[str, Any]]:
        if did.startswith("did:plc:"):
            return await _get_json(self._http, self._endpoints.plc_directory_url, f"/{did}", {})
        if did.startswith("did:web:"):
            host = did[len("did:web:"):].replace("%3A", ":")
            return await _get_json(self._http, f"https://{host}", "/.well-known/did.json", {})
        logger.warning("Unsupported DID method: %s", did)
        return None

    @staticmethod
    def pds_from_document(document: Mapping[str, Any]) -> Optional[str]:
        for service in document.get("service") or []:
            if not isinstance(service, Mapping):
                continue
            service_id = str(service.get("id", ""))
            if service_id.endswith("#atproto_pds") and service.get("type") == "AtprotoPersonalDataServer":
                endpoint = service.get("serviceEndpoint")
                if isinstance(endpoint, str) and endpoint:
                    return endpoint
        return None


class AtprotoRecordStore(RecordStore):
    """
    Record store over PDS + Slingshot.

    get() goes straight to Slingshot when prefer_slingshot is set, which is
    what lineage resolution wants: the references it follows come from many
    repositories, and resolving every PDS first is slow.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        endpoints: EndpointConfig,
        session: Optional[AtprotoSession] = None,
        resolver: Optional[PdsResolver] = None,
        prefer_slingshot: bool = True,
    ):
        self._http = http
        self._endpoints = endpoints
        self._session = session
        self._resolver = resolver or PdsResolver(http, endpoints)
        self._prefer_slingshot = prefer_slingshot

    @property
    def authenticated_did(self) -> Optional[str]:
        return self._session.did if self._session else None

    async def get(self, owner_did: str, collection: str, rkey: str) -> StoredRecord:
        if not owner_did:
            raise ValueError("owner_did is required")
        params = {"repo": owner_did, "collection": collection, "rkey": rkey}
        data = await self._read(owner_did, GET_RECORD, params, slingshot_first=self._prefer_slingshot)

        if not isinstance(data.get("value"), Mapping):
            raise StoreError(f"Record {owner_did}/{collection}/{rkey} has no value")
        return StoredRecord(
            locator=RecordLocator(owner_did=owner_did, collection=collection, rkey=rkey),
            value=data["value"],
        )

    async def list(self, owner_did: str, collection: str, limit: int = 50) -> List[StoredRecord]:
        if not owner_did:
            raise ValueError("owner_did is required")
        if not collection:
            raise ValueError("collection is required")
        params = {"repo": owner_did, "collection": collection, "limit": str(limit)}
        data = await self._read(owner_did, LIST_RECORDS, params, slingshot_first=False)

        raw_records = data.get("records")
        if not isinstance(raw_records, list):
            raise StoreError("Invalid response format: missing records array")

        records = []
        for raw in raw_records:
            if not isinstance(raw, Mapping) or not isinstance(raw.get("value"), Mapping):
                continue
            try:
                locator = RecordLocator.parse(str(raw.get("uri", "")))
            except ValueError:
                logger.debug("Skipping listed record with bad uri %r", raw.get("uri"))
                continue
            records.append(StoredRecord(locator=locator, value=raw["value"]))
        return records

    async def create(self, collection: str, value: Mapping[str, Any]) -> RecordLocator:
        if self._session is None:
            raise StoreError("Not authenticated", status_code=401)

        url = self._session.pds_url.rstrip("/") + CREATE_RECORD
        body = {"repo": self._session.did, "collection": collection, "record": dict(value)}
        try:
            response = await self._http.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self._session.access_jwt}"},
            )
        except httpx.HTTPError as e:
            raise StoreError(f"Unable to connect to {url}: {e}") from e

        if response.status_code != 200:
            raise StoreError(
                f"createRecord failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return RecordLocator.parse(response.json()["uri"])
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError("createRecord returned no usable uri") from e

    async def _read(self, owner_did: str, path: str, params: Dict[str, Any], slingshot_first: bool) -> Dict[str, Any]:
        slingshot = self._endpoints.slingshot_url
        if slingshot_first:
            return await _get_json(self._http, slingshot, path, params)

        pds_url = await self._resolver.resolve(owner_did)
        if not pds_url:
            logger.warning("Could not resolve PDS for %s, falling back to Slingshot", owner_did)
            return await _get_json(self._http, slingshot, path, params)

        try:
            return await _get_json(self._http, pds_url, path, params)
        except RecordNotFound:
            raise
        except StoreError as e:
            logger.warning("PDS request failed for %s, trying Slingshot: %s", pds_url, e)
            return await _get_json(self._http, slingshot, path, params)


class ConstellationBacklinkIndex(BacklinkIndex):
    """Constellation backlink queries. Accepts both response shapes."""

    def __init__(self, http: httpx.AsyncClient, endpoints: EndpointConfig):
        self._http = http
        self._endpoints = endpoints

    async def query_backlinks(self, target_did: str, source: str, limit: int = 100) -> List[BacklinkRef]:
        params = {"subject": target_did, "source": source, "limit": str(limit)}
        data = await _get_json(self._http, self._endpoints.constellation_url, GET_BACKLINKS, params)

        raw_refs = data.get("records")
        if raw_refs is None:
            raw_refs = data.get("links") or []

        refs = []
        for raw in raw_refs:
            if not isinstance(raw, Mapping):
                continue
            did, rkey = raw.get("did"), raw.get("rkey")
            if not did or not rkey:
                continue
            refs.append(BacklinkRef(owner_did=did, collection=raw.get("collection") or "", rkey=rkey))
        return refs


class ProfileDirectory:
    """Display labels for gardens. Presentation only; never used for ownership."""

    def __init__(self, http: httpx.AsyncClient, endpoints: EndpointConfig):
        self._http = http
        self._endpoints = endpoints

    async def get_profile(self, did: str) -> Optional[Dict[str, Any]]:
        try:
            return await _get_json(self._http, self._endpoints.bluesky_api_url, GET_PROFILE, {"actor": did})
        except RecordNotFound:
            return None

    async def display_label(self, did: str) -> str:
        try:
            profile = await self.get_profile(did)
        except StoreError as e:
            logger.debug("Profile lookup failed for %s: %s", did, e)
            profile = None
        handle = (profile or {}).get("handle")
        if handle and handle != "handle.invalid":
            return handle
        return truncate_did(did)
