"""
Directory service client.

Fetches candidate node endpoints from ``GET <directory>/nodes``. The response
may be a bare JSON list or a ``{"nodes": [...]}`` envelope. Any failure is
logged and reported as zero candidates for this cycle.
"""

from __future__ import annotations

from dataclasses import dataclass

import aiohttp
from loguru import logger

from fleetmon.datastructures.node_types import normalize_endpoint
from fleetmon.datastructures.type_aliases import (
    DurationSeconds,
    Endpoint,
    JsonValue,
    NodeId,
    UrlString,
)

from .http import REQUEST_ERRORS, client_session


@dataclass(frozen=True, slots=True)
class CandidateEndpoint:
    """An endpoint advertised by the directory."""

    endpoint: Endpoint
    node_id: NodeId | None = None
    source_field: str = "endpoint"


def _synthesize(host: str) -> Endpoint:
    host = host.strip()
    if "://" in host:
        return normalize_endpoint(host)
    return normalize_endpoint(f"https://{host}")


def resolve_candidate(entry: JsonValue) -> CandidateEndpoint | None:
    """Resolve one directory entry, or None if it names no address.

    Priority: ``endpoint``, ``url``, then ``https://<host>``, then
    ``https://<nodeId>``. Bare strings are taken as endpoints.
    """
    if isinstance(entry, str):
        endpoint = normalize_endpoint(entry)
        return CandidateEndpoint(endpoint, source_field="string") if endpoint else None
    if not isinstance(entry, dict):
        return None

    raw_node_id = entry.get("nodeId")
    node_id = raw_node_id if isinstance(raw_node_id, str) and raw_node_id else None

    for key in ("endpoint", "url"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return CandidateEndpoint(normalize_endpoint(value), node_id, key)

    host = entry.get("host")
    if isinstance(host, str) and host.strip():
        return CandidateEndpoint(_synthesize(host), node_id, "host")
    if node_id:
        return CandidateEndpoint(_synthesize(node_id), node_id, "nodeId")
    return None


def parse_directory_payload(payload: JsonValue) -> list[CandidateEndpoint]:
    """Extract candidates from a directory response body."""
    if isinstance(payload, dict):
        payload = payload.get("nodes")
    if not isinstance(payload, list):
        raise ValueError("directory response is neither a list nor a nodes envelope")

    candidates: list[CandidateEndpoint] = []
    seen: set[Endpoint] = set()
    for entry in payload:
        candidate = resolve_candidate(entry)
        if candidate is None:
            logger.debug(f"Skipping unresolvable directory entry: {entry!r}")
            continue
        if candidate.endpoint in seen:
            continue
        seen.add(candidate.endpoint)
        candidates.append(candidate)
    return candidates


class DirectoryClient:
    """Reads candidate endpoints from a central directory service."""

    def __init__(
        self,
        timeout: DurationSeconds = 5.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.timeout = timeout
        self.session = session
        self.failures = 0

    async def fetch(self, directory_url: UrlString) -> list[CandidateEndpoint]:
        """Fetch candidates; never raises, returns [] on any failure."""
        url = f"{directory_url.rstrip('/')}/nodes"
        try:
            async with (
                client_session(self.session) as session,
                session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={"Accept": "application/json"},
                ) as response,
            ):
                if not 200 <= response.status < 300:
                    self.failures += 1
                    logger.warning(
                        f"Directory {url} returned status {response.status}"
                    )
                    return []
                payload = await response.json(content_type=None)
            candidates = parse_directory_payload(payload)
        except REQUEST_ERRORS as e:
            self.failures += 1
            logger.warning(f"Directory fetch from {url} failed: {e!r}")
            return []

        logger.debug(f"Directory {url} listed {len(candidates)} candidates")
        return candidates
