"""
Set of known node endpoints, persisted across restarts.

Persistence is best effort: if the backing key/value store fails on read or
write, the store logs once and keeps working in memory for the rest of the
session.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from loguru import logger

from fleetmon.core.persistence.kv_store import KeyValueStore
from fleetmon.datastructures.node_types import normalize_endpoint
from fleetmon.datastructures.type_aliases import Endpoint

ENDPOINTS_KEY = "discovered_endpoints"


@dataclass(slots=True)
class EndpointStore:
    """Insertion-ordered endpoint set with optional persistence."""

    kv_store: KeyValueStore | None = None
    _endpoints: dict[Endpoint, None] = field(default_factory=dict)
    _persistent: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._persistent = self.kv_store is not None

    def attach(self, kv_store: KeyValueStore) -> None:
        """Start persisting to ``kv_store``; call ``load`` afterwards."""
        self.kv_store = kv_store
        self._persistent = True

    @property
    def persistent(self) -> bool:
        """False once persistence has failed or when no backing store exists."""
        return self._persistent

    async def load(self) -> int:
        """Restore persisted endpoints; returns how many were added."""
        if not self._persistent or self.kv_store is None:
            return 0
        try:
            raw = await self.kv_store.get(ENDPOINTS_KEY)
        except Exception as e:
            self._disable_persistence("load", e)
            return 0
        if raw is None:
            if self._endpoints:
                await self._persist()
            return 0

        try:
            saved = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable saved endpoints: {e}")
            return 0
        if not isinstance(saved, list):
            logger.warning("Ignoring saved endpoints: expected a JSON list")
            return 0

        added = 0
        persisted: set[Endpoint] = set()
        for entry in saved:
            if not isinstance(entry, str):
                continue
            endpoint = normalize_endpoint(entry)
            if not endpoint:
                continue
            persisted.add(endpoint)
            if endpoint not in self._endpoints:
                self._endpoints[endpoint] = None
                added += 1
        logger.info(f"Restored {added} saved endpoints")

        # endpoints added before load must survive the next restart too
        if any(endpoint not in persisted for endpoint in self._endpoints):
            await self._persist()
        return added

    async def add(self, endpoint: str) -> bool:
        """Insert ``endpoint`` if new; returns True when the set changed."""
        return await self.add_many([endpoint]) == 1

    async def add_many(self, endpoints: Iterable[str]) -> int:
        """Insert every new endpoint and persist once; returns the count added."""
        added = 0
        for candidate in endpoints:
            endpoint = normalize_endpoint(candidate)
            if not endpoint:
                logger.warning(f"Ignoring empty endpoint {candidate!r}")
                continue
            if endpoint in self._endpoints:
                continue
            self._endpoints[endpoint] = None
            added += 1
            logger.info(f"Added endpoint {endpoint}")
        if added:
            await self._persist()
        return added

    async def remove(self, endpoint: str) -> bool:
        normalized = normalize_endpoint(endpoint)
        if normalized not in self._endpoints:
            return False
        del self._endpoints[normalized]
        logger.info(f"Removed endpoint {normalized}")
        await self._persist()
        return True

    async def remove_many(self, endpoints: Iterable[str]) -> int:
        removed = 0
        for endpoint in endpoints:
            normalized = normalize_endpoint(endpoint)
            if normalized in self._endpoints:
                del self._endpoints[normalized]
                removed += 1
        if removed:
            await self._persist()
        return removed

    def list_endpoints(self) -> list[Endpoint]:
        """Snapshot of all known endpoints."""
        return list(self._endpoints)

    def contains(self, endpoint: str) -> bool:
        return normalize_endpoint(endpoint) in self._endpoints

    def __contains__(self, endpoint: object) -> bool:
        return isinstance(endpoint, str) and self.contains(endpoint)

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(list(self._endpoints))

    def __len__(self) -> int:
        return len(self._endpoints)

    async def _persist(self) -> None:
        if not self._persistent or self.kv_store is None:
            return
        payload = json.dumps(list(self._endpoints)).encode()
        try:
            await self.kv_store.put(ENDPOINTS_KEY, payload)
        except Exception as e:
            self._disable_persistence("save", e)

    def _disable_persistence(self, operation: str, error: Exception) -> None:
        self._persistent = False
        logger.warning(
            f"Endpoint persistence {operation} failed, continuing in memory only: {error}"
        )
