"""
Live discovery service.

Owns every piece of mutable discovery state for one monitor instance: the
endpoint store, the endpoint-keyed node registry and the HTTP clients. It is
constructed explicitly by the caller, so tests can run many isolated
instances side by side.

Refreshes are coalesced: a refresh requested while another is in flight
waits for that one instead of stacking a second fan-out. ``invalidate`` bumps
an epoch so the results of an interrupted refresh are dropped when they land.
"""

from __future__ import annotations

import asyncio

import aiohttp
from loguru import logger

from fleetmon.core.clock import Clock, SystemClock
from fleetmon.core.config import MonitorSettings
from fleetmon.core.persistence.registry import PersistenceRegistry
from fleetmon.core.source import SourceKind
from fleetmon.core.statistics import DiscoveryStatistics
from fleetmon.datastructures.node_types import (
    Connection,
    NodeRecord,
    normalize_endpoint,
)
from fleetmon.datastructures.type_aliases import Endpoint, Timestamp

from .directory_client import DirectoryClient
from .endpoint_store import EndpointStore
from .metrics_fetcher import MetricsFetcher
from .port_prober import PortProber
from .reconciliation import NodeRegistry


class DiscoveryService:
    """Discovers endpoints, polls them and reconciles the results."""

    def __init__(
        self,
        settings: MonitorSettings | None = None,
        *,
        store: EndpointStore | None = None,
        registry: NodeRegistry | None = None,
        fetcher: MetricsFetcher | None = None,
        directory: DirectoryClient | None = None,
        prober: PortProber | None = None,
        persistence: PersistenceRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or MonitorSettings()
        self.store = store or EndpointStore()
        self.registry = registry or NodeRegistry(
            zero_offline_activity=self.settings.zero_offline_activity
        )
        self.fetcher = fetcher or MetricsFetcher(timeout=self.settings.fetch_timeout)
        self.directory = directory or DirectoryClient(
            timeout=self.settings.directory_timeout
        )
        self.prober = prober or PortProber(timeout=self.settings.probe_timeout)
        self.persistence = persistence
        self.clock = clock or SystemClock()

        self._session: aiohttp.ClientSession | None = None
        self._inflight: asyncio.Task[list[NodeRecord]] | None = None
        self._epoch = 0
        self._refreshes = 0
        self._coalesced = 0
        self._discarded = 0
        self._discovery_runs = 0
        self._directory_candidates = 0
        self._probe_hits = 0
        self._last_refresh: Timestamp = 0.0

    @property
    def kind(self) -> SourceKind:
        return SourceKind.LIVE

    async def open(self) -> None:
        """Attach persistence, restore saved endpoints and open the HTTP session."""
        if self.persistence is not None:
            try:
                await self.persistence.open()
                self.store.attach(self.persistence.key_value_store("endpoints"))
            except Exception as e:
                logger.warning(
                    f"Persistence unavailable, endpoints are session-only: {e}"
                )
        await self.store.load()

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self.fetcher.session = self._session
            self.directory.session = self._session
            self.prober.session = self._session

    async def close(self) -> None:
        self.invalidate()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
            await asyncio.gather(self._inflight, return_exceptions=True)
        self._inflight = None

        if self._session is not None:
            await self._session.close()
            self._session = None
            self.fetcher.session = None
            self.directory.session = None
            self.prober.session = None

        if self.persistence is not None:
            try:
                await self.persistence.close()
            except Exception as e:
                logger.warning(f"Error closing persistence: {e}")

    async def add_endpoint(self, endpoint: str) -> bool:
        """Add an endpoint; a new endpoint triggers an immediate refresh."""
        added = await self.store.add(endpoint)
        if added:
            await self.refresh()
        return added

    async def remove_endpoint(self, endpoint: str) -> bool:
        """Remove an endpoint together with its record and connection."""
        normalized = normalize_endpoint(endpoint)
        removed = await self.store.remove(normalized)
        self.registry.forget(normalized)
        if removed:
            await self.refresh()
        return removed

    async def prune_unreachable(self) -> int:
        """Remove every endpoint currently marked disconnected."""
        unreachable = [
            endpoint
            for endpoint in self.registry.unreachable_endpoints()
            if self.store.contains(endpoint)
        ]
        removed = await self.store.remove_many(unreachable)
        for endpoint in unreachable:
            self.registry.forget(endpoint)
        if removed:
            logger.info(f"Pruned {removed} unreachable endpoints")
        return removed

    async def discover(self) -> int:
        """Query the directory and/or probe local ports for new endpoints.

        Only the endpoint set changes here; the caller decides when to poll
        the newcomers.
        """
        directory_url = self.settings.resolved_directory_url()
        lookups = []
        if directory_url:
            lookups.append(self._from_directory(directory_url))
        if self.settings.should_probe():
            lookups.append(self._from_probe())

        candidates: list[Endpoint] = []
        for found in await asyncio.gather(*lookups):
            candidates.extend(found)

        self._discovery_runs += 1
        added = await self.store.add_many(candidates)
        if added:
            logger.info(f"Discovery added {added} endpoints")
        return added

    async def _from_directory(self, directory_url: str) -> list[Endpoint]:
        candidates = await self.directory.fetch(directory_url)
        self._directory_candidates += len(candidates)
        return [candidate.endpoint for candidate in candidates]

    async def _from_probe(self) -> list[Endpoint]:
        hits = await self.prober.probe(
            self.settings.probe_hosts,
            self.settings.probe_ports(),
            skip=self.store,
        )
        self._probe_hits += len(hits)
        return hits

    async def refresh(self) -> list[NodeRecord]:
        """Poll every known endpoint once and reconcile the outcomes."""
        if self._inflight is not None and not self._inflight.done():
            self._coalesced += 1
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._refresh_once())
        return await asyncio.shield(self._inflight)

    async def _refresh_once(self) -> list[NodeRecord]:
        epoch = self._epoch
        endpoints = self.store.list_endpoints()
        outcomes = await self.fetcher.fetch_all(endpoints)

        if epoch != self._epoch:
            self._discarded += len(outcomes)
            logger.debug(f"Discarding {len(outcomes)} results from a stale refresh")
            return self.registry.nodes()

        now = self.clock.now()
        result = self.registry.reconcile(
            outcomes, is_known=self.store.contains, now=now
        )
        self._discarded += len(result.discarded)
        self._refreshes += 1
        self._last_refresh = now
        logger.debug(
            f"Refresh: {len(result.succeeded)} ok, {len(result.failed)} failed, "
            f"{len(result.placeholders)} new placeholders"
        )
        return self.registry.nodes()

    def invalidate(self) -> None:
        self._epoch += 1

    def nodes(self) -> list[NodeRecord]:
        return self.registry.nodes()

    def connections(self) -> list[Connection]:
        return self.registry.connections()

    def known_endpoint_count(self) -> int:
        return len(self.store)

    def statistics(self) -> DiscoveryStatistics:
        connections = self.registry.connections()
        return DiscoveryStatistics(
            known_endpoints=len(self.store),
            connected_endpoints=sum(1 for c in connections if c.connected),
            refreshes=self._refreshes,
            coalesced_refreshes=self._coalesced,
            discarded_results=self._discarded,
            discovery_runs=self._discovery_runs,
            directory_candidates=self._directory_candidates,
            probe_hits=self._probe_hits,
            persistent=self.store.persistent,
            last_refresh=self._last_refresh,
        )
