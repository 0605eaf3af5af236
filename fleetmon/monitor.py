"""
Fleet monitor facade.

Ties a ``NodeSource`` (live discovery or the fault simulation model) to the
classifier, the rolling time series and the poll scheduler, and publishes an
immutable ``FleetSnapshot`` after every poll. Consumers either pull
``current_snapshot()`` or iterate ``snapshots()``; each subscriber gets a
one-slot queue that always holds the newest snapshot, so a slow consumer
skips intermediate states instead of falling behind.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from loguru import logger

from fleetmon.core.clock import Clock, SystemClock
from fleetmon.core.config import MonitorSettings
from fleetmon.core.persistence.registry import PersistenceRegistry
from fleetmon.core.source import NodeSource, SourceKind
from fleetmon.core.statistics import ClusterStatistics
from fleetmon.datastructures.node_types import (
    Connection,
    FleetError,
    GlobalCell,
    NodeRecord,
)
from fleetmon.datastructures.time_series import FleetTimeSeries, TimeSeriesPoint
from fleetmon.datastructures.type_aliases import JsonDict, Timestamp
from fleetmon.discovery.classifier import StatusClassifier
from fleetmon.discovery.scheduler import PollScheduler
from fleetmon.discovery.service import DiscoveryService
from fleetmon.simulation.fault_model import (
    FaultSimulationModel,
    SimulatedNodeSource,
    SimulationConfig,
    generate_time_series,
)


@dataclass(frozen=True, slots=True)
class FleetSnapshot:
    """Everything a dashboard needs to render one frame."""

    nodes: tuple[NodeRecord, ...]
    connections: tuple[Connection, ...]
    statistics: ClusterStatistics
    cells: tuple[GlobalCell, ...]
    time_series: tuple[TimeSeriesPoint, ...]
    source: SourceKind
    error: FleetError | None = None
    generated_at: Timestamp = 0.0

    def visible_nodes(self, hide_offline: bool = False) -> tuple[NodeRecord, ...]:
        if not hide_offline:
            return self.nodes
        return tuple(node for node in self.nodes if node.online)

    def to_dict(self, hide_offline: bool = False) -> JsonDict:
        return {
            "source": self.source.value,
            "generatedAt": self.generated_at,
            "error": None if self.error is None else self.error.message,
            "statistics": self.statistics.to_dict(),
            "nodes": [node.to_dict() for node in self.visible_nodes(hide_offline)],
            "connections": [connection.to_dict() for connection in self.connections],
            "cells": [cell.to_dict() for cell in self.cells],
            "timeSeries": [point.to_dict() for point in self.time_series],
        }


def fleet_error(source: NodeSource, nodes: list[NodeRecord]) -> FleetError | None:
    if source.known_endpoint_count() == 0 or not nodes:
        return FleetError.NO_NODES_DISCOVERED
    if not any(node.online for node in nodes):
        return FleetError.NO_NODES_REACHABLE
    return None


@dataclass(slots=True)
class FleetMonitor:
    """Runs one node source and publishes snapshots of it."""

    settings: MonitorSettings = field(default_factory=MonitorSettings)
    source: NodeSource | None = None
    clock: Clock = field(default_factory=SystemClock)

    classifier: StatusClassifier = field(init=False)
    time_series: FleetTimeSeries = field(init=False)
    _scheduler: PollScheduler | None = field(init=False, default=None)
    _opened: bool = field(init=False, default=False)
    _polled: bool = field(init=False, default=False)
    _snapshot: FleetSnapshot = field(init=False)
    _subscribers: set[asyncio.Queue[FleetSnapshot]] = field(
        init=False, default_factory=set
    )

    def __post_init__(self) -> None:
        self.classifier = StatusClassifier(
            replication_factor=self.settings.replication_factor,
            total_cells=self.settings.total_cells,
        )
        self.time_series = FleetTimeSeries(
            max_points=self.settings.time_series_points
        )
        if self.source is None:
            self.source = self.build_source(self.settings.simulate)
        self._prefill_time_series()
        self._snapshot = self._build_snapshot(self._source().nodes())

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    @property
    def mode(self) -> SourceKind:
        return self._source().kind

    def build_source(self, simulate: bool) -> NodeSource:
        """Construct a fresh source of the requested kind from settings."""
        if simulate:
            config = SimulationConfig(
                node_count=self.settings.simulated_node_count,
                total_cells=self.settings.total_cells,
                replication_factor=self.settings.replication_factor,
                offline_chance=self.settings.offline_chance,
                degraded_chance=self.settings.degraded_chance,
                latency_spike_chance=self.settings.latency_spike_chance,
                packet_loss_chance=self.settings.packet_loss_chance,
            )
            model = FaultSimulationModel(
                config,
                random.Random(self.settings.simulation_seed),
                now=self.clock.now(),
            )
            return SimulatedNodeSource(model=model, clock=self.clock)
        return DiscoveryService(
            self.settings,
            persistence=PersistenceRegistry(self.settings.persistence_config()),
            clock=self.clock,
        )

    def _source(self) -> NodeSource:
        if self.source is None:
            raise RuntimeError("FleetMonitor has no node source")
        return self.source

    async def open(self) -> None:
        if not self._opened:
            await self._source().open()
            self._opened = True

    async def start(self) -> None:
        """Open the source and start polling; no-op when already running."""
        if self._scheduler is not None:
            return
        await self.open()
        self._polled = False
        self._scheduler = PollScheduler(
            self.poll,
            self.discover,
            poll_interval=self.settings.poll_interval,
            rediscovery_interval=self.settings.rediscovery_interval,
            clock=self.clock,
        )
        self._scheduler.start()
        logger.info(f"Fleet monitor started in {self.mode} mode")

    async def stop(self) -> None:
        """Stop polling, drop in-flight results and release the source."""
        scheduler = self._scheduler
        self._scheduler = None
        if scheduler is not None:
            await scheduler.stop()
        source = self._source()
        source.invalidate()
        if self._opened:
            await source.close()
            self._opened = False
        logger.info("Fleet monitor stopped")

    async def switch_source(self, source: NodeSource) -> None:
        """Replace the node source; polling resumes if it was running."""
        was_running = self.running
        await self.stop()
        self.source = source
        self.time_series.clear()
        self._prefill_time_series()
        self._publish(self._build_snapshot(source.nodes()))
        if was_running:
            await self.start()

    async def set_mode(self, simulate: bool) -> None:
        if (self.mode is SourceKind.SIMULATION) == simulate:
            return
        logger.info(f"Switching to {'simulation' if simulate else 'live'} mode")
        await self.switch_source(self.build_source(simulate))

    async def discover(self) -> int:
        """Run one discovery cycle; new endpoints are polled and published.

        Before the first poll the scheduler polls next anyway, so the
        newcomers wait for it instead of being fetched twice.
        """
        added = await self._source().discover()
        if added and self._polled:
            await self.poll()
        return added

    async def poll(self) -> FleetSnapshot:
        """Refresh the source once and publish the resulting snapshot."""
        nodes = await self._source().refresh()
        self._polled = True
        self.time_series.record(nodes, self.clock.now())
        snapshot = self._build_snapshot(nodes)
        self._publish(snapshot)
        return snapshot

    async def refresh(self) -> FleetSnapshot:
        """One discovery followed by one poll, outside the scheduler."""
        await self.open()
        polled = self._polled
        if await self.discover() and polled:
            return self._snapshot
        return await self.poll()

    def current_snapshot(self) -> FleetSnapshot:
        return self._snapshot

    async def snapshots(self) -> AsyncIterator[FleetSnapshot]:
        """Yield the current snapshot, then every newer one as it is published."""
        queue: asyncio.Queue[FleetSnapshot] = asyncio.Queue(maxsize=1)
        queue.put_nowait(self._snapshot)
        self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

    def _publish(self, snapshot: FleetSnapshot) -> None:
        self._snapshot = snapshot
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(snapshot)

    def _build_snapshot(self, nodes: list[NodeRecord]) -> FleetSnapshot:
        source = self._source()
        return FleetSnapshot(
            nodes=tuple(nodes),
            connections=tuple(source.connections()),
            statistics=self.classifier.classify(nodes),
            cells=tuple(self.classifier.global_cells(nodes)),
            time_series=self.time_series.points(),
            source=source.kind,
            error=fleet_error(source, nodes),
            generated_at=self.clock.now(),
        )

    def _prefill_time_series(self) -> None:
        if self._source().kind is not SourceKind.SIMULATION:
            return
        points = generate_time_series(
            self.time_series.max_points,
            random.Random(self.settings.simulation_seed),
            now=self.clock.now(),
            step=self.settings.poll_interval,
        )
        for point in points:
            self.time_series.append(point)
