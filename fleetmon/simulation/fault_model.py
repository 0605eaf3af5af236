"""
Stochastic fault simulation model.

Produces synthetic ``NodeRecord`` lists with the same status contract the
reconciliation engine produces for real nodes, for demos and tests.

Per node and tick:

- offline: 30% recover to healthy, 20% come back degraded, else stay offline
- degraded: 40% recover to healthy, 10% drop offline, else stay degraded
- healthy: one draw ``r``; ``r < offline_chance`` goes offline,
  ``r < offline_chance + degraded_chance`` degrades, otherwise an independent
  draw against ``packet_loss_chance`` decides whether the node shows packet
  loss this tick

A latency spike (x2..x10) is drawn independently of the transition. Degraded
nodes run at 30-70% throughput with 1.5-3.5x latency. Offline nodes report no
throughput and no active workers but keep their last cells and latency.

Each node keeps a healthy baseline that random-walks every tick; status
effects are applied on top of it so they never compound.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field, replace

from loguru import logger

from fleetmon.core.clock import Clock, SystemClock
from fleetmon.core.source import SourceKind
from fleetmon.datastructures.node_types import (
    CellMetric,
    CellRole,
    Connection,
    LatencyMetrics,
    NodeRecord,
    NodeStatus,
    TeePlatform,
    WorkerMetrics,
)
from fleetmon.datastructures.time_series import TimeSeriesPoint
from fleetmon.datastructures.type_aliases import Probability, Timestamp

OFFLINE_RECOVER_CHANCE = 0.3
OFFLINE_TO_DEGRADED_CHANCE = 0.2
DEGRADED_RECOVER_CHANCE = 0.4
DEGRADED_TO_OFFLINE_CHANCE = 0.1

LATENCY_SPIKE_RANGE = (2.0, 10.0)
DEGRADED_THROUGHPUT_RANGE = (0.3, 0.7)
DEGRADED_LATENCY_RANGE = (1.5, 3.5)
DEGRADED_PACKET_LOSS_RANGE = (0.05, 0.25)
HEALTHY_PACKET_LOSS_RANGE = (0.01, 0.2)

_TEE_CYCLE: tuple[TeePlatform | None, ...] = (
    TeePlatform.INTEL_TDX,
    TeePlatform.AMD_SEV,
    None,
)


@dataclass(frozen=True, slots=True)
class SimulationConfig:
    node_count: int = 6
    total_cells: int = 64
    replication_factor: int = 3
    offline_chance: Probability = 0.02
    degraded_chance: Probability = 0.05
    latency_spike_chance: Probability = 0.05
    packet_loss_chance: Probability = 0.05

    def __post_init__(self) -> None:
        if self.node_count < 1:
            raise ValueError("Simulation needs at least one node")
        if self.total_cells < 1 or self.replication_factor < 1:
            raise ValueError("Cells and replication factor must be positive")
        for name in (
            "offline_chance",
            "degraded_chance",
            "latency_spike_chance",
            "packet_loss_chance",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.offline_chance + self.degraded_chance > 1.0:
            raise ValueError("offline_chance + degraded_chance must not exceed 1.0")


@dataclass(slots=True)
class _SimulatedNode:
    baseline: NodeRecord
    emitted: NodeRecord
    status: NodeStatus = NodeStatus.HEALTHY
    transitions: int = 0


def _peer_id(rng: random.Random) -> str:
    return "12D3KooW" + "".join(rng.choices("abcdefghijkmnopqrstuvwxyz0123456789", k=16))


def _assign_cells(
    index: int, config: SimulationConfig, rng: random.Random
) -> tuple[CellMetric, ...]:
    """Round-robin placement: cell c has primary c % n and the next RF-1 nodes."""
    replicas = min(config.replication_factor, config.node_count)
    cells = []
    for cell_id in range(config.total_cells):
        primary = cell_id % config.node_count
        offset = (index - primary) % config.node_count
        if offset >= replicas:
            continue
        cells.append(
            CellMetric(
                id=cell_id,
                signal=float(rng.randint(0, 99)),
                queue_depth=rng.randint(0, 19),
                role=CellRole.PRIMARY if offset == 0 else CellRole.REPLICA,
            )
        )
    return tuple(cells)


def generate_node(
    index: int, config: SimulationConfig, rng: random.Random, now: Timestamp
) -> NodeRecord:
    """A fresh healthy simulated node."""
    node_id = f"node-{index:03d}"
    tee_platform = _TEE_CYCLE[index % len(_TEE_CYCLE)]
    total_workers = 100 + rng.randint(0, 99)
    cells = _assign_cells(index, config, rng)
    return NodeRecord(
        node_id=node_id,
        endpoint=f"sim://{node_id}",
        peer_id=_peer_id(rng),
        secure=tee_platform is not None,
        tee_platform=tee_platform,
        tee_attested=tee_platform is not None and rng.random() > 0.1,
        uptime=float(rng.randint(0, 86400 * 7)),
        cells=cells,
        owned_cells=tuple(c.id for c in cells if c.role is CellRole.PRIMARY),
        claimed_events=rng.randint(0, 1000),
        workers=WorkerMetrics(
            active=rng.randint(0, 99), total=total_workers, max=10000
        ),
        latency=LatencyMetrics(
            p50=10 + rng.random() * 20,
            p95=30 + rng.random() * 50,
            p99=50 + rng.random() * 100,
            avg=15 + rng.random() * 25,
            samples=500 + rng.randint(0, 499),
        ),
        throughput=float(rng.randint(0, 499)),
        tasks_processed=rng.randint(0, 99999),
        tasks_failed=rng.randint(0, 99),
        fuel_consumed=rng.randint(0, 999999),
        peers=tuple(_peer_id(rng) for _ in range(rng.randint(1, 5))),
        status=NodeStatus.HEALTHY,
        last_update=now,
    )


def evolve_baseline(
    node: NodeRecord, rng: random.Random, now: Timestamp, elapsed: float
) -> NodeRecord:
    """Random-walk the healthy metrics of a node by one tick."""
    cells = tuple(
        replace(
            cell,
            signal=max(0.0, min(100.0, cell.signal + (rng.random() - 0.5) * 10)),
            queue_depth=max(0, cell.queue_depth + int((rng.random() - 0.5) * 4)),
        )
        for cell in node.cells
    )
    workers = replace(
        node.workers,
        active=max(
            0,
            min(
                node.workers.total,
                node.workers.active + int((rng.random() - 0.5) * 20),
            ),
        ),
    )
    latency = replace(
        node.latency,
        p50=max(1.0, node.latency.p50 + (rng.random() - 0.5) * 5),
        p95=max(10.0, node.latency.p95 + (rng.random() - 0.5) * 10),
        p99=max(20.0, node.latency.p99 + (rng.random() - 0.5) * 20),
    )
    processed = rng.randint(0, 9)
    return replace(
        node,
        cells=cells,
        workers=workers,
        latency=latency,
        throughput=max(0.0, node.throughput + int((rng.random() - 0.5) * 50)),
        tasks_processed=node.tasks_processed + processed,
        uptime=node.uptime + elapsed,
        last_update=now,
    )


def generate_time_series(
    points: int, rng: random.Random, *, now: Timestamp, step: float = 1.0
) -> list[TimeSeriesPoint]:
    """Synthetic history used to prefill charts in simulation mode."""
    return [
        TimeSeriesPoint(
            timestamp=now - (points - i) * step,
            throughput=200 + rng.random() * 300,
            latency_p50=12 + rng.random() * 8,
            latency_p99=60 + rng.random() * 40,
            active_workers=50 + rng.randint(0, 99),
        )
        for i in range(points)
    ]


class FaultSimulationModel:
    """Probabilistic state machine over a fixed set of simulated nodes."""

    def __init__(
        self,
        config: SimulationConfig | None = None,
        rng: random.Random | None = None,
        *,
        now: Timestamp | None = None,
    ) -> None:
        self.config = config or SimulationConfig()
        self.rng = rng or random.Random()
        self._now = time.time() if now is None else now
        self._nodes = [
            _SimulatedNode(baseline=node, emitted=node)
            for node in (
                generate_node(i, self.config, self.rng, self._now)
                for i in range(self.config.node_count)
            )
        ]
        self.ticks = 0

    def next_status(self, status: NodeStatus) -> tuple[NodeStatus, bool]:
        """Draw the next status; the flag says whether a healthy node shows packet loss."""
        draw = self.rng.random()
        if status is NodeStatus.OFFLINE:
            if draw < OFFLINE_RECOVER_CHANCE:
                return NodeStatus.HEALTHY, False
            if draw < OFFLINE_RECOVER_CHANCE + OFFLINE_TO_DEGRADED_CHANCE:
                return NodeStatus.DEGRADED, False
            return NodeStatus.OFFLINE, False

        if status is NodeStatus.DEGRADED:
            if draw < DEGRADED_RECOVER_CHANCE:
                return NodeStatus.HEALTHY, False
            if draw < DEGRADED_RECOVER_CHANCE + DEGRADED_TO_OFFLINE_CHANCE:
                return NodeStatus.OFFLINE, False
            return NodeStatus.DEGRADED, False

        if draw < self.config.offline_chance:
            return NodeStatus.OFFLINE, False
        if draw < self.config.offline_chance + self.config.degraded_chance:
            return NodeStatus.DEGRADED, False
        return NodeStatus.HEALTHY, self.rng.random() < self.config.packet_loss_chance

    def tick(self, now: Timestamp | None = None) -> list[NodeRecord]:
        """Advance every node by one step and return the emitted records."""
        now = time.time() if now is None else now
        elapsed = max(0.0, now - self._now)
        self._now = now
        self.ticks += 1

        for sim in self._nodes:
            status, packet_loss = self.next_status(sim.status)
            spike = self.rng.random() < self.config.latency_spike_chance
            if status is not sim.status:
                sim.transitions += 1
                logger.debug(
                    f"Simulated {sim.baseline.node_id}: {sim.status} -> {status}"
                )
            sim.status = status

            if status is NodeStatus.OFFLINE:
                sim.emitted = replace(
                    sim.emitted,
                    status=NodeStatus.OFFLINE,
                    throughput=0.0,
                    workers=replace(sim.emitted.workers, active=0),
                    last_update=now,
                )
                continue

            sim.baseline = evolve_baseline(sim.baseline, self.rng, now, elapsed)
            sim.emitted = self._emit(sim.baseline, status, packet_loss, spike)

        return self.nodes()

    def _emit(
        self,
        baseline: NodeRecord,
        status: NodeStatus,
        packet_loss: bool,
        spike: bool,
    ) -> NodeRecord:
        record = replace(baseline, status=status, packet_loss=0.0)
        if status is NodeStatus.DEGRADED:
            record = replace(
                record,
                throughput=record.throughput
                * self.rng.uniform(*DEGRADED_THROUGHPUT_RANGE),
                latency=record.latency.scaled(
                    self.rng.uniform(*DEGRADED_LATENCY_RANGE)
                ),
                packet_loss=self.rng.uniform(*DEGRADED_PACKET_LOSS_RANGE),
            )
        elif packet_loss:
            record = replace(
                record, packet_loss=self.rng.uniform(*HEALTHY_PACKET_LOSS_RANGE)
            )
        if spike:
            record = replace(
                record,
                latency=record.latency.scaled(self.rng.uniform(*LATENCY_SPIKE_RANGE)),
            )
        return record

    def nodes(self) -> list[NodeRecord]:
        return [sim.emitted for sim in self._nodes]

    def statuses(self) -> list[NodeStatus]:
        return [sim.status for sim in self._nodes]


@dataclass(slots=True)
class SimulatedNodeSource:
    """``NodeSource`` backed by ``FaultSimulationModel``."""

    model: FaultSimulationModel
    clock: Clock = field(default_factory=SystemClock)
    _last_seen: dict[str, Timestamp] = field(default_factory=dict)

    @property
    def kind(self) -> SourceKind:
        return SourceKind.SIMULATION

    async def open(self) -> None:
        logger.info(
            f"Simulation source with {self.model.config.node_count} nodes ready"
        )

    async def close(self) -> None:
        return None

    async def discover(self) -> int:
        return 0

    async def refresh(self) -> list[NodeRecord]:
        now = self.clock.now()
        nodes = self.model.tick(now)
        for node in nodes:
            if node.online:
                self._last_seen[node.endpoint] = now
        return nodes

    def nodes(self) -> list[NodeRecord]:
        return self.model.nodes()

    def connections(self) -> list[Connection]:
        return [
            Connection(
                endpoint=node.endpoint,
                node_id=node.node_id,
                connected=node.online,
                last_seen=self._last_seen.get(node.endpoint, 0.0),
            )
            for node in self.model.nodes()
        ]

    def known_endpoint_count(self) -> int:
        return self.model.config.node_count

    def invalidate(self) -> None:
        return None
