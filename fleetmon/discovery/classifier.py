"""
Status classifier.

Aggregates a snapshot into cluster statistics and a per-cell replication
view. It does not decide node status: healthy/offline comes from
reconciliation and degraded from the node or the simulation model. Offline
nodes never count toward replication coverage or latency figures.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from fleetmon.core.statistics import ClusterHealth, ClusterStatistics
from fleetmon.datastructures.node_types import (
    CellHealth,
    GlobalCell,
    NodeRecord,
    NodeStatus,
)
from fleetmon.datastructures.type_aliases import CellId, Endpoint

DEFAULT_REPLICATION_FACTOR = 3
DEFAULT_TOTAL_CELLS = 64


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


@dataclass(frozen=True, slots=True)
class StatusClassifier:
    replication_factor: int = DEFAULT_REPLICATION_FACTOR
    total_cells: int = DEFAULT_TOTAL_CELLS

    def __post_init__(self) -> None:
        if self.replication_factor < 1:
            raise ValueError("Replication factor must be at least 1")
        if self.total_cells < 1:
            raise ValueError("Total cells must be at least 1")

    def cell_health(self, replication_count: int) -> CellHealth:
        if replication_count >= self.replication_factor:
            return CellHealth.HEALTHY
        if replication_count > 0:
            return CellHealth.DEGRADED
        return CellHealth.EMPTY

    def coverage(self, nodes: Sequence[NodeRecord]) -> dict[CellId, list[Endpoint]]:
        """Online claimants per cell id; every id in range is present."""
        claimants: dict[CellId, list[Endpoint]] = {
            cell_id: [] for cell_id in range(self.total_cells)
        }
        for node in nodes:
            if not node.online:
                continue
            for cell_id in sorted(node.claimed_cell_ids()):
                if cell_id in claimants:
                    claimants[cell_id].append(node.endpoint)
        return claimants

    def global_cells(self, nodes: Sequence[NodeRecord]) -> list[GlobalCell]:
        return [
            GlobalCell(
                cell_id=cell_id,
                claimants=tuple(endpoints),
                replication_count=len(endpoints),
                health=self.cell_health(len(endpoints)),
            )
            for cell_id, endpoints in self.coverage(nodes).items()
        ]

    def global_cell(self, nodes: Sequence[NodeRecord], cell_id: CellId) -> GlobalCell:
        if not 0 <= cell_id < self.total_cells:
            raise ValueError(f"Cell id {cell_id} outside 0..{self.total_cells - 1}")
        endpoints = self.coverage(nodes)[cell_id]
        return GlobalCell(
            cell_id=cell_id,
            claimants=tuple(endpoints),
            replication_count=len(endpoints),
            health=self.cell_health(len(endpoints)),
        )

    def classify(self, nodes: Sequence[NodeRecord]) -> ClusterStatistics:
        online = [node for node in nodes if node.online]
        cells = self.global_cells(nodes)
        healthy_cells = sum(1 for cell in cells if cell.health is CellHealth.HEALTHY)
        degraded_cells = sum(1 for cell in cells if cell.health is CellHealth.DEGRADED)
        empty_cells = sum(1 for cell in cells if cell.health is CellHealth.EMPTY)

        if empty_cells:
            cluster_health = ClusterHealth.CRITICAL
        elif degraded_cells:
            cluster_health = ClusterHealth.DEGRADED
        else:
            cluster_health = ClusterHealth.HEALTHY

        return ClusterStatistics(
            total_nodes=len(nodes),
            online_nodes=len(online),
            healthy_nodes=sum(1 for n in nodes if n.status is NodeStatus.HEALTHY),
            degraded_nodes=sum(1 for n in nodes if n.status is NodeStatus.DEGRADED),
            offline_nodes=sum(1 for n in nodes if n.status is NodeStatus.OFFLINE),
            secure_nodes=sum(1 for n in nodes if n.secure),
            attested_nodes=sum(1 for n in nodes if n.tee_attested),
            total_throughput=sum(n.throughput for n in online),
            total_active_workers=sum(n.workers.active for n in online),
            total_queue_depth=sum(
                cell.queue_depth for n in online for cell in n.cells
            ),
            avg_latency_p50=_mean([n.latency.p50 for n in online]),
            avg_latency_p95=_mean([n.latency.p95 for n in online]),
            avg_latency_p99=_mean([n.latency.p99 for n in online]),
            avg_latency_avg=_mean([n.latency.avg for n in online]),
            total_cells=self.total_cells,
            replication_factor=self.replication_factor,
            healthy_cells=healthy_cells,
            degraded_cells=degraded_cells,
            empty_cells=empty_cells,
            cluster_health=cluster_health,
        )
