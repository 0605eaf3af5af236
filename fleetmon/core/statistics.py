"""
Statistics dataclasses for fleetmon.

Typed return values for the classifier, the discovery service and the poll
scheduler, in place of loose ``dict[str, Any]`` results.
"""

from dataclasses import dataclass
from enum import StrEnum

from fleetmon.datastructures.type_aliases import JsonDict, Timestamp


class ClusterHealth(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class ClusterStatistics:
    """Fleet aggregates computed over one snapshot."""

    total_nodes: int = 0
    online_nodes: int = 0
    healthy_nodes: int = 0
    degraded_nodes: int = 0
    offline_nodes: int = 0
    secure_nodes: int = 0
    attested_nodes: int = 0
    total_throughput: float = 0.0
    total_active_workers: int = 0
    total_queue_depth: int = 0
    avg_latency_p50: float = 0.0
    avg_latency_p95: float = 0.0
    avg_latency_p99: float = 0.0
    avg_latency_avg: float = 0.0
    total_cells: int = 0
    replication_factor: int = 0
    healthy_cells: int = 0
    degraded_cells: int = 0
    empty_cells: int = 0
    cluster_health: ClusterHealth = ClusterHealth.CRITICAL

    def to_dict(self) -> JsonDict:
        return {
            "totalNodes": self.total_nodes,
            "onlineNodes": self.online_nodes,
            "healthyNodes": self.healthy_nodes,
            "degradedNodes": self.degraded_nodes,
            "offlineNodes": self.offline_nodes,
            "secureNodes": self.secure_nodes,
            "attestedNodes": self.attested_nodes,
            "totalThroughput": self.total_throughput,
            "totalActiveWorkers": self.total_active_workers,
            "totalQueueDepth": self.total_queue_depth,
            "avgLatencyP50": self.avg_latency_p50,
            "avgLatencyP95": self.avg_latency_p95,
            "avgLatencyP99": self.avg_latency_p99,
            "avgLatencyAvg": self.avg_latency_avg,
            "totalCells": self.total_cells,
            "replicationFactor": self.replication_factor,
            "healthyCells": self.healthy_cells,
            "degradedCells": self.degraded_cells,
            "emptyCells": self.empty_cells,
            "clusterHealth": self.cluster_health.value,
        }


@dataclass(frozen=True, slots=True)
class DiscoveryStatistics:
    """Counters kept by the discovery service."""

    known_endpoints: int
    connected_endpoints: int
    refreshes: int
    coalesced_refreshes: int
    discarded_results: int
    discovery_runs: int
    directory_candidates: int
    probe_hits: int
    persistent: bool
    last_refresh: Timestamp


@dataclass(frozen=True, slots=True)
class SchedulerStatistics:
    """Counters kept by the poll scheduler."""

    running: bool
    poll_ticks: int
    discovery_ticks: int
    skipped_ticks: int
    tick_errors: int
