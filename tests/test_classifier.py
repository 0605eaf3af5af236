import pytest

from fleetmon.core.statistics import ClusterHealth
from fleetmon.datastructures.node_types import (
    CellHealth,
    CellMetric,
    LatencyMetrics,
    NodeRecord,
    NodeStatus,
    WorkerMetrics,
)
from fleetmon.discovery.classifier import StatusClassifier


def node(
    name: str,
    cells: tuple[int, ...],
    *,
    status: NodeStatus = NodeStatus.HEALTHY,
    owned: tuple[int, ...] = (),
    throughput: float = 100.0,
    p50: float = 10.0,
) -> NodeRecord:
    return NodeRecord(
        node_id=name,
        endpoint=f"http://{name}",
        cells=tuple(CellMetric(id=cell_id, queue_depth=1) for cell_id in cells),
        owned_cells=owned,
        workers=WorkerMetrics(active=4, total=8, max=16),
        latency=LatencyMetrics(p50=p50, p95=2 * p50, p99=3 * p50, avg=p50),
        throughput=throughput,
        status=status,
        last_update=0.0,
    )


def test_invalid_parameters() -> None:
    with pytest.raises(ValueError):
        StatusClassifier(replication_factor=0)
    with pytest.raises(ValueError):
        StatusClassifier(total_cells=0)


def test_cell_health_thresholds() -> None:
    classifier = StatusClassifier(replication_factor=3, total_cells=4)
    nodes = [node(f"n{i}", (0,)) for i in range(4)]
    nodes += [node("m0", (1,)), node("m1", (1,))]

    assert classifier.global_cell(nodes, 0).health is CellHealth.HEALTHY
    assert classifier.global_cell(nodes, 0).replication_count == 4
    assert classifier.global_cell(nodes, 1).health is CellHealth.DEGRADED
    assert classifier.global_cell(nodes, 1).replication_count == 2
    assert classifier.global_cell(nodes, 2).health is CellHealth.EMPTY
    assert classifier.global_cell(nodes, 2).claimants == ()


def test_offline_nodes_do_not_count() -> None:
    classifier = StatusClassifier(replication_factor=2, total_cells=1)
    nodes = [
        node("a", (0,)),
        node("b", (0,), status=NodeStatus.OFFLINE),
        node("c", (0,), status=NodeStatus.DEGRADED),
    ]
    cell = classifier.global_cell(nodes, 0)
    assert cell.claimants == ("http://a", "http://c")
    assert cell.health is CellHealth.HEALTHY


def test_owned_cells_count_without_duplicates() -> None:
    classifier = StatusClassifier(replication_factor=1, total_cells=3)
    nodes = [node("a", (0,), owned=(0, 2))]
    cells = classifier.global_cells(nodes)
    assert [c.replication_count for c in cells] == [1, 0, 1]


def test_out_of_range_cells_are_ignored() -> None:
    classifier = StatusClassifier(replication_factor=1, total_cells=2)
    cells = classifier.global_cells([node("a", (1, 5, -1))])
    assert [c.cell_id for c in cells] == [0, 1]
    assert [c.replication_count for c in cells] == [0, 1]
    with pytest.raises(ValueError):
        classifier.global_cell([], 2)


def test_aggregates_use_online_nodes_only() -> None:
    classifier = StatusClassifier(replication_factor=1, total_cells=2)
    stats = classifier.classify(
        [
            node("a", (0,), throughput=100.0, p50=10.0),
            node("b", (1,), throughput=300.0, p50=30.0, status=NodeStatus.DEGRADED),
            node("c", (0, 1), throughput=5000.0, p50=500.0, status=NodeStatus.OFFLINE),
        ]
    )
    assert stats.total_nodes == 3
    assert stats.online_nodes == 2
    assert stats.healthy_nodes == 1
    assert stats.degraded_nodes == 1
    assert stats.offline_nodes == 1
    assert stats.total_throughput == 400.0
    assert stats.total_active_workers == 8
    assert stats.total_queue_depth == 2
    assert stats.avg_latency_p50 == 20.0
    assert stats.avg_latency_p99 == 60.0
    assert stats.healthy_cells == 2
    assert stats.cluster_health is ClusterHealth.HEALTHY


def test_empty_fleet_is_all_zero_and_critical() -> None:
    stats = StatusClassifier(total_cells=4).classify([])
    assert stats.total_nodes == 0
    assert stats.online_nodes == 0
    assert stats.total_throughput == 0.0
    assert stats.avg_latency_p50 == 0.0
    assert stats.empty_cells == 4
    assert stats.cluster_health is ClusterHealth.CRITICAL


def test_cluster_health_levels() -> None:
    classifier = StatusClassifier(replication_factor=2, total_cells=2)
    full = [node("a", (0, 1)), node("b", (0, 1))]
    assert classifier.classify(full).cluster_health is ClusterHealth.HEALTHY
    partial = [node("a", (0, 1)), node("b", (0,))]
    assert classifier.classify(partial).cluster_health is ClusterHealth.DEGRADED
    missing = [node("a", (0,)), node("b", (0,))]
    assert classifier.classify(missing).cluster_health is ClusterHealth.CRITICAL


def test_statistics_serialize_camel_case() -> None:
    stats = StatusClassifier(total_cells=1).classify([node("a", (0,))])
    payload = stats.to_dict()
    assert payload["onlineNodes"] == 1
    assert payload["clusterHealth"] == "degraded"
    assert payload["replicationFactor"] == 3
