from dataclasses import replace

import pytest

from fleetmon.datastructures.node_types import NodeRecord, NodeStatus, WorkerMetrics
from fleetmon.discovery.metrics_fetcher import (
    FetchFailure,
    FetchSuccess,
    parse_node_record,
)
from fleetmon.discovery.reconciliation import NodeRegistry

from .stub_servers import make_metrics

A = "http://node-a:8080"
B = "http://node-b:8080"


def success(endpoint: str, node_id: str, **overrides) -> FetchSuccess:
    return FetchSuccess(
        endpoint, parse_node_record(make_metrics(node_id, **overrides), endpoint)
    )


def failure(endpoint: str) -> FetchFailure:
    return FetchFailure(endpoint, "ClientConnectorError")


def always_known(endpoint: str) -> bool:
    return True


def test_success_creates_healthy_record_and_connection() -> None:
    registry = NodeRegistry()
    result = registry.reconcile([success(A, "alpha")], is_known=always_known, now=10.0)

    assert result.succeeded == (A,)
    record = registry.get(A)
    assert record is not None
    assert record.status is NodeStatus.HEALTHY
    assert record.last_update == 10.0
    connection = registry.connection(A)
    assert connection is not None
    assert connection.connected
    assert connection.last_seen == 10.0
    assert connection.node_id == "alpha"


def test_failure_without_record_creates_placeholder() -> None:
    registry = NodeRegistry()
    result = registry.reconcile([failure(A)], is_known=always_known, now=5.0)

    assert result.placeholders == (A,)
    record = registry.get(A)
    assert record == NodeRecord.offline_placeholder(A, now=5.0)
    assert record.node_id == "node-a:8080"
    assert record.cells == ()
    connection = registry.connection(A)
    assert connection is not None
    assert not connection.connected
    assert connection.last_seen == 0.0


def test_one_record_per_endpoint_even_with_shared_node_id() -> None:
    registry = NodeRegistry()
    registry.reconcile(
        [success(A, "same"), success(B, "same"), success(A, "same")],
        is_known=always_known,
        now=1.0,
    )
    assert len(registry) == 2
    assert {node.endpoint for node in registry.nodes()} == {A, B}


def test_restart_with_new_id_replaces_record() -> None:
    registry = NodeRegistry()
    registry.reconcile([success(A, "before")], is_known=always_known, now=1.0)
    registry.reconcile([success(A, "after")], is_known=always_known, now=2.0)

    assert len(registry) == 1
    record = registry.get(A)
    assert record is not None
    assert record.node_id == "after"
    assert [c.node_id for c in registry.connections()] == ["after"]


def test_offline_freeze_holds_every_field() -> None:
    registry = NodeRegistry()
    registry.reconcile([success(A, "alpha")], is_known=always_known, now=1.0)
    before = registry.get(A)
    assert before is not None

    registry.reconcile([failure(A)], is_known=always_known, now=7.0)
    after = registry.get(A)
    assert after is not None

    assert after.status is NodeStatus.OFFLINE
    assert after.last_update == 7.0
    assert replace(after, status=before.status, last_update=before.last_update) == before
    connection = registry.connection(A)
    assert connection is not None
    assert not connection.connected
    assert connection.last_seen == 1.0


def test_offline_freeze_with_zeroed_activity() -> None:
    registry = NodeRegistry(zero_offline_activity=True)
    registry.reconcile([success(A, "alpha")], is_known=always_known, now=1.0)
    before = registry.get(A)
    assert before is not None
    assert before.throughput > 0

    registry.reconcile([failure(A)], is_known=always_known, now=2.0)
    after = registry.get(A)
    assert after is not None

    assert after.throughput == 0.0
    assert after.workers == WorkerMetrics(
        active=0, total=before.workers.total, max=before.workers.max
    )
    assert after.cells == before.cells
    assert after.latency == before.latency
    assert after.peer_id == before.peer_id


def test_recovery_overwrites_with_fresh_data() -> None:
    registry = NodeRegistry()
    registry.reconcile([success(A, "alpha")], is_known=always_known, now=1.0)
    registry.reconcile([failure(A)], is_known=always_known, now=2.0)
    registry.reconcile(
        [success(A, "alpha", throughput=999.0)], is_known=always_known, now=3.0
    )

    record = registry.get(A)
    assert record is not None
    assert record.status is NodeStatus.HEALTHY
    assert record.throughput == 999.0
    connection = registry.connection(A)
    assert connection is not None
    assert connection.connected
    assert connection.last_seen == 3.0


def test_outcomes_for_unknown_endpoints_are_discarded() -> None:
    registry = NodeRegistry()
    result = registry.reconcile(
        [success(A, "alpha"), failure(B)],
        is_known=lambda endpoint: endpoint == A,
        now=1.0,
    )
    assert result.discarded == (B,)
    assert registry.get(B) is None
    assert registry.connection(B) is None


def test_each_endpoint_is_independent() -> None:
    registry = NodeRegistry()
    result = registry.reconcile(
        [failure(A), success(B, "beta")], is_known=always_known, now=1.0
    )
    assert result.failed == (A,)
    assert result.succeeded == (B,)
    assert registry.unreachable_endpoints() == [A]


def test_forget_drops_record_and_connection() -> None:
    registry = NodeRegistry()
    registry.reconcile([success(A, "alpha")], is_known=always_known, now=1.0)
    assert registry.has_succeeded(A)
    assert registry.forget(A)
    assert registry.get(A) is None
    assert registry.connection(A) is None
    assert not registry.has_succeeded(A)
    assert not registry.forget(A)


@pytest.mark.parametrize("zero_offline_activity", [False, True])
def test_placeholder_then_success(zero_offline_activity: bool) -> None:
    registry = NodeRegistry(zero_offline_activity=zero_offline_activity)
    registry.reconcile([failure(A)], is_known=always_known, now=1.0)
    registry.reconcile([success(A, "alpha")], is_known=always_known, now=2.0)
    record = registry.get(A)
    assert record is not None
    assert record.node_id == "alpha"
    assert record.online
