import asyncio
import random

import pytest

from fleetmon.core.clock import ManualClock
from fleetmon.core.config import MonitorSettings
from fleetmon.core.source import SourceKind
from fleetmon.datastructures.node_types import FleetError, NodeStatus
from fleetmon.discovery.service import DiscoveryService
from fleetmon.monitor import FleetMonitor
from fleetmon.simulation.fault_model import (
    FaultSimulationModel,
    SimulatedNodeSource,
    SimulationConfig,
)

from .stub_servers import StubFleet, make_metrics
from .test_helpers import settle, wait_for_condition


def simulation_settings(**overrides) -> MonitorSettings:
    values = {
        "simulate": True,
        "simulated_node_count": 4,
        "simulation_seed": 3,
        "persistence_mode": "memory",
        "directory_url": "",
        "probe_mode": "never",
        "time_series_points": 10,
    }
    values.update(overrides)
    return MonitorSettings(**values)


def test_initial_live_snapshot_reports_nothing_discovered(
    memory_settings: MonitorSettings,
) -> None:
    monitor = FleetMonitor(memory_settings, clock=ManualClock())
    snapshot = monitor.current_snapshot()
    assert snapshot.source is SourceKind.LIVE
    assert snapshot.nodes == ()
    assert snapshot.error is FleetError.NO_NODES_DISCOVERED
    assert snapshot.time_series == ()
    assert len(snapshot.cells) == memory_settings.total_cells


def test_simulation_prefills_time_series() -> None:
    monitor = FleetMonitor(simulation_settings(), clock=ManualClock())
    snapshot = monitor.current_snapshot()
    assert snapshot.source is SourceKind.SIMULATION
    assert len(snapshot.nodes) == 4
    assert len(snapshot.time_series) == 10
    assert snapshot.error is None


@pytest.mark.asyncio
async def test_scheduled_polls_publish_snapshots() -> None:
    clock = ManualClock()
    monitor = FleetMonitor(simulation_settings(poll_interval=1.0), clock=clock)
    await monitor.start()
    try:
        await settle()
        first = monitor.current_snapshot()
        await clock.advance(1.0)
        second = monitor.current_snapshot()
        assert second.generated_at == first.generated_at + 1.0
        assert len(second.time_series) == 10
        assert second.time_series[-1].timestamp == clock.now()
    finally:
        await monitor.stop()
    assert not monitor.running


@pytest.mark.asyncio
async def test_subscribers_get_latest_snapshot_only() -> None:
    clock = ManualClock()
    monitor = FleetMonitor(simulation_settings(), clock=clock)
    stream = monitor.snapshots()
    initial = await anext(stream)
    assert initial is monitor.current_snapshot()

    await monitor.poll()
    latest = await monitor.poll()
    # the slow consumer sees only the newest of the two polls
    assert await anext(stream) is latest
    await stream.aclose()
    await monitor.stop()


@pytest.mark.asyncio
async def test_live_monitor_end_to_end(
    stub_fleet: StubFleet, memory_settings: MonitorSettings
) -> None:
    a = await stub_fleet.start_node(make_metrics("a", cells=(0, 1)))
    b = await stub_fleet.start_node(make_metrics("b", cells=(1,)))
    directory = await stub_fleet.start_directory(
        [{"endpoint": a.endpoint}, {"endpoint": b.endpoint}]
    )
    settings = memory_settings.model_copy(
        update={"directory_url": directory.url, "total_cells": 2}
    )
    monitor = FleetMonitor(settings)
    snapshot = await monitor.refresh()
    try:
        assert {n.node_id for n in snapshot.nodes} == {"a", "b"}
        assert snapshot.error is None
        assert snapshot.statistics.online_nodes == 2
        assert [c.replication_count for c in snapshot.cells] == [1, 2]

        a.available = False
        b.available = False
        snapshot = await monitor.poll()
        assert snapshot.error is FleetError.NO_NODES_REACHABLE
        assert all(n.status is NodeStatus.OFFLINE for n in snapshot.nodes)
        assert snapshot.visible_nodes(hide_offline=True) == ()
        assert len(snapshot.visible_nodes()) == 2
    finally:
        await monitor.stop()


@pytest.mark.asyncio
async def test_switching_source_discards_previous_state(
    stub_fleet: StubFleet, memory_settings: MonitorSettings
) -> None:
    node = await stub_fleet.start_node(make_metrics("live-node"))
    live = DiscoveryService(memory_settings)
    monitor = FleetMonitor(memory_settings, source=live)
    await monitor.open()
    await live.store.add(node.endpoint)
    await monitor.poll()
    assert monitor.current_snapshot().nodes[0].node_id == "live-node"

    simulated = SimulatedNodeSource(
        model=FaultSimulationModel(SimulationConfig(node_count=2), random.Random(1))
    )
    await monitor.switch_source(simulated)
    snapshot = monitor.current_snapshot()
    assert snapshot.source is SourceKind.SIMULATION
    assert {n.node_id for n in snapshot.nodes} == {"node-000", "node-001"}
    assert monitor.mode is SourceKind.SIMULATION
    await monitor.stop()


@pytest.mark.asyncio
async def test_set_mode_while_running() -> None:
    clock = ManualClock()
    monitor = FleetMonitor(simulation_settings(), clock=clock)
    await monitor.start()
    await settle()
    await monitor.set_mode(False)
    try:
        assert monitor.running
        assert monitor.mode is SourceKind.LIVE
        await wait_for_condition(
            lambda: monitor.current_snapshot().source is SourceKind.LIVE
        )
        assert monitor.current_snapshot().error is FleetError.NO_NODES_DISCOVERED
        # switching to the mode already active is a no-op
        source = monitor.source
        await monitor.set_mode(False)
        assert monitor.source is source
    finally:
        await monitor.stop()


@pytest.mark.asyncio
async def test_stop_discards_inflight_poll(
    stub_fleet: StubFleet, memory_settings: MonitorSettings
) -> None:
    node = await stub_fleet.start_node(make_metrics("slow"))
    node.hang = True
    live = DiscoveryService(memory_settings)
    monitor = FleetMonitor(memory_settings, source=live)
    await monitor.open()
    await live.store.add(node.endpoint)
    poll = asyncio.ensure_future(monitor.poll())
    await asyncio.sleep(0.05)
    await monitor.stop()
    await asyncio.gather(poll, return_exceptions=True)
    assert live.registry.nodes() == []


def test_snapshot_serializes() -> None:
    monitor = FleetMonitor(simulation_settings(), clock=ManualClock())
    payload = monitor.current_snapshot().to_dict()
    assert payload["source"] == "simulation"
    assert payload["error"] is None
    assert len(payload["nodes"]) == 4
    assert payload["nodes"][0]["nodeId"] == "node-000"
    assert len(payload["timeSeries"]) == 10


@pytest.mark.asyncio
async def test_discovered_endpoints_are_published_without_a_poll_tick(
    stub_fleet: StubFleet, memory_settings: MonitorSettings
) -> None:
    a = await stub_fleet.start_node(make_metrics("a"))
    b = await stub_fleet.start_node(make_metrics("b"))
    directory = await stub_fleet.start_directory([{"endpoint": a.endpoint}])
    settings = memory_settings.model_copy(update={"directory_url": directory.url})
    monitor = FleetMonitor(settings)
    try:
        await monitor.refresh()
        # the first refresh fetches each node once
        assert a.metrics_requests == 1

        stream = monitor.snapshots()
        await anext(stream)

        directory.payload = [{"endpoint": a.endpoint}, {"endpoint": b.endpoint}]
        assert await monitor.discover() == 1
        assert {n.node_id for n in monitor.current_snapshot().nodes} == {"a", "b"}
        published = await asyncio.wait_for(anext(stream), timeout=1.0)
        assert {n.node_id for n in published.nodes} == {"a", "b"}
        assert b.metrics_requests == 1

        # nothing new means no extra fetch
        assert await monitor.discover() == 0
        assert b.metrics_requests == 1
        await stream.aclose()
    finally:
        await monitor.stop()
