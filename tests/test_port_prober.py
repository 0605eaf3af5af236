import time

import pytest

from fleetmon.discovery.port_prober import PortProber

from .stub_servers import StubFleet, make_metrics


def test_timeout_is_bounded() -> None:
    with pytest.raises(ValueError):
        PortProber(timeout=0)
    with pytest.raises(ValueError):
        PortProber(timeout=1.5)


@pytest.mark.asyncio
async def test_probe_finds_healthy_ports_only(stub_fleet: StubFleet) -> None:
    healthy = await stub_fleet.start_node(make_metrics("a"))
    sick = await stub_fleet.start_node(make_metrics("b"))
    sick.healthy = False
    closed = await stub_fleet.start_node(make_metrics("c"))
    closed_port = closed.port
    await stub_fleet.stop(closed.server)

    found = await PortProber(timeout=0.5).probe(
        ["127.0.0.1"], [healthy.port, sick.port, closed_port]
    )
    assert found == [f"http://127.0.0.1:{healthy.port}"]


@pytest.mark.asyncio
async def test_probe_skips_known_endpoints(stub_fleet: StubFleet) -> None:
    node = await stub_fleet.start_node(make_metrics("a"))
    found = await PortProber(timeout=0.5).probe(
        ["127.0.0.1"], [node.port], skip={node.endpoint}
    )
    assert found == []
    assert node.health_requests == 0


@pytest.mark.asyncio
async def test_hanging_port_costs_one_timeout(stub_fleet: StubFleet) -> None:
    fast = await stub_fleet.start_node(make_metrics("fast"))
    slow = [await stub_fleet.start_node(make_metrics(f"slow-{i}")) for i in range(3)]
    for node in slow:
        node.hang = True

    started = time.monotonic()
    found = await PortProber(timeout=0.3).probe(
        ["127.0.0.1"], [fast.port, *(node.port for node in slow)]
    )
    elapsed = time.monotonic() - started

    assert found == [fast.endpoint]
    # concurrent checks: three hanging ports do not add up
    assert elapsed < 0.3 * 3
