import pytest

from fleetmon.discovery.directory_client import (
    DirectoryClient,
    parse_directory_payload,
    resolve_candidate,
)

from .stub_servers import StubFleet


class TestResolveCandidate:
    def test_endpoint_field_wins(self) -> None:
        candidate = resolve_candidate(
            {"endpoint": "http://a:1/", "url": "http://b:2", "host": "c"}
        )
        assert candidate is not None
        assert candidate.endpoint == "http://a:1"
        assert candidate.source_field == "endpoint"

    def test_url_before_host(self) -> None:
        candidate = resolve_candidate({"url": "http://b:2", "host": "c"})
        assert candidate is not None
        assert candidate.endpoint == "http://b:2"

    def test_host_synthesizes_https(self) -> None:
        candidate = resolve_candidate({"host": "node-7.example.com", "nodeId": "n7"})
        assert candidate is not None
        assert candidate.endpoint == "https://node-7.example.com"
        assert candidate.node_id == "n7"

    def test_host_with_scheme_is_kept(self) -> None:
        candidate = resolve_candidate({"host": "http://10.0.0.5:8080"})
        assert candidate is not None
        assert candidate.endpoint == "http://10.0.0.5:8080"

    def test_node_id_is_last_resort(self) -> None:
        candidate = resolve_candidate({"nodeId": "node-9"})
        assert candidate is not None
        assert candidate.endpoint == "https://node-9"
        assert candidate.source_field == "nodeId"

    def test_unresolvable_entries(self) -> None:
        assert resolve_candidate({}) is None
        assert resolve_candidate({"endpoint": "  ", "host": ""}) is None
        assert resolve_candidate(42) is None
        assert resolve_candidate(None) is None

    def test_string_entry(self) -> None:
        candidate = resolve_candidate("http://plain:9000/")
        assert candidate is not None
        assert candidate.endpoint == "http://plain:9000"


def test_payload_shapes() -> None:
    entries = [{"endpoint": "http://h1:8080"}, {"host": "h2"}]
    bare = {c.endpoint for c in parse_directory_payload(entries)}
    wrapped = {c.endpoint for c in parse_directory_payload({"nodes": entries})}
    assert bare == wrapped == {"http://h1:8080", "https://h2"}


def test_payload_duplicates_collapse() -> None:
    candidates = parse_directory_payload(
        [{"endpoint": "http://h1"}, {"url": "http://h1/"}, {"host": "http://h1"}]
    )
    assert [c.endpoint for c in candidates] == ["http://h1"]


def test_payload_of_wrong_shape_is_rejected() -> None:
    with pytest.raises(ValueError):
        parse_directory_payload({"items": []})
    with pytest.raises(ValueError):
        parse_directory_payload("nodes")


@pytest.mark.asyncio
async def test_fetch_from_directory(stub_fleet: StubFleet) -> None:
    directory = await stub_fleet.start_directory(
        [{"endpoint": "http://h1:8080"}, {"host": "h2"}]
    )
    client = DirectoryClient(timeout=2.0)
    candidates = await client.fetch(directory.url + "/")
    assert {c.endpoint for c in candidates} == {"http://h1:8080", "https://h2"}
    assert directory.requests == 1
    assert client.failures == 0


@pytest.mark.asyncio
async def test_fetch_envelope(stub_fleet: StubFleet) -> None:
    directory = await stub_fleet.start_directory(
        {"nodes": [{"nodeId": "alpha"}, {"url": "http://beta:1"}]}
    )
    candidates = await DirectoryClient(timeout=2.0).fetch(directory.url)
    assert [c.endpoint for c in candidates] == ["https://alpha", "http://beta:1"]


@pytest.mark.asyncio
async def test_error_status_yields_no_candidates(stub_fleet: StubFleet) -> None:
    directory = await stub_fleet.start_directory([{"host": "h"}])
    directory.status = 500
    client = DirectoryClient(timeout=2.0)
    assert await client.fetch(directory.url) == []
    assert client.failures == 1


@pytest.mark.asyncio
async def test_malformed_body_yields_no_candidates(stub_fleet: StubFleet) -> None:
    directory = await stub_fleet.start_directory({"unexpected": True})
    client = DirectoryClient(timeout=2.0)
    assert await client.fetch(directory.url) == []
    assert client.failures == 1


@pytest.mark.asyncio
async def test_unreachable_directory_yields_no_candidates(
    stub_fleet: StubFleet,
) -> None:
    directory = await stub_fleet.start_directory([])
    url = directory.url
    await stub_fleet.stop(directory.server)
    client = DirectoryClient(timeout=1.0)
    assert await client.fetch(url) == []
    assert client.failures == 1
