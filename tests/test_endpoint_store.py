import json

import pytest

from fleetmon.core.persistence.kv_store import MemoryKeyValueStore
from fleetmon.discovery.endpoint_store import ENDPOINTS_KEY, EndpointStore


class FailingKeyValueStore:
    """Key/value store whose every operation fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def get(self, key: str) -> bytes | None:
        self.calls += 1
        raise OSError("disk unavailable")

    async def put(self, key: str, value: bytes) -> None:
        self.calls += 1
        raise OSError("disk unavailable")

    async def delete(self, key: str) -> None:
        raise OSError("disk unavailable")

    async def close(self) -> None:
        return None


@pytest.mark.asyncio
async def test_add_normalizes_and_is_idempotent() -> None:
    store = EndpointStore()
    assert await store.add("  http://node-a:8080/  ")
    assert not await store.add("http://node-a:8080")
    assert not await store.add("http://node-a:8080//")
    assert store.list_endpoints() == ["http://node-a:8080"]
    assert "http://node-a:8080/" in store
    assert len(store) == 1


@pytest.mark.asyncio
async def test_add_rejects_empty_endpoints() -> None:
    store = EndpointStore()
    assert not await store.add("   ")
    assert not await store.add("/")
    assert len(store) == 0


@pytest.mark.asyncio
async def test_add_many_keeps_insertion_order_and_counts_new() -> None:
    store = EndpointStore()
    await store.add("http://b")
    added = await store.add_many(["http://a", "http://b", "http://c", "http://a/"])
    assert added == 2
    assert store.list_endpoints() == ["http://b", "http://a", "http://c"]


@pytest.mark.asyncio
async def test_remove_and_remove_many() -> None:
    store = EndpointStore()
    await store.add_many(["http://a", "http://b", "http://c"])
    assert await store.remove("http://a/")
    assert not await store.remove("http://a")
    assert await store.remove_many(["http://b", "http://zzz"]) == 1
    assert store.list_endpoints() == ["http://c"]


@pytest.mark.asyncio
async def test_persisted_set_round_trips() -> None:
    kv = MemoryKeyValueStore()
    store = EndpointStore(kv)
    await store.add_many(["http://a", "https://b"])

    raw = await kv.get(ENDPOINTS_KEY)
    assert raw is not None
    assert json.loads(raw) == ["http://a", "https://b"]

    restored = EndpointStore(kv)
    assert await restored.load() == 2
    assert set(restored.list_endpoints()) == {"http://a", "https://b"}


@pytest.mark.asyncio
async def test_load_merges_with_endpoints_added_before_load() -> None:
    kv = MemoryKeyValueStore()
    await kv.put(ENDPOINTS_KEY, json.dumps(["http://saved"]).encode())

    store = EndpointStore()
    await store.add("http://early")
    store.attach(kv)
    assert await store.load() == 1

    saved = json.loads(await kv.get(ENDPOINTS_KEY) or b"[]")
    assert set(saved) == {"http://saved", "http://early"}


@pytest.mark.asyncio
async def test_unreadable_saved_state_is_ignored() -> None:
    kv = MemoryKeyValueStore()
    await kv.put(ENDPOINTS_KEY, b"{not json")
    store = EndpointStore(kv)
    assert await store.load() == 0
    assert store.persistent

    await kv.put(ENDPOINTS_KEY, json.dumps({"endpoints": []}).encode())
    assert await store.load() == 0


@pytest.mark.asyncio
async def test_persistence_failure_degrades_to_memory() -> None:
    kv = FailingKeyValueStore()
    store = EndpointStore(kv)
    assert await store.load() == 0
    assert not store.persistent

    # later writes no longer touch the broken store
    calls = kv.calls
    assert await store.add("http://a")
    assert kv.calls == calls
    assert store.list_endpoints() == ["http://a"]


@pytest.mark.asyncio
async def test_write_failure_keeps_endpoint_in_memory() -> None:
    class ReadOnlyStore(MemoryKeyValueStore):
        async def put(self, key: str, value: bytes) -> None:
            raise PermissionError("read only")

    store = EndpointStore(ReadOnlyStore())
    await store.load()
    assert await store.add("http://a")
    assert not store.persistent
    assert store.contains("http://a")
