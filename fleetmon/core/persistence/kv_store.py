from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from loguru import logger

if TYPE_CHECKING:  # pragma: no cover - typing only
    from fleetmon.core.persistence.backend import SQLitePersistenceBackend


class KeyValueStore(Protocol):
    """Key/value persistence interface."""

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, value: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


@dataclass(slots=True)
class MemoryKeyValueStore:
    """In-memory key/value store for development and tests."""

    _entries: dict[str, bytes] = field(default_factory=dict)

    async def get(self, key: str) -> bytes | None:
        return self._entries.get(key)

    async def put(self, key: str, value: bytes) -> None:
        self._entries[key] = value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def close(self) -> None:
        return None


@dataclass(slots=True)
class SQLiteKeyValueStore:
    """SQLite-backed key/value store."""

    backend: SQLitePersistenceBackend
    namespace: str

    async def get(self, key: str) -> bytes | None:
        row = await self.backend.fetch_one(
            "SELECT value FROM kv_store WHERE namespace=? AND key=?",
            (self.namespace, key),
        )
        if row is None:
            return None
        return bytes(row[0])

    async def put(self, key: str, value: bytes) -> None:
        await self.backend.execute(
            "INSERT OR REPLACE INTO kv_store (namespace, key, value) VALUES (?, ?, ?)",
            (self.namespace, key, value),
        )

    async def delete(self, key: str) -> None:
        await self.backend.execute(
            "DELETE FROM kv_store WHERE namespace=? AND key=?",
            (self.namespace, key),
        )

    async def close(self) -> None:
        logger.debug("SQLiteKeyValueStore close: namespace={}", self.namespace)
