from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore


class PersistenceBackend(Protocol):
    """Backend protocol for persistence storage."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    def key_value_store(self, namespace: str) -> KeyValueStore: ...


@dataclass(slots=True)
class MemoryPersistenceBackend:
    """In-memory persistence backend."""

    _kv_stores: dict[str, MemoryKeyValueStore] = field(default_factory=dict)

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        self._kv_stores.clear()

    def key_value_store(self, namespace: str) -> KeyValueStore:
        store = self._kv_stores.get(namespace)
        if store is None:
            store = MemoryKeyValueStore()
            self._kv_stores[namespace] = store
        return store


@dataclass(slots=True)
class SQLitePersistenceBackend:
    """SQLite persistence backend with WAL support."""

    db_path: Path
    wal_mode: bool = True
    synchronous_mode: str = "NORMAL"
    _conn: sqlite3.Connection | None = field(init=False, default=None)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    async def open(self) -> None:
        if self._conn is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        await self.execute(
            "PRAGMA journal_mode=WAL" if self.wal_mode else "PRAGMA journal_mode=DELETE"
        )
        await self.execute(f"PRAGMA synchronous={self.synchronous_mode}")
        await self.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (namespace, key)
            )
            """
        )

    async def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    def key_value_store(self, namespace: str) -> KeyValueStore:
        return SQLiteKeyValueStore(backend=self, namespace=namespace)

    async def execute(self, query: str, params: tuple[Any, ...] = ()) -> None:
        if self._conn is None:
            raise RuntimeError("SQLite backend not opened")
        async with self._lock:
            await asyncio.to_thread(self._execute_blocking, query, params)

    async def fetch_one(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> tuple[Any, ...] | None:
        if self._conn is None:
            raise RuntimeError("SQLite backend not opened")
        async with self._lock:
            return await asyncio.to_thread(self._fetch_one_blocking, query, params)

    def _execute_blocking(self, query: str, params: tuple[Any, ...]) -> None:
        if self._conn is None:
            return
        cursor = self._conn.cursor()
        cursor.execute(query, params)
        self._conn.commit()
        cursor.close()

    def _fetch_one_blocking(
        self, query: str, params: tuple[Any, ...]
    ) -> tuple[Any, ...] | None:
        if self._conn is None:
            return None
        cursor = self._conn.cursor()
        cursor.execute(query, params)
        row = cursor.fetchone()
        cursor.close()
        return row
