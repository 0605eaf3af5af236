from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from .backend import (
    MemoryPersistenceBackend,
    PersistenceBackend,
    SQLitePersistenceBackend,
)
from .config import PersistenceConfig, PersistenceMode
from .kv_store import KeyValueStore


@dataclass(slots=True)
class PersistenceRegistry:
    """Registry that hands out namespaced key/value stores."""

    config: PersistenceConfig
    namespace: str = "fleetmon"
    _backend: PersistenceBackend | None = field(init=False, default=None)
    _opened: bool = field(init=False, default=False)

    async def open(self) -> None:
        if self._backend is None:
            self._backend = self._create_backend()
        await self._backend.open()
        self._opened = True

    async def close(self) -> None:
        if self._backend is None:
            return
        await self._backend.close()
        self._backend = None
        self._opened = False

    def key_value_store(self, name: str) -> KeyValueStore:
        backend = self._ensure_backend()
        return backend.key_value_store(f"{self.namespace}:{name}")

    def _ensure_backend(self) -> PersistenceBackend:
        if self._backend is None:
            self._backend = self._create_backend()
        if not self._opened:
            raise RuntimeError("PersistenceRegistry.open() must be awaited before use")
        return self._backend

    def _create_backend(self) -> PersistenceBackend:
        if self.config.mode is PersistenceMode.SQLITE:
            logger.info(
                "Initializing SQLite persistence backend at {}",
                self.config.sqlite_path(),
            )
            return SQLitePersistenceBackend(
                db_path=self.config.sqlite_path(),
                wal_mode=self.config.sqlite_wal,
                synchronous_mode=self.config.sqlite_synchronous,
            )
        logger.info("Initializing in-memory persistence backend")
        return MemoryPersistenceBackend()
