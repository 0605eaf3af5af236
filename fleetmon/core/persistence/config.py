from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class PersistenceMode(StrEnum):
    """Supported persistence backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass(slots=True)
class PersistenceConfig:
    """Configuration for the local state persistence layer."""

    mode: PersistenceMode = PersistenceMode.MEMORY
    data_dir: Path = field(default_factory=lambda: Path("/tmp/fleetmon_data"))
    sqlite_filename: str = "fleetmon.sqlite"
    sqlite_wal: bool = True
    sqlite_synchronous: str = "NORMAL"

    def sqlite_path(self) -> Path:
        """Resolve the sqlite database path."""
        return self.data_dir / self.sqlite_filename
