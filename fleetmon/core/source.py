"""
Node source protocol.

The live discovery pipeline and the fault simulation model both implement
``NodeSource`` so consumers and tests never care where records come from.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol

from fleetmon.datastructures.node_types import Connection, NodeRecord


class SourceKind(StrEnum):
    LIVE = "live"
    SIMULATION = "simulation"


class NodeSource(Protocol):
    @property
    def kind(self) -> SourceKind: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def discover(self) -> int:
        """Run one discovery cycle; returns how many endpoints were added."""
        ...

    async def refresh(self) -> list[NodeRecord]:
        """Run one poll cycle and return the full record set."""
        ...

    def nodes(self) -> list[NodeRecord]: ...

    def connections(self) -> list[Connection]: ...

    def known_endpoint_count(self) -> int: ...

    def invalidate(self) -> None:
        """Discard results of any refresh that is still in flight."""
        ...
