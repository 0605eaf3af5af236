"""
Node data model for fleet monitoring.

A ``NodeRecord`` holds the last known metrics of one endpoint. A
``Connection`` holds reachability bookkeeping for the same endpoint. The two
are kept apart on purpose: a node can be unreachable while its record still
carries the last good metrics snapshot.

All types are immutable; updates go through ``dataclasses.replace``.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum, StrEnum

from .type_aliases import (
    CellId,
    Endpoint,
    JsonDict,
    LatencyMs,
    NodeId,
    OpsPerSecond,
    PeerId,
    SignalLevel,
    Timestamp,
)

_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class NodeStatus(StrEnum):
    """Three-state health verdict of a node."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OFFLINE = "offline"


class CellRole(StrEnum):
    """Role a node plays for a cell it carries."""

    PRIMARY = "primary"
    REPLICA = "replica"


class CellHealth(StrEnum):
    """Replication verdict for a single cell across the fleet."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    EMPTY = "empty"


class TeePlatform(Enum):
    """Trusted execution platforms a node may report."""

    INTEL_TDX = "IntelTDX"
    AMD_SEV = "AmdSEV"


class FleetError(StrEnum):
    """Fleet-level conditions surfaced to consumers instead of per-node state."""

    NO_NODES_DISCOVERED = "no_nodes_discovered"
    NO_NODES_REACHABLE = "no_nodes_reachable"

    @property
    def message(self) -> str:
        if self is FleetError.NO_NODES_DISCOVERED:
            return "No nodes discovered. Check if nodes are running."
        return "No nodes reachable. All known endpoints are offline."


def normalize_endpoint(endpoint: str) -> Endpoint:
    """Strip surrounding whitespace and trailing slashes."""
    return endpoint.strip().rstrip("/")


def endpoint_node_id(endpoint: Endpoint) -> NodeId:
    """Derive a node id from an endpoint by dropping its scheme."""
    return _SCHEME_PATTERN.sub("", endpoint)


@dataclass(frozen=True, slots=True)
class CellMetric:
    """A shard of work carried by a node."""

    id: CellId
    signal: SignalLevel = 0.0
    queue_depth: int = 0
    role: CellRole | None = None

    def to_dict(self) -> JsonDict:
        payload: JsonDict = {
            "id": self.id,
            "signal": self.signal,
            "queueDepth": self.queue_depth,
        }
        if self.role is not None:
            payload["role"] = self.role.value
        return payload


@dataclass(frozen=True, slots=True)
class WorkerMetrics:
    active: int = 0
    total: int = 0
    max: int = 0

    def to_dict(self) -> JsonDict:
        return {"active": self.active, "total": self.total, "max": self.max}


@dataclass(frozen=True, slots=True)
class LatencyMetrics:
    p50: LatencyMs = 0.0
    p95: LatencyMs = 0.0
    p99: LatencyMs = 0.0
    avg: LatencyMs = 0.0
    samples: int = 0

    def scaled(self, factor: float) -> LatencyMetrics:
        """Return a copy with every latency figure multiplied by ``factor``."""
        return LatencyMetrics(
            p50=self.p50 * factor,
            p95=self.p95 * factor,
            p99=self.p99 * factor,
            avg=self.avg * factor,
            samples=self.samples,
        )

    def to_dict(self) -> JsonDict:
        return {
            "p50": self.p50,
            "p95": self.p95,
            "p99": self.p99,
            "avg": self.avg,
            "samples": self.samples,
        }


@dataclass(frozen=True, slots=True)
class NodeRecord:
    """Last known state of the node reached through ``endpoint``."""

    node_id: NodeId
    endpoint: Endpoint
    peer_id: PeerId = "unknown"
    secure: bool = False
    tee_platform: TeePlatform | None = None
    tee_attested: bool = False
    uptime: float = 0.0
    cells: tuple[CellMetric, ...] = ()
    owned_cells: tuple[CellId, ...] = ()
    claimed_events: int = 0
    workers: WorkerMetrics = field(default_factory=WorkerMetrics)
    latency: LatencyMetrics = field(default_factory=LatencyMetrics)
    throughput: OpsPerSecond = 0.0
    tasks_processed: int = 0
    tasks_failed: int = 0
    fuel_consumed: int = 0
    peers: tuple[PeerId, ...] = ()
    status: NodeStatus = NodeStatus.HEALTHY
    packet_loss: float = 0.0
    last_update: Timestamp = field(default_factory=time.time)

    @classmethod
    def offline_placeholder(
        cls, endpoint: Endpoint, *, now: Timestamp | None = None
    ) -> NodeRecord:
        """Zero-valued stand-in for an endpoint that has never answered."""
        return cls(
            node_id=endpoint_node_id(endpoint),
            endpoint=endpoint,
            status=NodeStatus.OFFLINE,
            last_update=time.time() if now is None else now,
        )

    @property
    def online(self) -> bool:
        return self.status is not NodeStatus.OFFLINE

    def claimed_cell_ids(self) -> frozenset[CellId]:
        """Every cell id this node carries, whether listed or owned."""
        return frozenset(cell.id for cell in self.cells) | frozenset(self.owned_cells)

    def to_dict(self) -> JsonDict:
        return {
            "nodeId": self.node_id,
            "endpoint": self.endpoint,
            "peerId": self.peer_id,
            "secure": self.secure,
            "teePlatform": self.tee_platform.value if self.tee_platform else None,
            "teeAttested": self.tee_attested,
            "uptime": self.uptime,
            "cells": [cell.to_dict() for cell in self.cells],
            "ownedCells": list(self.owned_cells),
            "claimedEvents": self.claimed_events,
            "workers": self.workers.to_dict(),
            "latency": self.latency.to_dict(),
            "throughput": self.throughput,
            "tasksProcessed": self.tasks_processed,
            "tasksFailed": self.tasks_failed,
            "fuelConsumed": self.fuel_consumed,
            "peers": list(self.peers),
            "status": self.status.value,
            "packetLoss": self.packet_loss,
            "lastUpdate": self.last_update,
        }


@dataclass(frozen=True, slots=True)
class Connection:
    """Reachability bookkeeping for one endpoint."""

    endpoint: Endpoint
    node_id: NodeId
    connected: bool
    last_seen: Timestamp = 0.0

    def to_dict(self) -> JsonDict:
        return {
            "endpoint": self.endpoint,
            "nodeId": self.node_id,
            "connected": self.connected,
            "lastSeen": self.last_seen,
        }


@dataclass(frozen=True, slots=True)
class GlobalCell:
    """Fleet-wide view of one cell id."""

    cell_id: CellId
    claimants: tuple[Endpoint, ...]
    replication_count: int
    health: CellHealth

    def to_dict(self) -> JsonDict:
        return {
            "cellId": self.cell_id,
            "claimants": list(self.claimants),
            "replicationCount": self.replication_count,
            "health": self.health.value,
        }
