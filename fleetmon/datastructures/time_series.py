"""
Rolling fleet time series.

Memory-bounded: only the most recent ``max_points`` samples are kept, nothing
is persisted.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from threading import RLock

from .node_types import NodeRecord
from .type_aliases import JsonDict, Timestamp


@dataclass(frozen=True, slots=True)
class TimeSeriesPoint:
    """Fleet-wide totals at one instant."""

    timestamp: Timestamp
    throughput: float = 0.0
    latency_p50: float = 0.0
    latency_p99: float = 0.0
    active_workers: int = 0

    @classmethod
    def from_nodes(
        cls, nodes: Iterable[NodeRecord], timestamp: Timestamp
    ) -> TimeSeriesPoint:
        """Aggregate online nodes; an empty or all-offline fleet yields zeros."""
        online = [node for node in nodes if node.online]
        if not online:
            return cls(timestamp=timestamp)
        return cls(
            timestamp=timestamp,
            throughput=sum(node.throughput for node in online),
            latency_p50=sum(node.latency.p50 for node in online) / len(online),
            latency_p99=sum(node.latency.p99 for node in online) / len(online),
            active_workers=sum(node.workers.active for node in online),
        )

    def to_dict(self) -> JsonDict:
        return {
            "timestamp": self.timestamp,
            "throughput": self.throughput,
            "latencyP50": self.latency_p50,
            "latencyP99": self.latency_p99,
            "activeWorkers": self.active_workers,
        }


@dataclass(slots=True)
class FleetTimeSeries:
    """Bounded window of ``TimeSeriesPoint`` samples, oldest first."""

    max_points: int = 60
    _points: deque[TimeSeriesPoint] = field(init=False)
    _lock: RLock = field(default_factory=RLock)

    def __post_init__(self) -> None:
        if self.max_points <= 0:
            raise ValueError("Max points must be positive")
        self._points = deque(maxlen=self.max_points)

    def record(self, nodes: Iterable[NodeRecord], timestamp: Timestamp) -> TimeSeriesPoint:
        """Append the aggregate of ``nodes`` and return it."""
        point = TimeSeriesPoint.from_nodes(nodes, timestamp)
        self.append(point)
        return point

    def append(self, point: TimeSeriesPoint) -> None:
        with self._lock:
            self._points.append(point)

    def points(self) -> tuple[TimeSeriesPoint, ...]:
        with self._lock:
            return tuple(self._points)

    def clear(self) -> None:
        with self._lock:
            self._points.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)
