"""
fleetmon datastructures.

Immutable node records, reachability bookkeeping, fleet-wide cell views and
the rolling time series consumed by dashboards.
"""

from __future__ import annotations

from .node_types import (
    CellHealth,
    CellMetric,
    CellRole,
    Connection,
    FleetError,
    GlobalCell,
    LatencyMetrics,
    NodeRecord,
    NodeStatus,
    TeePlatform,
    WorkerMetrics,
    endpoint_node_id,
    normalize_endpoint,
)
from .time_series import FleetTimeSeries, TimeSeriesPoint

__all__ = [
    "CellHealth",
    "CellMetric",
    "CellRole",
    "Connection",
    "FleetError",
    "FleetTimeSeries",
    "GlobalCell",
    "LatencyMetrics",
    "NodeRecord",
    "NodeStatus",
    "TeePlatform",
    "TimeSeriesPoint",
    "WorkerMetrics",
    "endpoint_node_id",
    "normalize_endpoint",
]
