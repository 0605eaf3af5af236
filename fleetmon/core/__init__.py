"""
fleetmon core module.

Settings, logging, clocks, task lifecycle, persistence and statistics shared
by the discovery pipeline and the simulation model.
"""

from .clock import Clock, ManualClock, SystemClock
from .config import NETWORK_PRESETS, MonitorSettings, ProbeMode
from .logging import LogScope, configure_logging
from .source import NodeSource, SourceKind
from .statistics import (
    ClusterHealth,
    ClusterStatistics,
    DiscoveryStatistics,
    SchedulerStatistics,
)
from .task_manager import TaskManager

__all__ = [
    "Clock",
    "ClusterHealth",
    "ClusterStatistics",
    "DiscoveryStatistics",
    "LogScope",
    "ManualClock",
    "MonitorSettings",
    "NodeSource",
    "NETWORK_PRESETS",
    "ProbeMode",
    "SchedulerStatistics",
    "SourceKind",
    "SystemClock",
    "TaskManager",
    "configure_logging",
]
