"""
fleetmon - fleet node discovery and health monitoring

Discovers compute nodes through a directory service or local port probing,
polls their metrics endpoints and reconciles the results into an
endpoint-keyed registry that survives node restarts and outages.

## Architecture

- **datastructures**: immutable node records, connections, cell views and
  the rolling time series
- **core**: settings, logging, clocks, task lifecycle and persistence
- **discovery**: directory client, port prober, metrics fetcher,
  reconciliation, classifier, poll scheduler and the discovery service
- **simulation**: stochastic fault model behind the same node source
  protocol as live discovery
- **monitor**: the facade that publishes fleet snapshots

## Quick Start

```python
from fleetmon import FleetMonitor, MonitorSettings

monitor = FleetMonitor(MonitorSettings(directory_url="http://registry:8000"))
await monitor.start()
async for snapshot in monitor.snapshots():
    print(snapshot.statistics.cluster_health)
```
"""

from .core.config import MonitorSettings
from .datastructures.node_types import (
    CellHealth,
    Connection,
    FleetError,
    GlobalCell,
    NodeRecord,
    NodeStatus,
)
from .discovery.classifier import StatusClassifier
from .discovery.service import DiscoveryService
from .monitor import FleetMonitor, FleetSnapshot
from .simulation.fault_model import FaultSimulationModel, SimulatedNodeSource

__version__ = "0.1.0"

__all__ = [
    "CellHealth",
    "Connection",
    "DiscoveryService",
    "FaultSimulationModel",
    "FleetError",
    "FleetMonitor",
    "FleetSnapshot",
    "GlobalCell",
    "MonitorSettings",
    "NodeRecord",
    "NodeStatus",
    "SimulatedNodeSource",
    "StatusClassifier",
]
