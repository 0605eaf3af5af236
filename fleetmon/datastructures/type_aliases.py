"""
Semantic type aliases for fleetmon datastructures.

These aliases keep signatures self-documenting: an ``Endpoint`` is the
authoritative registry key, a ``NodeId`` is only what a node says about itself.
"""

from collections.abc import Mapping
from typing import Any

# Time and timestamp types
type Timestamp = float
type DurationSeconds = float

# Identity types
type Endpoint = str  # Network address of a node, e.g. http://10.0.0.5:8080
type NodeId = str  # Self-reported logical node identity
type PeerId = str
type CellId = int

# Network types
type HostAddress = str
type PortNumber = int
type UrlString = str

# Metrics types
type Probability = float
type LatencyMs = float
type OpsPerSecond = float
type SignalLevel = float

# Raw JSON coming off the wire
type JsonValue = Any
type JsonDict = dict[str, JsonValue]
type JsonMapping = Mapping[str, JsonValue]
