"""Synthetic fleet for demos and tests."""

from .fault_model import (
    FaultSimulationModel,
    SimulatedNodeSource,
    SimulationConfig,
    generate_time_series,
)

__all__ = [
    "FaultSimulationModel",
    "SimulatedNodeSource",
    "SimulationConfig",
    "generate_time_series",
]
