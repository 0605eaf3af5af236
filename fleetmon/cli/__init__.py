"""
fleetmon command line interface.

Live and one-shot fleet views plus endpoint management.
"""

from .fleet_cli import FleetCLI
from .main import cli, main

__all__ = ["FleetCLI", "main", "cli"]
