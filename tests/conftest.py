"""Pytest configuration and fixtures for fleetmon testing.

All stub servers started through ``stub_fleet`` are torn down when the
fixture exits, so no test leaves a listening port behind.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from fleetmon.core.config import MonitorSettings

from .stub_servers import StubFleet


@pytest_asyncio.fixture
async def stub_fleet() -> AsyncGenerator[StubFleet, None]:
    """Provides stub servers with automatic cleanup."""
    fleet = StubFleet()
    try:
        yield fleet
    finally:
        await fleet.close()


@pytest.fixture
def memory_settings() -> MonitorSettings:
    """Live settings with no directory, no probing and no disk state."""
    return MonitorSettings(
        directory_url="",
        probe_mode="never",
        persistence_mode="memory",
        fetch_timeout=0.5,
        probe_timeout=0.5,
    )
