"""Shared aiohttp session handling for the discovery clients."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiohttp

# Failures every discovery request converts into a soft result.
REQUEST_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientError,
    TimeoutError,
    ValueError,
)


@asynccontextmanager
async def client_session(
    session: aiohttp.ClientSession | None,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield ``session`` if given, else a short-lived session closed on exit."""
    if session is not None and not session.closed:
        yield session
        return
    async with aiohttp.ClientSession() as owned:
        yield owned
