"""
Local port prober.

Alternate discovery path: every ``host:port`` pair gets one ``GET /health``
with its own short timeout, all concurrently, so a hanging port costs at most
one timeout for the whole scan.
"""

from __future__ import annotations

import asyncio
from collections.abc import Container, Iterable

import aiohttp
from loguru import logger

from fleetmon.datastructures.type_aliases import (
    DurationSeconds,
    Endpoint,
    HostAddress,
    PortNumber,
)

from .http import REQUEST_ERRORS, client_session

DEFAULT_PROBE_HOSTS: tuple[HostAddress, ...] = ("localhost",)
DEFAULT_PROBE_PORTS = range(8080, 8100)


class PortProber:
    """Finds responsive nodes on a range of local ports."""

    def __init__(
        self,
        timeout: DurationSeconds = 1.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if timeout <= 0 or timeout > 1.0:
            raise ValueError("Probe timeout must be in (0, 1] seconds")
        self.timeout = timeout
        self.session = session

    async def probe(
        self,
        hosts: Iterable[HostAddress] = DEFAULT_PROBE_HOSTS,
        ports: Iterable[PortNumber] = DEFAULT_PROBE_PORTS,
        *,
        skip: Container[Endpoint] = (),
    ) -> list[Endpoint]:
        """Return endpoints whose health check answered 2xx, in scan order."""
        candidates = [
            f"http://{host}:{port}"
            for host in hosts
            for port in ports
            if f"http://{host}:{port}" not in skip
        ]
        if not candidates:
            return []

        async with client_session(self.session) as session:
            results = await asyncio.gather(
                *(self._check(session, endpoint) for endpoint in candidates)
            )

        found = [endpoint for endpoint, ok in zip(candidates, results) if ok]
        logger.debug(
            f"Port probe checked {len(candidates)} addresses, {len(found)} responsive"
        )
        return found

    async def _check(self, session: aiohttp.ClientSession, endpoint: Endpoint) -> bool:
        try:
            async with session.get(
                f"{endpoint}/health",
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                return 200 <= response.status < 300
        except REQUEST_ERRORS:
            # port not responding
            return False
