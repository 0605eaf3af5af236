"""
Clock abstraction for the scheduler loops.

``SystemClock`` wraps wall time and ``asyncio.sleep``. ``ManualClock`` only
moves when ``advance`` is called, so scheduler behavior can be exercised
without real waits.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol

from fleetmon.datastructures.type_aliases import DurationSeconds, Timestamp


class Clock(Protocol):
    def now(self) -> Timestamp: ...

    async def sleep(self, seconds: DurationSeconds) -> None: ...


class SystemClock:
    def now(self) -> Timestamp:
        return time.time()

    async def sleep(self, seconds: DurationSeconds) -> None:
        await asyncio.sleep(seconds)


class ManualClock:
    """Deterministic clock driven by the test."""

    def __init__(self, start: Timestamp = 1_700_000_000.0) -> None:
        self._now = start
        self._sleepers: list[tuple[Timestamp, asyncio.Future[None]]] = []

    def now(self) -> Timestamp:
        return self._now

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, future in self._sleepers if not future.done())

    async def sleep(self, seconds: DurationSeconds) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        entry = (self._now + max(0.0, seconds), future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: DurationSeconds) -> None:
        """Move time forward, wake due sleepers and let them run."""
        self._now += seconds
        for deadline, future in list(self._sleepers):
            if deadline <= self._now and not future.done():
                future.set_result(None)
        # several passes so woken loops can reach their next await
        for _ in range(10):
            await asyncio.sleep(0)
