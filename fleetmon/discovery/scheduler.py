"""
Poll scheduler.

Drives two independent cycles: a fast metrics poll and a slow rediscovery.
Each cycle is one managed task looping ``tick -> clock.sleep(interval)``;
``stop`` cancels both together and waits for them, so no timer outlives the
scheduler. A tick that would start while the previous tick of the same cycle
is still running is skipped instead of stacked.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from fleetmon.core.clock import Clock, SystemClock
from fleetmon.core.statistics import SchedulerStatistics
from fleetmon.core.task_manager import TaskManager
from fleetmon.datastructures.type_aliases import DurationSeconds

type TickFunction = Callable[[], Awaitable[Any]]


class PollScheduler:
    """Runs the poll and rediscovery cycles until stopped."""

    def __init__(
        self,
        poll: TickFunction,
        discover: TickFunction | None = None,
        *,
        poll_interval: DurationSeconds = 5.0,
        rediscovery_interval: DurationSeconds = 60.0,
        clock: Clock | None = None,
    ) -> None:
        if poll_interval <= 0 or rediscovery_interval <= 0:
            raise ValueError("Scheduler intervals must be positive")
        self.poll = poll
        self.discover = discover
        self.poll_interval = poll_interval
        self.rediscovery_interval = rediscovery_interval
        self.clock = clock or SystemClock()

        self._tasks: TaskManager | None = None
        self._busy: set[str] = set()
        self._poll_ticks = 0
        self._discovery_ticks = 0
        self._skipped_ticks = 0
        self._tick_errors = 0

    @property
    def running(self) -> bool:
        return self._tasks is not None

    def start(self) -> None:
        """Start both cycles; the first discovery runs before the first poll."""
        if self._tasks is not None:
            return
        self._tasks = TaskManager("PollScheduler")
        initial_discovery = asyncio.Event()
        if self.discover is not None:
            self._tasks.create_task(
                self._loop(
                    "discovery",
                    self.discover,
                    self.rediscovery_interval,
                    ready=initial_discovery,
                ),
                name="fleetmon-discovery",
            )
        else:
            initial_discovery.set()
        self._tasks.create_task(
            self._loop(
                "poll", self.poll, self.poll_interval, wait_for=initial_discovery
            ),
            name="fleetmon-poll",
        )
        logger.info(
            f"Scheduler started: poll every {self.poll_interval}s, "
            f"rediscover every {self.rediscovery_interval}s"
        )

    async def stop(self) -> None:
        """Cancel both cycles and wait until they are gone."""
        tasks = self._tasks
        if tasks is None:
            return
        self._tasks = None
        await tasks.shutdown()
        self._busy.clear()
        logger.info("Scheduler stopped")

    async def _loop(
        self,
        name: str,
        tick: TickFunction,
        interval: DurationSeconds,
        *,
        ready: asyncio.Event | None = None,
        wait_for: asyncio.Event | None = None,
    ) -> None:
        if wait_for is not None:
            await wait_for.wait()
        while True:
            await self._run_tick(name, tick)
            if ready is not None:
                ready.set()
                ready = None
            await self.clock.sleep(interval)

    async def _run_tick(self, name: str, tick: TickFunction) -> None:
        if name in self._busy:
            self._skipped_ticks += 1
            logger.debug(f"Skipping {name} tick, previous tick still running")
            return
        self._busy.add(name)
        try:
            await tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._tick_errors += 1
            logger.error(f"{name.capitalize()} tick failed: {e}")
        finally:
            self._busy.discard(name)
            if name == "poll":
                self._poll_ticks += 1
            else:
                self._discovery_ticks += 1

    async def trigger(self, name: str = "poll") -> bool:
        """Run one out-of-band tick; returns False if it was coalesced away."""
        tick = self.poll if name == "poll" else self.discover
        if tick is None:
            return False
        if name in self._busy:
            self._skipped_ticks += 1
            return False
        await self._run_tick(name, tick)
        return True

    def statistics(self) -> SchedulerStatistics:
        return SchedulerStatistics(
            running=self.running,
            poll_ticks=self._poll_ticks,
            discovery_ticks=self._discovery_ticks,
            skipped_ticks=self._skipped_ticks,
            tick_errors=self._tick_errors,
        )
