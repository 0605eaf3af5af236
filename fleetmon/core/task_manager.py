"""
Task lifecycle management for the scheduler loops.

Tracks background tasks so they can be cancelled together and awaited,
preventing "Task was destroyed but it is pending" warnings on shutdown.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger


class TaskManager:
    """Manages background tasks with proper lifecycle cleanup."""

    def __init__(self, name: str = "TaskManager") -> None:
        self.name = name
        self.tasks: set[asyncio.Task[Any]] = set()
        self._shutdown_requested = False

    def create_task(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a background task."""
        if self._shutdown_requested:
            coro.close()
            raise RuntimeError("Cannot create tasks after shutdown requested")

        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._task_completed)

        logger.debug(f"[{self.name}] Created task {task.get_name() or 'unnamed'}")
        return task

    def _task_completed(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)

        if task.cancelled():
            logger.debug(
                f"[{self.name}] Task {task.get_name() or 'unnamed'} was cancelled"
            )
        elif task.exception():
            logger.error(
                f"[{self.name}] Task {task.get_name() or 'unnamed'} failed: {task.exception()}"
            )
        else:
            logger.debug(
                f"[{self.name}] Task {task.get_name() or 'unnamed'} completed successfully"
            )

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel all managed tasks and wait for them to finish."""
        if self._shutdown_requested:
            return

        self._shutdown_requested = True

        if not self.tasks:
            logger.debug(f"[{self.name}] No tasks to shutdown")
            return

        logger.debug(f"[{self.name}] Shutting down {len(self.tasks)} background tasks")

        pending_tasks = [task for task in self.tasks if not task.done()]
        for task in pending_tasks:
            task.cancel()

        if pending_tasks:
            _, still_pending = await asyncio.wait(
                pending_tasks,
                timeout=timeout,
                return_when=asyncio.ALL_COMPLETED,
            )
            for task in still_pending:
                logger.warning(
                    f"[{self.name}] Task did not stop within {timeout}s: {task.get_name()}"
                )

        self.tasks.clear()
        logger.debug(f"[{self.name}] Task shutdown complete")

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def __len__(self) -> int:
        """Return number of active tasks."""
        return len(self.tasks)

    def __bool__(self) -> bool:
        """Return True if there are active tasks."""
        return bool(self.tasks)
