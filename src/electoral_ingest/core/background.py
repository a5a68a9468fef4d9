"""Background task runner abstraction.

Import jobs run as independent asyncio tasks in the API process, keyed by
their import job id so the lifespan handler can cancel what is still in
flight at shutdown. The persisted job status remains the source of truth;
this runner only tracks the in-process task.
"""

import asyncio
import enum
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class TaskStatus(enum.StrEnum):
    """Status of an in-process background task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, key: str, coro: Coroutine[Any, Any, Any]) -> str:
        """Submit an async task for background execution under ``key``."""
        ...

    def get_status(self, key: str) -> TaskStatus:
        """Get the current status of a background task."""
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same process as the API server using
    ``asyncio.create_task()``; a reference is kept until the task finishes.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, TaskStatus] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def submit_task(self, key: str, coro: Coroutine[Any, Any, Any]) -> str:
        """Submit an async task for background execution.

        Args:
            key: Tracking key, normally the import job id.
            coro: The coroutine to execute.

        Returns:
            The tracking key.
        """
        self._statuses[key] = TaskStatus.PENDING

        async def _run() -> None:
            self._statuses[key] = TaskStatus.RUNNING
            try:
                await coro
                self._statuses[key] = TaskStatus.COMPLETED
            except Exception:
                self._statuses[key] = TaskStatus.FAILED
                logger.exception(f"Background task {key} failed")
            finally:
                self._tasks.pop(key, None)

        self._tasks[key] = asyncio.create_task(_run(), name=f"import-{key}")
        return key

    def get_status(self, key: str) -> TaskStatus:
        """Get the current status of a background task.

        Raises:
            KeyError: If the key is not found.
        """
        return self._statuses[key]

    @property
    def active_keys(self) -> list[str]:
        """Keys of tasks that have not finished yet."""
        return list(self._tasks)

    async def shutdown(self) -> None:
        """Cancel tasks that are still running and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


# Singleton instance for the application
task_runner = InProcessTaskRunner()
