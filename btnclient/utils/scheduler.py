"""Periodic job scheduling on top of asyncio tasks.

Each job runs its coroutine, then sleeps for its interval, until the
owning :class:`Scheduler` cancels it. Failures of a single run are logged
and the job keeps its cadence.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Coroutine

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


class PeriodicJob:
    """A named coroutine function invoked on a fixed interval."""

    def __init__(
        self,
        name: str,
        func: JobFunc,
        interval: float,
        initial_delay: float = 0.0,
    ):
        """Initialize periodic job.

        Args:
            name: Job name used in log messages
            func: Coroutine function run on every tick
            interval: Seconds between the end of one run and the next
            initial_delay: Seconds to wait before the first run

        """
        if interval <= 0:
            msg = f"Job interval must be positive, got {interval}"
            raise ValueError(msg)
        self.name = name
        self.func = func
        self.interval = interval
        self.initial_delay = initial_delay
        self.runs = 0
        self.failures = 0

    async def run_forever(self) -> None:
        """Run the job until cancelled."""
        if self.initial_delay > 0:
            await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.func()
                self.runs += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failures += 1
                logger.exception("Error in scheduled job '%s'", self.name)
            await asyncio.sleep(self.interval)


class Scheduler:
    """Tracks background tasks for easier cancellation and cleanup."""

    def __init__(self) -> None:
        """Initialize empty scheduler."""
        self._tasks: set[asyncio.Task[Any]] = set()
        self._jobs: dict[str, PeriodicJob] = {}

    @property
    def jobs(self) -> dict[str, PeriodicJob]:
        return dict(self._jobs)

    def create(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Create and track an asyncio task from a coroutine."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule(self, job: PeriodicJob) -> asyncio.Task[Any]:
        """Start a periodic job."""
        if job.name in self._jobs:
            msg = f"Job '{job.name}' is already scheduled"
            raise ValueError(msg)
        self._jobs[job.name] = job
        logger.debug("Scheduled job '%s' every %ss", job.name, job.interval)
        return self.create(job.run_forever(), name=job.name)

    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def cancel_and_wait(self, timeout: float | None = None) -> None:
        """Cancel all tracked tasks and wait for completion (with optional timeout)."""
        self._jobs.clear()
        if not self._tasks:
            return
        for t in list(self._tasks):
            if not t.done():
                t.cancel()
        if timeout is None:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        else:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    asyncio.gather(*self._tasks, return_exceptions=True),
                    timeout=timeout,
                )
        self._tasks.clear()
