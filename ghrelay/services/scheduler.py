"""Periodic background tasks.

A ``PeriodicTask`` runs an async callback on a fixed interval in its own
asyncio task, so request handling never waits on it. ``tick()`` runs the
callback exactly once, which lets tests drive a schedule deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Repeats ``callback`` every ``interval_seconds`` until stopped.

    Parameters
    ----------
    name:
        Used in log messages and as the asyncio task name.
    interval_seconds:
        Delay between the end of one run and the start of the next.
    callback:
        Coroutine function (or plain function) with no arguments.
    run_immediately:
        Run once as soon as the task starts instead of after the first interval.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[Any] | Any],
        *,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self._interval_seconds = interval_seconds
        self._callback = callback
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("Started periodic task %s (every %ss)", self.name, self._interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped periodic task %s", self.name)

    async def tick(self) -> None:
        """Run the callback once; failures are logged and swallowed."""
        self.runs += 1
        try:
            result = self._callback()
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Periodic task %s failed", self.name)

    async def _loop(self) -> None:
        if self._run_immediately:
            await self.tick()
        while True:
            await asyncio.sleep(self._interval_seconds)
            await self.tick()
