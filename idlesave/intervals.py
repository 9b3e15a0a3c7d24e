"""Restartable periodic timers (autosave, cloud save check)."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

IntervalCallback = Callable[[], None | Awaitable[None]]


class Interval:
    """Fire ``callback`` every ``period_s`` seconds on the running event loop.

    ``restart`` pushes the next tick a full period into the future. Without a
    running loop it only records the restart time, which keeps synchronous
    callers (tests, tools) working.
    """

    def __init__(self, name: str, period_s: float, callback: Optional[IntervalCallback] = None) -> None:
        self.name = name
        self.period_s = float(period_s)
        self.callback = callback
        self.last_restart: float = time.monotonic()
        self.restarts = 0
        self._task: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def restart(self) -> None:
        self.stop()
        self.last_restart = time.monotonic()
        self.restarts += 1
        if self.callback is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run(self._generation))

    def stop(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # A callback restarting its own interval must be allowed to finish;
        # the bumped generation ends that loop after the callback returns.
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            await asyncio.sleep(self.period_s)
            if generation != self._generation:
                return
            try:
                result = self.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("[%s] Interval callback failed", self.name, exc_info=True)
