from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional, Protocol

from loguru import logger


class Schedulable(Protocol):
    name: str

    async def start(self) -> None: ...

    async def tick(self) -> timedelta: ...

    def stop(self) -> None: ...


class TaskScheduler:
    """
    Drives one task: start, then tick / sleep(returned delay) until stopped.

    Ticks never overlap. A tick that raises is logged and the next one runs
    after error_delay.
    """

    def __init__(self, task: Schedulable, error_delay: timedelta = timedelta(minutes=1)):
        self._task = task
        self._error_delay = error_delay
        self._stop = asyncio.Event()

    async def run(self, max_ticks: Optional[int] = None) -> int:
        if max_ticks is not None and max_ticks < 1:
            raise ValueError(f"max_ticks must be >= 1 (got {max_ticks})")

        self._stop.clear()
        await self._task.start()

        ticks = 0
        try:
            while not self._stop.is_set():
                try:
                    delay = await self._task.tick()
                except Exception:
                    logger.exception("Task {} tick failed", self._task.name)
                    delay = self._error_delay

                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break

                await self._sleep(delay)
        finally:
            self._task.stop()

        logger.info("Scheduler for {} exited after ticks={}", self._task.name, ticks)
        return ticks

    async def _sleep(self, delay: timedelta) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(0.0, delay.total_seconds()))
        except asyncio.TimeoutError:
            pass

    def stop(self) -> None:
        self._stop.set()
        self._task.stop()
