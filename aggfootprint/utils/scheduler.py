"""Cancellable periodic asyncio task."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

from .logging import get_logger


class PeriodicTask:
    """Run ``func`` now and then every ``interval`` seconds until stopped.

    A failing run is logged and the schedule continues.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[None]],
        interval: float,
        *,
        logger: structlog.BoundLogger | None = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.name = name
        self.func = func
        self.interval = float(interval)
        self.logger = (logger or get_logger("utils.scheduler")).bind(task=name)
        self._task: asyncio.Task | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop. Idempotent."""
        if not self.running:
            self._task = asyncio.create_task(self._run(), name=self.name)
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await self.func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error("periodic_task_error", error=str(e))
            self.runs += 1
            await asyncio.sleep(self.interval)
