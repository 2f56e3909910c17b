"""Background scheduling primitives for process-wide maintenance jobs.

The relay runs two jobs independently of request traffic: sweeping the
response cache and re-probing every upstream source.  Each job is a
:class:`PeriodicTask` -- one asyncio task with its own interval and its
own cancellation -- started from the application lifespan and stopped on
shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable

import structlog

from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


class PeriodicTask:
    """Run an async job every ``interval`` seconds until stopped.

    The first run happens one interval after :meth:`start`.  An exception
    raised by a single run is logged and the loop keeps going; only
    :meth:`stop` (or cancelling the event loop) ends the task.

    Parameters
    ----------
    name:
        Label used in log events.
    interval:
        Seconds between the end of one run and the start of the next.
    func:
        Zero-argument coroutine function executed on every tick.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[object]],
    ) -> None:
        self._name = name
        self._interval = interval
        self._func = func
        self._task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self._name}")
        _logger.info("periodic_task_started", task=self._name, interval_s=self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to unwind."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        _logger.info("periodic_task_stopped", task=self._name)

    async def run_once(self) -> None:
        """Execute one tick, logging (not raising) any failure."""
        try:
            await self._func()
        except Exception as exc:  # noqa: BLE001
            _logger.warning("periodic_task_failed", task=self._name, error=str(exc))

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()
