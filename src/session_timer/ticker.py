"""Fixed-cadence asyncio scheduler driving synchronous tick callbacks."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .constants import DEFAULT_TICK_INTERVAL_SECONDS

TickCallback = Callable[[], object]


class PeriodicTicker:
    """Runs one callback per interval on the running event loop.

    The callback is synchronous, so consecutive ticks can never overlap.
    Exceptions raised by the callback are logged and the loop keeps running.
    """

    def __init__(
        self,
        *,
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        logger: Optional[logging.Logger] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        self._interval_seconds = float(interval_seconds)
        self._logger = logger or logging.getLogger("ticker")
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: TickCallback) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(callback),
            name="session-ticker",
        )

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        # Stopping from inside the callback must not cancel the running tick.
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is current:
            return
        task.cancel()

    async def _run(self, callback: TickCallback) -> None:
        loop = asyncio.get_running_loop()
        next_deadline = loop.time() + self._interval_seconds
        while True:
            await asyncio.sleep(max(0.0, next_deadline - loop.time()))
            try:
                callback()
            except Exception:
                self._logger.exception("Tick callback failed")
            if self._task is not asyncio.current_task():
                return
            # Skip missed slots instead of bursting to catch up.
            next_deadline += self._interval_seconds
            now = loop.time()
            if next_deadline <= now:
                missed = int((now - next_deadline) // self._interval_seconds) + 1
                next_deadline += missed * self._interval_seconds
