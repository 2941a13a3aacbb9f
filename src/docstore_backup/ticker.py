"""Periodic async job runner with an explicit start/stop lifecycle.

A ``Ticker`` belongs to whoever composes the process (for example the
``watch`` CLI command).  There is no module-level instance; create one,
``start()`` it inside a running event loop, and ``await stop()`` it.

Usage:
    from docstore_backup.ticker import Ticker

    ticker = Ticker(lambda: service.purge_expired(policy), interval_seconds=3600)
    ticker.start()
    ...
    await ticker.stop()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class Ticker:
    """Run ``callback`` every ``interval_seconds`` until stopped.

    The first run happens immediately.  An exception from ``callback`` is
    logged and the loop keeps going.

    Args:
        callback: Zero-argument coroutine function.
        interval_seconds: Delay between the end of one run and the next.
        name: Used in log messages and as the task name.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        name: str = "ticker",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.callback = callback
        self.interval_seconds = interval_seconds
        self.name = name
        self.runs = 0
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning(f"{self.name} is already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event), name=self.name)
        logger.info(f"{self.name} started with {self.interval_seconds}s interval")

    async def stop(self) -> None:
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None
        logger.info(f"{self.name} stopped")

    async def wait(self) -> None:
        """Block until the ticker is stopped."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.callback()
            except Exception:
                logger.exception(f"{self.name} callback failed")
            self.runs += 1
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
