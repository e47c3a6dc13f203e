"""Cancellable recurring tick scheduler."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TickScheduler:
    """Runs an async callback every ``interval`` seconds until stopped.

    Ticks of one scheduler never overlap: the next wait only starts once the
    previous tick has finished. ``stop()`` wakes the loop immediately and
    waits for any in-flight tick to complete.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        name: str = "scheduler",
        run_immediately: bool = True
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.callback = callback
        self.interval = interval
        self.name = name
        self.run_immediately = run_immediately

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def start(self) -> None:
        """Start the loop. Calling start on a running scheduler is a no-op."""
        if self.is_running:
            logger.debug(f"{self.name} already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"{self.name} started (interval: {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._stop_event.set()
        await self._task
        self._task = None
        logger.info(f"{self.name} stopped after {self._tick_count} ticks")

    async def tick(self) -> None:
        """Run one iteration. Callback errors are logged, not raised."""
        self._tick_count += 1
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.name} tick {self._tick_count} failed: {e}", exc_info=True)

    async def _run(self) -> None:
        if self.run_immediately:
            await self.tick()

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self.tick()
