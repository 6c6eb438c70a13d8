"""Fixed-cadence poller that never overlaps ticks."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

TickCallback = Callable[[int], Awaitable[object]]


@dataclass
class PollerStats:
    ticks: int = 0
    failures: int = 0
    running: bool = False


class RecursivePoller:
    """Run a callback, sleep, run again.

    The next sleep starts only after the previous tick returns, so a slow
    tick pushes the schedule out rather than overlapping with the next.
    The callback receives the tick number (0 for the first tick).

    Usage:
        poller = RecursivePoller(tick, interval=10)
        poller.start()
        # ... later ...
        await poller.stop()
    """

    def __init__(self, callback: TickCallback, interval: float) -> None:
        self.callback = callback
        self.interval = interval
        self.stats = PollerStats()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self._loop(), name="poller")
        return self._task

    async def stop(self) -> None:
        """Stop after the in-flight tick, if any, completes."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _loop(self) -> None:
        self.stats.running = True
        try:
            while not self._stop_event.is_set():
                try:
                    await self.callback(self.stats.ticks)
                except Exception:
                    self.stats.failures += 1
                    logger.exception("poll tick failed", tick=self.stats.ticks)
                self.stats.ticks += 1

                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.interval
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self.stats.running = False
