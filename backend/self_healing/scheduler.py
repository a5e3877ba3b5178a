from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("self_healing.scheduler")

TickFn = Callable[[], Awaitable[None]]


class IntervalTicker:
    """
    Runs an async tick immediately and then every `interval_seconds`.

    Ticks never overlap: the next interval starts after the previous tick
    returns. `stop()` only prevents further ticks; a tick already running is
    awaited, not cancelled. That includes loops replaced by a restart.
    """

    def __init__(self, interval_seconds: float, *, name: str = "ticker") -> None:
        self.interval_seconds = max(0.01, float(interval_seconds))
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._retired: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self, tick: TickFn, stopping: asyncio.Event) -> None:
        while not stopping.is_set():
            try:
                await tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("[%s] tick error: %s", self.name, e, exc_info=True)
            try:
                await asyncio.wait_for(stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    def start(self, tick: TickFn) -> None:
        if self._stopping is not None:
            # Restart: the previous loop exits after its current tick.
            self._stopping.set()
        self._retired = [t for t in self._retired if not t.done()]
        if self._task is not None and not self._task.done():
            self._retired.append(self._task)
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(tick, self._stopping), name=self.name)

    async def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
        tasks = [*self._retired, self._task] if self._task is not None else list(self._retired)
        self._task = None
        self._stopping = None
        self._retired = []
        for task in tasks:
            await task
