"""Cancellable periodic ticker for background monitoring."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from .clock import Clock, utcnow
from .telemetry import Telemetry


@dataclass
class PeriodicTicker:
    """Invoke ``callback`` every ``interval_s`` seconds until stopped.

    Ticks never overlap: a tick requested while the previous one is still
    running is skipped and reported as such.
    """

    callback: Callable[[], Awaitable[Any]]
    interval_s: float
    name: str = "ticker"
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    clock: Clock = utcnow
    telemetry: Telemetry = field(default_factory=Telemetry)
    last_tick_at: Optional[datetime] = field(default=None, init=False)
    ticks: int = field(default=0, init=False)
    skipped: int = field(default=0, init=False)
    _task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)
    _running: bool = field(default=False, init=False, repr=False)

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Run one tick now; returns ``False`` when one is already in flight."""

        if self._running:
            self.skipped += 1
            self.telemetry.emit("scheduler.tick_skipped", name=self.name)
            return False
        self._running = True
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # a failing tick must not stop the loop
            self.telemetry.error("scheduler.tick_failed", name=self.name, error=str(exc))
        finally:
            self._running = False
            self.last_tick_at = self.clock()
            self.ticks += 1
        return True

    async def _loop(self) -> None:
        while True:
            await self.sleep(self.interval_s)
            await self.tick()

    def start(self) -> None:
        if self.active:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        self.telemetry.emit("scheduler.started", name=self.name, interval_s=self.interval_s)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.telemetry.emit("scheduler.stopped", name=self.name, ticks=self.ticks)


__all__ = ["PeriodicTicker"]
