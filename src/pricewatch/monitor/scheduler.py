from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from pricewatch.monitor.cycle import MonitoringCycle
from pricewatch.utils.types import CycleReport

log = structlog.get_logger("scheduler")


class Scheduler:
    """
    Process-wide recurring trigger for MonitoringCycle.

    - start(): spawn the loop; the first scheduled cycle runs one interval later
    - run_now(): manual cycle, awaited by the caller; errors propagate to it
    - stop(): cancel the loop

    Both entry points go through MonitoringCycle.run(), which holds the cycle
    lock. A failing scheduled cycle is logged and the loop waits for the next
    tick; nothing escapes the loop.
    """
    def __init__(self, cycle: MonitoringCycle, interval_s: float = 300.0):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.cycle = cycle
        self.interval_s = float(interval_s)
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.ticks: int = 0
        self.errors: int = 0

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="alert-scheduler")
        log.info("scheduler_started", interval_s=self.interval_s)

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("scheduler_stopped")

    async def run_now(self) -> CycleReport:
        log.info("manual_cycle_requested")
        return await self.cycle.run()

    def healthy(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_s)
                break  # stop requested
            except asyncio.TimeoutError:
                pass
            self.ticks += 1
            await self._tick()

    async def _tick(self) -> None:
        log.info("scheduled_cycle_start", tick=self.ticks)
        try:
            await self.cycle.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # StoreUnavailable and anything unexpected: retry on the next tick
            self.errors += 1
            log.error("cycle_aborted", err=str(e), err_type=type(e).__name__, tick=self.ticks)
