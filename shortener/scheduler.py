"""Periodic expiry sweep scheduler.

Runs ``LinkLifecycleEngine.sweep_expired`` every ``interval_seconds`` on its
own asyncio task, independent of request handling.

Flow Diagram — run loop
=======================
::
    ┌─────────────┐
    │  start()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐◄──────────────┐
    │ wait for    │               │
    │ interval or │               │
    │ stop event  │               │
    └──────┬──────┘               │
    STOP?  │                      │
    ┌──────┴────┐                 │
    │ YES        │ NO             │
    ▼            ▼                │
  return   ┌─────────────┐        │
           │ sweep (runs │        │
           │ to the end) ├────────┘
           └─────────────┘

Key Behaviours
===============
- ``stop()`` prevents further sweeps; a sweep already in progress completes.
- Sweep failures are logged and retried on the next interval.
"""

import asyncio
import logging

from shortener.lifecycle import LinkLifecycleEngine

__all__ = ["SweepScheduler"]


class SweepScheduler:
    def __init__(
        self,
        engine: LinkLifecycleEngine,
        interval_seconds: float,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds!r}")
        self._engine = engine
        self._interval = interval_seconds
        self._logger = logger or logging.getLogger("shortener")
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.sweeps_run = 0
        self.last_expired_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="expiry-sweep")
        self._logger.info(f"Expiry sweep scheduled every {self._interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self._logger.info("Expiry sweep scheduler stopped")

    async def run_once(self) -> int:
        try:
            expired = await self._engine.sweep_expired()
        except Exception as exc:
            self._logger.error(f"Expiry sweep error: {exc}")
            return 0
        self.sweeps_run += 1
        self.last_expired_count = expired
        return expired

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                # Shielded so a cancelled scheduler task still lets the sweep finish.
                await asyncio.shield(self.run_once())
