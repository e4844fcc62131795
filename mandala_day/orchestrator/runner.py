"""Periodic driver for the orchestrator's clock-driven work."""

from __future__ import annotations

import asyncio

from loguru import logger

from mandala_day.core.errors import MandalaDayError
from mandala_day.orchestrator.session_orchestrator import SessionOrchestrator


class SessionRunner:
    """Calls ``orchestrator.tick()`` every ``interval_seconds``.

    A failed tick is logged and the loop keeps going; the next tick
    re-evaluates from scratch.
    """

    def __init__(self, orchestrator: SessionOrchestrator, interval_seconds: float = 60.0):
        self._orchestrator = orchestrator
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Session runner started (interval={self._interval_seconds}s)")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self._orchestrator.tick()
            except MandalaDayError as e:
                logger.error(f"Tick failed: {e}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session runner stopped")
