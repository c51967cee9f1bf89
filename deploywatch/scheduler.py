"""
Periodic tick scheduler.

Fires a deploy cycle immediately, then on a fixed period. A tick that comes
due while the previous cycle is still running is skipped rather than queued.
"""

import asyncio
import logging
from typing import Optional

from .orchestrator import DeployOrchestrator

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs the orchestrator's cycle on a fixed interval."""

    def __init__(self, orchestrator: DeployOrchestrator, interval: float):
        self.orchestrator = orchestrator
        self.interval = interval
        self.skipped_ticks = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._cycle: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._cycle is not None and not self._cycle.done()

    async def start(self):
        """Start the tick loop. The first tick fires right away."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Monitor started. Checking for changes every {self.interval} seconds.")

    async def stop(self):
        """Stop the tick loop and wait for an in-flight cycle."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._cycle and not self._cycle.done():
            logger.info("Waiting for the running deploy cycle to finish")
            await asyncio.wait({self._cycle})
        logger.info("Monitor stopped")

    async def _loop(self):
        while self._running:
            self.trigger()
            await asyncio.sleep(self.interval)

    def trigger(self) -> bool:
        """Fire a tick now. Returns False if a cycle is still running."""
        if self.busy:
            self.skipped_ticks += 1
            logger.warning("Previous deploy cycle still running, skipping tick")
            return False

        self._cycle = asyncio.create_task(self._tick())
        return True

    async def _tick(self):
        try:
            result = await self.orchestrator.run_cycle()
            logger.debug(f"Tick finished: {result.outcome.value}")
        except Exception as e:
            logger.exception(f"Error in deploy tick: {e}")
