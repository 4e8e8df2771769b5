# collector/scheduler.py
import asyncio
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COLLECTING = "collecting"
    STOPPED = "stopped"


class Scheduler:
    """Drives poll cycles one after another with a fixed idle gap.

    The gap is measured from the end of a cycle, so a slow cycle delays
    the next one instead of overlapping it. Cancelling the task running
    ``run`` propagates into the in-flight cycle and its collectors.
    """

    def __init__(self, executor, interval=10.0):
        self.executor = executor
        self.interval = interval
        self.state = SchedulerState.IDLE
        self.last_report = None
        self.cycles = 0
        self._stop = asyncio.Event()

    def stop(self):
        self._stop.set()

    async def run(self, max_cycles=None):
        self._stop.clear()
        self.state = SchedulerState.RUNNING
        logger.info("scheduler started, interval=%ss", self.interval)
        try:
            while not self._stop.is_set():
                self.state = SchedulerState.COLLECTING
                try:
                    self.last_report = await self.executor.run_once()
                except Exception:
                    logger.exception("poll cycle crashed")
                self.cycles += 1
                self.state = SchedulerState.IDLE

                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.state = SchedulerState.STOPPED
            logger.info("scheduler stopped after %d cycles", self.cycles)
