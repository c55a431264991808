import asyncio
from typing import Optional
from src.processing.indexer import Indexer
from src.utils.logging import logger


class IndexScheduler:
    """Runs ``Indexer.sync`` on a fixed interval in a background task."""

    def __init__(self, indexer: Indexer, source, interval_hours: float, run_on_start: bool = True):
        self.indexer = indexer
        self.source = source
        self.interval_seconds = interval_hours * 3600
        self.run_on_start = run_on_start
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        logger.info(f"Scheduling index sync every {self.interval_seconds / 3600:g} hours")
        self._task = asyncio.create_task(self._loop())

    async def _loop(self):
        if not self.run_on_start:
            await asyncio.sleep(self.interval_seconds)
        while True:
            try:
                await self.indexer.sync(self.source)
            except Exception as e:
                logger.error(f"Scheduled sync failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    async def stop(self, timeout: float = 30.0):
        """Stop the loop; an in-flight run finishes its current document first."""
        if self._task is None:
            return
        self.indexer.request_cancel()
        if self.indexer.running:
            try:
                await asyncio.wait_for(self._wait_idle(), timeout)
            except asyncio.TimeoutError:
                logger.warning("Scheduled sync did not stop in time; cancelling it")
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _wait_idle(self):
        while self.indexer.running:
            await asyncio.sleep(0.05)
