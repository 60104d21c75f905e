"""Periodic expiry sweep for the job store, owned by the app lifespan."""

import asyncio
import logging
from typing import Optional

from app.storage.job_store import JobStore

logger = logging.getLogger(__name__)


class JobSweeper:
    """Runs JobStore.cleanup() every `interval_seconds` until stopped."""

    def __init__(self, store: JobStore, interval_seconds: float = 300):
        self._store = store
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        logger.debug("Running job store cleanup")
        return self._store.cleanup()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception:
                logger.exception("Job store cleanup failed")
