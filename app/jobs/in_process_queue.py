"""In-process job queue using asyncio.

A fixed number of worker tasks drain the queue. Each analysis runs in a
thread executor so the slow external calls never block the event loop, and
its outcome is written to the job store rather than returned to the caller.
"""

import asyncio
import logging
from typing import Callable, List

from app.jobs.dispatcher import JobDispatcher
from app.jobs.models import AnalysisRequest, AnalysisResult, JobStatus
from app.storage.job_store import JobStore

logger = logging.getLogger(__name__)

SHUTDOWN_ERROR = "Service shutting down"


class InProcessQueue(JobDispatcher):
    """Local async job queue backed by a small pool of worker tasks."""

    def __init__(
        self,
        store: JobStore,
        worker_fn: Callable[[AnalysisRequest], AnalysisResult],
        concurrency: int = 4,
    ):
        """
        worker_fn: callable(request: AnalysisRequest) -> AnalysisResult
            Synchronous function that does the work (calls the inference service).
            Will be called in a thread executor to avoid blocking the event loop.
        """
        self._queue: asyncio.Queue[AnalysisRequest] = asyncio.Queue()
        self._store = store
        self._worker_fn = worker_fn
        self._concurrency = max(1, concurrency)
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def submit(self, request: AnalysisRequest) -> str:
        if not self._running:
            raise RuntimeError("Job queue is not running")
        await self._queue.put(request)
        return request.job_id

    async def start(self) -> None:
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(i))
            for i in range(self._concurrency)
        ]

    async def stop(self) -> None:
        """Cancel the workers and fail every job that will now never run."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        while True:
            try:
                request = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            logger.warning("Dropping queued job %s on shutdown", request.job_id)
            self._fail(request.job_id, SHUTDOWN_ERROR)
            self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    async def _worker_loop(self, worker_id: int) -> None:
        """Process queued analyses until cancelled."""
        while self._running:
            try:
                request = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                await self._process(request, worker_id)
            finally:
                self._queue.task_done()

    async def _process(self, request: AnalysisRequest, worker_id: int) -> None:
        logger.info("Worker %d processing job %s", worker_id, request.job_id)
        try:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, self._worker_fn, request)
        except asyncio.CancelledError:
            logger.warning("Job %s interrupted by shutdown", request.job_id)
            self._fail(request.job_id, SHUTDOWN_ERROR)
            raise
        except Exception as e:
            # Nothing awaits this task: the job record is the only error channel
            logger.exception("Job %s failed", request.job_id)
            self._fail(request.job_id, str(e) or type(e).__name__)
            return

        self._store.update_job(
            request.job_id,
            {"status": JobStatus.COMPLETED, "result": result},
        )

    def _fail(self, job_id: str, message: str) -> None:
        self._store.update_job(job_id, {"status": JobStatus.FAILED, "error": message})
