"""File-backed job record store with TTL-based expiry.

One JSON document per job lives in the store directory. The store is an
ephemeral cache for a single process: a job created by one instance is
invisible to another instance that does not share the directory, and
read-modify-write is only serialized within this process.
"""

import logging
import os
import re
import tempfile
import threading
import time
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from app.jobs.models import JobRecord, JobStatus

logger = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,128}")


class JobStoreError(RuntimeError):
    """Raised when a job record cannot be written."""


class JobStore:
    """Keyed storage of JobRecord documents with bounded retention."""

    def __init__(
        self,
        base_dir: Optional[str] = None,
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._base_dir = base_dir or os.path.join(tempfile.gettempdir(), "analysis-jobs")
        os.makedirs(self._base_dir, exist_ok=True)
        self._retention_ms = retention_seconds * 1000
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def base_dir(self) -> str:
        return self._base_dir

    @property
    def retention_seconds(self) -> int:
        return self._retention_ms // 1000

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _job_path(self, job_id: str) -> Optional[str]:
        if not isinstance(job_id, str) or not _JOB_ID_RE.fullmatch(job_id):
            return None
        return os.path.join(self._base_dir, f"{job_id}.json")

    def _is_expired(self, job: JobRecord) -> bool:
        return self._now_ms() - job.timestamp > self._retention_ms

    def _write(self, path: str, job: JobRecord) -> None:
        # Readers only ever see a complete document
        fd, tmp_path = tempfile.mkstemp(dir=self._base_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(job.model_dump_json(exclude_none=True))
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _read(self, path: str) -> JobRecord:
        with open(path, "r", encoding="utf-8") as fh:
            return JobRecord.model_validate_json(fh.read())

    def _remove(self, path: str) -> bool:
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False

    def create_job(self, job_id: str) -> JobRecord:
        """Write a new pending record. Raises JobStoreError if it cannot be persisted."""
        path = self._job_path(job_id)
        if path is None:
            raise JobStoreError(f"Invalid job id: {job_id!r}")

        job = JobRecord(id=job_id, status=JobStatus.PENDING, timestamp=self._now_ms())
        logger.info("Creating job %s", job_id)
        try:
            with self._lock:
                self._write(path, job)
        except OSError as exc:
            raise JobStoreError(f"Failed to persist job {job_id}: {exc}") from exc
        return job

    def update_job(self, job_id: str, update: Dict[str, Any]) -> Optional[JobRecord]:
        """Merge fields over an existing record and refresh its timestamp.

        Missing or expired jobs are never recreated, and a job never moves
        backwards or out of a terminal state. Returns the stored record, or
        None when nothing was written.
        """
        path = self._job_path(job_id)
        with self._lock:
            existing = self._get(job_id, path)
            if existing is None:
                logger.warning("Attempted to update non-existent job %s", job_id)
                return None

            new_status = JobStatus(update.get("status", existing.status))
            if existing.status.is_terminal:
                logger.warning(
                    "Ignoring update to job %s already in terminal state %s",
                    job_id, existing.status.value,
                )
                return None
            if new_status.rank < existing.status.rank:
                logger.warning(
                    "Ignoring backwards transition for job %s: %s -> %s",
                    job_id, existing.status.value, new_status.value,
                )
                return None

            merged = existing.model_dump()
            merged.update(update)
            merged["id"] = job_id
            # result and error follow status and never coexist
            if new_status != JobStatus.COMPLETED:
                merged["result"] = None
            if new_status != JobStatus.FAILED:
                merged["error"] = None
            merged["timestamp"] = self._now_ms()
            try:
                updated = JobRecord.model_validate(merged)
                self._write(path, updated)
            except (OSError, ValidationError):
                logger.exception("Error updating job %s", job_id)
                return None

        logger.info("Job %s updated: %s", job_id, updated.status.value)
        return updated

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        """Return the record, or None if unknown, unreadable or expired."""
        path = self._job_path(job_id)
        with self._lock:
            return self._get(job_id, path)

    def _get(self, job_id: str, path: Optional[str]) -> Optional[JobRecord]:
        if path is None or not os.path.exists(path):
            logger.debug("Job not found: %s", job_id)
            return None

        try:
            job = self._read(path)
        except (OSError, ValueError) as exc:
            logger.error("Error reading job %s: %s", job_id, exc)
            return None

        if self._is_expired(job):
            logger.info("Removing expired job %s", job_id)
            self._remove(path)
            return None

        return job

    def cleanup(self) -> int:
        """Remove expired and unparseable records, plus stale partial writes.

        Returns count of removed files.
        """
        removed = 0
        try:
            entries = os.listdir(self._base_dir)
        except OSError:
            logger.exception("Error listing job store %s", self._base_dir)
            return 0

        for entry in entries:
            path = os.path.join(self._base_dir, entry)
            if entry.endswith(".tmp"):
                if self._remove_stale_partial(path):
                    removed += 1
                continue
            if not entry.endswith(".json"):
                continue
            with self._lock:
                try:
                    job = self._read(path)
                except FileNotFoundError:
                    continue
                except (OSError, ValueError):
                    # Unreadable records are never going to be served
                    if self._remove(path):
                        removed += 1
                    continue
                if self._is_expired(job) and self._remove(path):
                    removed += 1

        if removed > 0:
            logger.info("Cleaned up %d old jobs", removed)
        return removed

    def _remove_stale_partial(self, path: str) -> bool:
        """Drop a half-written temp file left behind by an interrupted write."""
        try:
            mtime = os.path.getmtime(path)
        except FileNotFoundError:
            return False
        if self._clock() - mtime <= self.retention_seconds:
            return False
        logger.info("Removing stale partial write %s", os.path.basename(path))
        return self._remove(path)
