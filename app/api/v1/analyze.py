"""Label analysis API: submit an image, poll the job it creates.

  POST /analyze                 receive an image, start a job -> {jobId}
  GET  /analyze/status?jobId=   current job record, 404 once absent/expired

Errors are returned as {"error": "..."} for the polling client.
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, Query, UploadFile
from fastapi.responses import JSONResponse

from app.config import ConfigurationError, validate_env
from app.jobs.models import AnalysisRequest, JobStatus, new_job_id
from app.storage.job_store import JobStoreError

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None
_store = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def set_store(store):
    global _store
    _store = store


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/analyze")
async def submit_analysis(image: Optional[UploadFile] = File(None)):
    """Create a job for the uploaded label image and return its id immediately.

    The analysis itself runs on the worker pool; poll /analyze/status for
    the outcome.
    """
    if _dispatcher is None or _store is None:
        return _error(503, "Job dispatcher not initialized")

    image_bytes = await image.read() if image is not None else b""
    if not image_bytes:
        logger.warning("No image provided in request")
        return _error(400, "No image provided")

    try:
        validate_env()
    except ConfigurationError as exc:
        logger.error("Environment validation error: %s", exc)
        return _error(500, str(exc))

    logger.info(
        "Image received: name=%s size=%d type=%s",
        image.filename, len(image_bytes), image.content_type,
    )

    job_id = new_job_id()
    try:
        _store.create_job(job_id)
    except JobStoreError as exc:
        logger.error("Could not create job: %s", exc)
        return _error(500, "Failed to start analysis")

    _store.update_job(job_id, {"status": JobStatus.PROCESSING})

    try:
        await _dispatcher.submit(
            AnalysisRequest(
                job_id=job_id,
                image_bytes=image_bytes,
                content_type=image.content_type,
            )
        )
    except Exception as exc:
        logger.exception("Could not queue job %s", job_id)
        _store.update_job(job_id, {"status": JobStatus.FAILED, "error": str(exc)})
        return _error(500, "Failed to start analysis")

    return {"jobId": job_id}


@router.get("/analyze/status")
async def get_analysis_status(job_id: Optional[str] = Query(None, alias="jobId")):
    """Return the job record verbatim, or 404 when it is unknown or expired."""
    if _store is None:
        return _error(503, "Job store not initialized")

    if not job_id:
        logger.warning("No jobId provided in request")
        return _error(400, "No jobId provided")

    job = _store.get_job(job_id)
    if job is None:
        logger.info("Job not found: %s", job_id)
        return _error(404, "Job not found")

    logger.debug("Job status: %s %s", job_id, job.status.value)
    return job.model_dump(mode="json", exclude_none=True)
