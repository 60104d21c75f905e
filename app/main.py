"""Nutrition label risk analyzer - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import ConfigurationError, settings, validate_env
from app.logging_config import setup_logging
from app.api.v1.router import v1_router, analyze_router_compat
from app.api.v1.health import router as health_root_router
from app.api.v1 import analyze as analyze_api
from app.api.v1 import health as health_api
from app.analysis.pipeline import build_pipeline
from app.jobs.in_process_queue import InProcessQueue
from app.storage.job_store import JobStore
from app.storage.sweeper import JobSweeper

logger = logging.getLogger(__name__)

# Global dispatcher and sweeper references
_dispatcher = None
_sweeper = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _dispatcher, _sweeper

    setup_logging(settings.log_level)
    logger.info("Starting label analyzer on port %s", settings.compute_port)
    logger.info("Job store dir: %s", settings.job_store_dir)
    logger.info("Analysis strategy: %s", settings.analysis_strategy)

    try:
        validate_env()
    except ConfigurationError as exc:
        # Keep serving; submissions are rejected until the key is configured
        logger.warning("%s", exc)

    store = JobStore(
        base_dir=settings.job_store_dir,
        retention_seconds=settings.job_retention_seconds,
    )

    # Start expiry sweep
    _sweeper = JobSweeper(store, interval_seconds=settings.job_sweep_interval_seconds)
    await _sweeper.start()

    # Start job dispatcher
    pipeline = build_pipeline(settings)
    _dispatcher = InProcessQueue(
        store=store,
        worker_fn=pipeline.run,
        concurrency=settings.worker_concurrency,
    )
    await _dispatcher.start()
    logger.info("Job dispatcher started with %d worker(s)", _dispatcher.concurrency)

    # Wire dispatcher and store into API endpoints
    analyze_api.set_dispatcher(_dispatcher)
    analyze_api.set_store(store)
    health_api.set_dispatcher(_dispatcher)
    health_api.set_store(store)

    yield

    # Shutdown
    logger.info("Shutting down label analyzer")
    analyze_api.set_dispatcher(None)
    health_api.set_dispatcher(None)
    await _dispatcher.stop()
    await _sweeper.stop()
    _sweeper.run_once()
    analyze_api.set_store(None)
    health_api.set_store(None)


app = FastAPI(
    title="Nutrition Label Risk Analyzer",
    description="Classifies nutrition label ingredients into risk tiers with citations",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow frontend dev server and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return HTTP errors in the {"error": ...} shape the polling client reads."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are client errors with an {"error": ...} body."""
    errors = exc.errors()
    logger.warning("Request validation failed on %s: %s", request.url.path, errors)
    if any(tuple(err.get("loc", ()))[-1:] == ("image",) for err in errors):
        message = "No image provided"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
app.include_router(analyze_router_compat)  # /api/analyze, /api/analyze/status


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.compute_port)
