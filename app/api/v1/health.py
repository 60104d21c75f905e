"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter

from app.config import settings

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


@router.get("/health")
async def health_check():
    """Service health, job store and worker pool status."""
    store = _store
    dispatcher = _dispatcher

    return {
        "status": "healthy" if store is not None and dispatcher is not None else "starting",
        "inference_configured": bool(settings.openai_api_key),
        "inference_model": settings.openai_model,
        "analysis_strategy": settings.analysis_strategy,
        "job_store_dir": store.base_dir if store is not None else None,
        "job_retention_seconds": store.retention_seconds if store is not None else None,
        "workers": getattr(dispatcher, "concurrency", None),
        "python_version": sys.version,
        "platform": platform.platform(),
    }
