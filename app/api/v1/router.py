"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as health_router
from app.api.v1.analyze import router as analyze_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(analyze_router, tags=["analyze"])

# Compatibility shim: mounts /api/analyze and /api/analyze/status for the web client
analyze_router_compat = APIRouter(prefix="/api")
analyze_router_compat.include_router(analyze_router, tags=["analyze"])
