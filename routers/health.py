"""
Health and system status endpoints.
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import RedirectResponse

from . import shared

logger = logging.getLogger("lidar-catalog-api")

router = APIRouter()

SERVICE_NAME = "lidar-catalog-api"
SERVICE_VERSION = "1.0.0"
_started_at = time.time()


@router.get("/")
async def root():
    """Root endpoint that redirects to the OpenAPI specification."""
    return RedirectResponse("/openapi.json")


@router.get("/health")
async def health_check():
    """Health check endpoint with minimal dependency verification."""
    health_data = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "uptime": time.time() - _started_at,
        "region_boundaries_loaded": shared.region_lookup.is_loaded,
        "timestamp": time.time(),
    }

    try:
        import laspy  # noqa: F401
        import pyproj  # noqa: F401

        health_data["dependencies"] = "ok"
    except ImportError as e:
        health_data["dependencies"] = f"warning: {str(e)}"

    return health_data


@router.get("/health/ready")
async def readiness_check():
    """Lightweight readiness check for container startup."""
    return {"status": "ready", "timestamp": time.time()}
