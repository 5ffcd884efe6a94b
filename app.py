#!/usr/bin/env python3
"""
FastAPI Application for LiDAR Tile Catalog Management
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.logging import DefaultFormatter

# Configure logging with uvicorn-style colors first (before any logging usage)
handler = logging.StreamHandler()
handler.setFormatter(
    DefaultFormatter(
        fmt="%(levelprefix)s %(message)s",  # identical to uvicorn default
        use_colors=True,
    )
)

logger = logging.getLogger("lidar-catalog-api")
logger.addHandler(handler)
logger.setLevel(logging.INFO)

# Remove any default handlers to avoid duplicate logs
logger.propagate = False

from routers.catalog import router as catalog_router
from routers.health import router as health_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup Events & Shutdown Events. Shutdown events occur after this event is yield'd."""
    logger.info("LiDAR catalog API starting up...")
    yield
    logger.info("LiDAR catalog API shutting down...")


app = FastAPI(
    title="LiDAR Tile Catalog API",
    description="API for resolving, validating and filtering multi-temporal LiDAR tile catalogs",
    version="1.0.0",
    lifespan=lifespan,
)

# Allow origins can be overridden with the ``CORS_ORIGINS`` environment
# variable (comma separated).
default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://0.0.0.0:3000",
]
cors_origins_env = os.environ.get("CORS_ORIGINS")
allow_origins = (
    [o.strip() for o in cors_origins_env.split(",") if o.strip()]
    if cors_origins_env
    else default_origins
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info(f"CORS allowed origins: {allow_origins}")

app.include_router(health_router, tags=["health"])
app.include_router(catalog_router, tags=["catalog"])

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
        reload_dirs=["./services", "./routers"],
    )
