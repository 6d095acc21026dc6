"""
Event Reporting Backend - FastAPI Application Entry Point.

Initializes the FastAPI application with CORS middleware, mounts the v1 API
under /api/v1 and manages the process-wide clients in the lifespan:

Startup (in order):
1. Logging configuration
2. MongoDB connection and indexes
3. S3 client creation, credential check and bucket permission verification

Any startup failure propagates and stops the process: serving requests
against a bucket the application cannot write to only postpones the error.

Usage:
    uvicorn app.main:app --host 0.0.0.0 --port 8080
"""

import logging

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.api.v1 import api_router
from app.config import get_settings
from app.core.database import close_db, get_db_client, init_db
from app.core.storage import close_storage, init_storage
from app.utils.logger import setup_logging


# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """
    Manage application lifecycle events for startup and shutdown.

    Startup errors are logged and re-raised so the server exits.
    """
    settings = get_settings()

    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    logger.info(
        "%s starting",
        settings.app_name,
        extra={"environment": settings.app_env, "host": settings.host, "port": settings.port},
    )

    await init_db(settings)

    try:
        init_storage(settings)
    except Exception:
        logger.exception("S3 initialization failed")
        await close_db()
        raise

    logger.info("%s ready to accept requests", settings.app_name)

    yield

    logger.info("%s shutting down", settings.app_name)
    close_storage()
    await close_db()
    logger.info("%s shutdown complete", settings.app_name)


# =============================================================================
# FastAPI Application Instance
# =============================================================================

_settings = get_settings()

app = FastAPI(
    title=_settings.app_name,
    description=(
        "Event reporting backend. Media uploads are stored privately in S3 and "
        "served through short-lived presigned URLs."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=_settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# Root and Health Endpoints
# =============================================================================


@app.get("/", tags=["root"])
async def root() -> dict:
    """API metadata and a link to the interactive documentation."""
    return {
        "name": _settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check() -> dict:
    """
    Liveness probe.

    Returns immediately without checking MongoDB or S3; both are verified
    once at startup.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": _settings.app_name,
    }


@app.get("/ready", tags=["health"])
async def readiness_check() -> JSONResponse:
    """
    Readiness probe.

    Pings MongoDB and answers 503 while the database is unreachable or not
    yet initialised.
    """
    try:
        connected = await get_db_client().ping()
    except RuntimeError:
        connected = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if connected else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if connected else "unavailable",
            "database": "connected" if connected else "disconnected",
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


# All endpoints are versioned under /api/v1
app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
        log_level=_settings.log_level,
    )
