"""
FastAPI application for inspectr.

Provides:
- Liveness and health endpoints
- Prometheus metrics
- Read-only status of the poll loop
The poll loop itself runs as a background task for the app's lifetime.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, FastAPI
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from . import __version__
from .config import settings
from .metrics import get_metrics_response, inspectr_info
from .monitor import get_monitor

logger = structlog.get_logger(__name__)


def configure_logging(level: str) -> None:
    """Drop log events below ``level`` (e.g. "info", "debug")."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


# =============================================================================
# RESPONSE MODELS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    monitor: Dict[str, Any]


# =============================================================================
# APP
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    configure_logging(settings.log_level)
    logger.info("hello inspectr", host=settings.host, port=settings.port)
    inspectr_info.info({"version": __version__, "schedule": settings.schedule})

    monitor = get_monitor()
    await monitor.start()

    yield

    await monitor.stop()
    logger.info("Shutting down inspectr")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="inspectr",
        description="Container image upgrade watcher for Kubernetes",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(status_router)
    return app


# =============================================================================
# HEALTH ROUTES
# =============================================================================

health_router = APIRouter(tags=["Health"])


@health_router.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    """Liveness probe."""
    return "OK"


@health_router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        monitor=get_monitor().get_status(),
    )


# =============================================================================
# METRICS ROUTES
# =============================================================================

metrics_router = APIRouter(tags=["Metrics"])


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()


# =============================================================================
# STATUS ROUTES
# =============================================================================

status_router = APIRouter(prefix="/api/v1", tags=["Status"])


@status_router.get("/status")
async def status():
    """Summary of the latest poll cycle."""
    return get_monitor().get_status()


@status_router.get("/upgrades")
async def upgrades():
    """Every upgrade found by the latest cycle, announced or not."""
    return get_monitor().get_upgrades()


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "inspectr.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
