"""
FastAPI application entry point for the reporting API.

Provides the root health endpoint and serves as the application factory.
Settings are loaded at startup for validation and stored on app.state for
route handlers. Reporting errors raised before a stream is opened are
answered with their HTTP status and a ``{"code", "message"}`` detail.

CHANGELOG:
- 2026-10-19: Initial creation
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from reporting import __version__
from reporting.api.health import router as health_router
from reporting.api.ingest import router as ingest_router
from reporting.api.streams import router as streams_router
from reporting.config import get_settings
from reporting.db.session import dispose_engine
from reporting.errors import ReportingError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: settings validation and engine disposal.

    Startup:
        - Loads and validates settings from the environment.

    Shutdown:
        - Disposes the database engine.
    """
    settings = get_settings()
    app.state.settings = settings
    logger.info(
        "Reporting API ready (live_poll_interval_s=%s, "
        "max_aggregation_configs=%s, component_cache_ttl_s=%s)",
        settings.live_poll_interval_s,
        settings.max_aggregation_configs,
        settings.component_cache_ttl_s,
    )
    yield
    logger.info("Reporting API shutting down")
    await dispose_engine()


app = FastAPI(
    title="Microgrid Reporting API",
    description="Streaming access to microgrid component telemetry.",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(ReportingError)
async def reporting_error_handler(request: Request, exc: ReportingError) -> JSONResponse:
    """Answer a reporting error raised before a stream was opened."""
    logger.info(
        "Rejected %s %s: %s %s",
        request.method,
        request.url.path,
        exc.code,
        exc.message,
    )
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_dict()})


app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(streams_router)


@app.get("/")
async def root() -> dict:
    """Root health check endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
