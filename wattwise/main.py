"""
FastAPI application entry point for the WattWise API.

Wires the routers, maps domain errors to HTTP responses and runs the
background workers (refold queue and end-of-day batch scheduler) for the
lifetime of the application.

CHANGELOG:
- 2026-10-18: Start refold queue and end-of-day scheduler in lifespan
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from wattwise.api.deps import init_previous_value_cache, init_refold_queue
from wattwise.api.health import router as health_router
from wattwise.api.ingest import INGEST_PATH
from wattwise.api.ingest import router as ingest_router
from wattwise.api.usage import router as usage_router
from wattwise.config import get_settings
from wattwise.db.session import dispose_engine, get_session_factory
from wattwise.errors import StorageError, ValidationError
from wattwise.logging_config import setup_logging
from wattwise.services.scheduler import BatchScheduler

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required parameters: voltage, current, power, energy"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: start background workers, stop them on shutdown."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    init_previous_value_cache()
    queue = init_refold_queue()
    queue.start()

    scheduler = BatchScheduler(
        get_session_factory(),
        tz_offset_minutes=settings.TZ_OFFSET_MINUTES,
        hour=settings.BATCH_HOUR,
        minute=settings.BATCH_MINUTE,
    )
    scheduler.start()
    logger.info(
        "WattWise started (tz offset %d min, batch at %02d:%02d)",
        settings.TZ_OFFSET_MINUTES, settings.BATCH_HOUR, settings.BATCH_MINUTE,
    )

    try:
        yield
    finally:
        await scheduler.stop()
        await queue.stop()
        await dispose_engine()
        logger.info("WattWise stopped")


app = FastAPI(
    title="WattWise API",
    description="Energy usage tracking: ingest meter readings and report daily, weekly and monthly rollups.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(usage_router)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Report malformed ingest bodies as 400; other routes keep FastAPI's 422."""
    if request.url.path == INGEST_PATH:
        return JSONResponse(
            status_code=400, content={"success": False, "error": MISSING_FIELDS_MESSAGE},
        )
    return await request_validation_exception_handler(request, exc)


@app.get("/")
async def root() -> dict:
    """Liveness endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
