"""
Ingest API endpoint for meter telemetry samples.

Accepts one reading via POST /api/raw-usage, folds it into the device's
raw bucket for the local day, then submits the daily/weekly/monthly
refolds to the background queue and invalidates the live-usage cache.
The response never waits for the refolds.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from wattwise.api.deps import (
    AppSettings,
    DbSession,
    Estimator,
    JobSessionFactory,
    Now,
    Queue,
)
from wattwise.cache.redis_client import invalidate_live_cache
from wattwise.services.ingestion import RawSample, fold_sample
from wattwise.services.periods import local_today
from wattwise.services.scheduler import enqueue_cascade

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ingest"])

INGEST_PATH = "/api/raw-usage"


# ---------------------------------------------------------------------------
# Pydantic request / response schemas
# ---------------------------------------------------------------------------


class RawUsageRequest(BaseModel):
    """Schema for a single meter reading.

    Attributes:
        voltage: Instantaneous voltage (V).
        current: Instantaneous current (A).
        power: Instantaneous power (W).
        energy: Cumulative hardware energy counter (kWh).
        device_id: Optional device identifier.
        observed_at: Optional observation time; defaults to receipt time.
    """

    voltage: float
    current: float
    power: float
    energy: float
    device_id: str | None = None
    observed_at: datetime | None = None


class Accumulated(BaseModel):
    power: float
    energy: float


class IngestResponse(BaseModel):
    """Schema for the ingest response.

    Attributes:
        success: Always True for a stored sample.
        action: ``inserted`` for the first sample of a day, else ``updated``.
        accumulated: Bucket power and energy totals after the fold.
    """

    success: bool
    action: str
    accumulated: Accumulated | None = None


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


@router.post("/raw-usage", response_model=IngestResponse, status_code=201)
async def ingest_raw_usage(
    request: RawUsageRequest,
    db: DbSession,
    settings: AppSettings,
    estimator: Estimator,
    queue: Queue,
    session_factory: JobSessionFactory,
    now: Now,
) -> IngestResponse:
    """Fold one meter reading into today's bucket.

    Raises:
        ValidationError: Malformed reading (mapped to 400).
        StorageError: Database failure (mapped to 500).
    """
    sample = RawSample(
        voltage=request.voltage,
        current=request.current,
        power=request.power,
        energy_counter=request.energy,
        observed_at=request.observed_at or now,
        device_id=request.device_id,
    )

    result = await fold_sample(
        db,
        sample,
        estimator,
        tz_offset_minutes=settings.TZ_OFFSET_MINUTES,
        default_device_id=settings.DEFAULT_DEVICE_ID,
    )

    offset = settings.TZ_OFFSET_MINUTES
    enqueue_cascade(
        queue,
        session_factory,
        result.day,
        result.device_id,
        lambda: local_today(offset),
    )

    # Best-effort cache invalidation
    try:
        await invalidate_live_cache(result.device_id)
    except Exception:
        logger.warning(
            "Live cache invalidation failed for device %s", result.device_id, exc_info=True,
        )

    return IngestResponse(
        success=True,
        action=result.action,
        accumulated=Accumulated(**result.accumulated()),
    )
