"""
POST /v1/ingest endpoint for batch ingestion of component samples.

Accepts a JSON payload with metric and state samples of one microgrid,
enforces batch size and request body limits, registers new components,
inserts with idempotent conflict handling, and returns the counts of
actually inserted rows.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from reporting.api.deps import DbSession, Settings
from reporting.common import Metric, MetricField, UInt64, UtcDatetime
from reporting.services.ingestion import ingest_samples

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["ingest"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class MetricSampleIn(BaseModel):
    """Single metric sample of a component."""

    model_config = ConfigDict(allow_inf_nan=False)

    component_id: UInt64
    sampled_at: UtcDatetime
    metric: MetricField
    value: float
    connection: Annotated[str, Field(max_length=255)] = ""
    lower_bound: float | None = None
    upper_bound: float | None = None


class StateSampleIn(BaseModel):
    """Single state sample of a component."""

    component_id: UInt64
    sampled_at: UtcDatetime
    states: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class IngestPayload(BaseModel):
    """Batch payload for the ingest endpoint."""

    microgrid_id: UInt64
    metric_samples: list[MetricSampleIn] = Field(default_factory=list)
    state_samples: list[StateSampleIn] = Field(default_factory=list)


class IngestResponse(BaseModel):
    """Response from the ingest endpoint."""

    registered_components: int
    inserted_metric_samples: int
    inserted_state_samples: int


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


def _metric_row(microgrid_id: int, sample: MetricSampleIn) -> dict:
    return {
        "microgrid_id": microgrid_id,
        "component_id": sample.component_id,
        "metric": int(sample.metric),
        "connection": sample.connection,
        "ts": sample.sampled_at,
        "value": sample.value,
        "lower_bound": sample.lower_bound,
        "upper_bound": sample.upper_bound,
    }


def _state_row(microgrid_id: int, sample: StateSampleIn) -> dict:
    return {
        "microgrid_id": microgrid_id,
        "component_id": sample.component_id,
        "ts": sample.sampled_at,
        "states": sample.states,
        "warnings": sample.warnings,
        "errors": sample.errors,
    }


@router.post("/ingest", response_model=IngestResponse)
async def ingest(
    request: Request,
    db: DbSession,
    settings: Settings,
) -> IngestResponse:
    """Ingest a batch of component samples.

    Inserts with ON CONFLICT DO NOTHING for idempotency and invalidates the
    microgrid's component registry cache when new components appear.

    Args:
        request: The incoming FastAPI request.
        db: Async database session.
        settings: Service settings.

    Returns:
        IngestResponse: Counts of actually inserted rows.

    Raises:
        HTTPException: 413 if body exceeds MAX_REQUEST_BYTES or batch
            exceeds MAX_SAMPLES_PER_REQUEST.
        HTTPException: 422 if a metric sample has an unspecified metric.
    """
    max_request_bytes = settings.max_request_bytes

    # Pre-check Content-Length before buffering
    content_length = request.headers.get("content-length")
    if content_length is not None:
        try:
            content_length_int = int(content_length)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail="Invalid Content-Length header.",
            ) from None
        if content_length_int > max_request_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Request body exceeds limit of {max_request_bytes} bytes.",
            )

    body = await request.body()
    if len(body) > max_request_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Request body exceeds limit of {max_request_bytes} bytes.",
        )

    # Parse payload, converting Pydantic ValidationError to 422
    try:
        payload = IngestPayload.model_validate_json(body)
    except ValidationError as exc:
        return JSONResponse(
            status_code=422,
            content={
                "detail": exc.errors(
                    include_url=False, include_context=False, include_input=False
                )
            },
        )

    total = len(payload.metric_samples) + len(payload.state_samples)
    if total == 0:
        return IngestResponse(
            registered_components=0,
            inserted_metric_samples=0,
            inserted_state_samples=0,
        )

    max_samples = settings.max_samples_per_request
    if total > max_samples:
        raise HTTPException(
            status_code=413,
            detail=f"Batch size {total} exceeds limit of "
            f"{max_samples}. Split into smaller batches.",
        )

    for sample in payload.metric_samples:
        if sample.metric == Metric.UNSPECIFIED:
            raise HTTPException(
                status_code=422,
                detail=f"Metric sample of component {sample.component_id} "
                "has an unspecified metric.",
            )

    result = await ingest_samples(
        db,
        payload.microgrid_id,
        [_metric_row(payload.microgrid_id, s) for s in payload.metric_samples],
        [_state_row(payload.microgrid_id, s) for s in payload.state_samples],
    )

    return IngestResponse(
        registered_components=result.registered_components,
        inserted_metric_samples=result.inserted_metric_samples,
        inserted_state_samples=result.inserted_state_samples,
    )
