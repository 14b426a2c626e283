"""
Server-streaming endpoints of the reporting API.

POST /v1/streams/components  ReceiveMicrogridComponentsDataStream
POST /v1/streams/aggregated  ReceiveAggregatedMicrogridComponentsDataStream

Both endpoints validate the request before the stream is opened, so an
invalid request is answered with a plain HTTP error. Once validated, the
response is a newline-delimited JSON stream (``application/x-ndjson``) of
response messages. A failure after the stream opened terminates it with a
final ``{"error": {"code": ..., "message": ...}}`` line.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from reporting.api.deps import SessionFactory, Settings, StreamClock
from reporting.errors import ReportingError
from reporting.models import (
    ReceiveAggregatedMicrogridComponentsDataStreamRequest,
    ReceiveMicrogridComponentsDataStreamRequest,
)
from reporting.services.aggregation import prepare_aggregations, stream_aggregated_data
from reporting.services.components import (
    stream_components_data,
    validate_components_request,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/streams", tags=["streams"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def _error_line(error: ReportingError) -> str:
    return json.dumps({"error": error.to_dict()}) + "\n"


async def _ndjson(messages: AsyncIterator[BaseModel], stream: str) -> AsyncIterator[str]:
    """Serialise stream messages as NDJSON, ending with an error line on failure.

    Args:
        messages: Response messages of the stream.
        stream: Stream name used in log messages.

    Yields:
        str: One JSON document per line.
    """
    sent = 0
    try:
        async for message in messages:
            yield message.model_dump_json() + "\n"
            sent += 1
    except ReportingError as exc:
        logger.warning("%s stream terminated: %s", stream, exc.message)
        yield _error_line(exc)
    except Exception:
        logger.error("%s stream failed", stream, exc_info=True)
        yield _error_line(ReportingError("internal error while streaming"))
    finally:
        logger.info("%s stream closed after %d message(s)", stream, sent)


@router.post("/components")
async def receive_microgrid_components_data_stream(
    payload: ReceiveMicrogridComponentsDataStreamRequest,
    session_factory: SessionFactory,
    clock: StreamClock,
    settings: Settings,
) -> StreamingResponse:
    """Stream metric samples of the selected components.

    Args:
        payload: The components-data request.
        session_factory: Opens database sessions for the stream.
        clock: Clock used to resolve the stream window.
        settings: Service settings.

    Returns:
        StreamingResponse: NDJSON stream of
            ReceiveMicrogridComponentsDataStreamResponse messages.

    Raises:
        InvalidRequestError: If the request fails validation (422).
    """
    validate_components_request(payload)

    messages = stream_components_data(
        payload,
        session_factory=session_factory,
        clock=clock,
        poll_interval_s=settings.live_poll_interval_s,
    )
    return StreamingResponse(
        _ndjson(messages, "Components"), media_type=NDJSON_MEDIA_TYPE
    )


@router.post("/aggregated")
async def receive_aggregated_microgrid_components_data_stream(
    payload: ReceiveAggregatedMicrogridComponentsDataStreamRequest,
    session_factory: SessionFactory,
    clock: StreamClock,
    settings: Settings,
) -> StreamingResponse:
    """Stream formula results over component metrics.

    All formulas are parsed and checked against the component registry
    before the stream is opened.

    Args:
        payload: The aggregation request.
        session_factory: Opens database sessions for the stream.
        clock: Clock used to resolve the stream window.
        settings: Service settings.

    Returns:
        StreamingResponse: NDJSON stream of
            ReceiveAggregatedMicrogridComponentsDataStreamResponse messages.

    Raises:
        InvalidRequestError: If the request or a formula is invalid (422).
        UnknownComponentError: If a formula references an unknown
            component (404).
        UnsupportedMetricError: If a component does not report the
            aggregated metric (422).
    """
    prepared = await prepare_aggregations(
        payload,
        session_factory=session_factory,
        max_configs=settings.max_aggregation_configs,
        cache_ttl_s=settings.component_cache_ttl_s,
    )

    messages = stream_aggregated_data(
        prepared,
        payload.filter,
        session_factory=session_factory,
        clock=clock,
        poll_interval_s=settings.live_poll_interval_s,
    )
    return StreamingResponse(
        _ndjson(messages, "Aggregation"), media_type=NDJSON_MEDIA_TYPE
    )
