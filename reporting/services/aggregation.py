"""
Aggregated data stream: formula results over component metric values.

Implements ReceiveAggregatedMicrogridComponentsDataStream. Each aggregation
config is prepared before the stream opens: its formula is parsed and every
referenced component is checked to exist in the microgrid and to report
the aggregated metric. During the stream every pass evaluates the configs
in request order, each yielding its results in timestamp order.

A component's value at a timestamp is the mean of its samples across
connections at that timestamp, or across the bucket when resampling.
Without resampling a formula is evaluated only at timestamps where every
referenced component has a contemporaneous sample.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reporting.common import Metric, SimpleMetricValue
from reporting.errors import (
    InvalidRequestError,
    UnknownComponentError,
    UnsupportedMetricError,
)
from reporting.models import (
    AggregationConfig,
    AggregationStreamFilter,
    ReceiveAggregatedMicrogridComponentsDataStreamRequest,
    ReceiveAggregatedMicrogridComponentsDataStreamResponse,
    SimpleAggregatedMetricValue,
)
from reporting.services.formula import Formula, parse_formula
from reporting.services.resampling import resample
from reporting.services.store import (
    RawMetricSample,
    fetch_components_reporting,
    fetch_metric_samples,
    fetch_registered_component_ids,
)
from reporting.services.windows import (
    Clock,
    Sleep,
    iter_passes,
    resolve_window,
    utc_now,
    validate_resolution,
    validate_time_filter,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedAggregation:
    """An aggregation config with its parsed and validated formula."""

    config: AggregationConfig
    formula: Formula


def _format_ids(component_ids: Iterable[int]) -> str:
    return ", ".join(f"#{component_id}" for component_id in sorted(component_ids))


async def prepare_aggregations(
    request: ReceiveAggregatedMicrogridComponentsDataStreamRequest,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    max_configs: int,
    cache_ttl_s: int,
) -> list[PreparedAggregation]:
    """Validate an aggregation request and parse its formulas.

    Args:
        request: The aggregation request.
        session_factory: Opens the database session used for the checks.
        max_configs: Maximum number of aggregation configs per request.
        cache_ttl_s: Expiry of component registry cache entries.

    Returns:
        list[PreparedAggregation]: One entry per config, in request order.

    Raises:
        InvalidRequestError: If no or too many configs are given, a metric
            is unspecified, the time window or resolution is invalid, or a
            formula references no component.
        FormulaSyntaxError: If a formula does not parse.
        UnknownComponentError: If a formula references a component the
            microgrid does not have.
        UnsupportedMetricError: If a referenced component never reported
            the aggregated metric.
    """
    if not request.aggregation_configs:
        raise InvalidRequestError("at least one aggregation config must be given")
    if len(request.aggregation_configs) > max_configs:
        raise InvalidRequestError(
            f"{len(request.aggregation_configs)} aggregation configs exceed the "
            f"limit of {max_configs}"
        )
    stream_filter = request.filter or AggregationStreamFilter()
    validate_time_filter(stream_filter.time_filter)
    validate_resolution(stream_filter.resampling_options)

    parsed: list[PreparedAggregation] = []
    for config in request.aggregation_configs:
        if config.metric == Metric.UNSPECIFIED:
            raise InvalidRequestError("aggregation metric must not be UNSPECIFIED")
        formula = parse_formula(config.aggregation_formula)
        if not formula.component_ids:
            raise InvalidRequestError(
                f"aggregation formula {config.aggregation_formula!r} "
                "references no component"
            )
        parsed.append(PreparedAggregation(config=config, formula=formula))

    async with session_factory() as db:
        for prepared in parsed:
            microgrid_id = prepared.config.microgrid_id
            component_ids = prepared.formula.component_ids

            registered = await fetch_registered_component_ids(
                db, microgrid_id, cache_ttl_s
            )
            unknown = component_ids - registered
            if unknown:
                raise UnknownComponentError(
                    f"microgrid {microgrid_id} has no component(s) "
                    f"{_format_ids(unknown)}"
                )

            reporting = await fetch_components_reporting(
                db, microgrid_id, component_ids, prepared.config.metric
            )
            unsupported = component_ids - reporting
            if unsupported:
                raise UnsupportedMetricError(
                    f"component(s) {_format_ids(unsupported)} of microgrid "
                    f"{microgrid_id} do not report {prepared.config.metric.name}"
                )

    return parsed


def component_values(
    samples: Iterable[RawMetricSample],
    resolution_s: int | None,
) -> dict[datetime, dict[int, float]]:
    """Reduce raw samples to one value per component and timestamp.

    Args:
        samples: Raw samples of a single metric.
        resolution_s: Bucket width, or None for native resolution.

    Returns:
        dict: Timestamp (or bucket start) -> component ID -> mean value,
            ordered by timestamp.
    """
    if resolution_s is None:
        per_connection: dict[tuple[datetime, int], list[float]] = {}
        for sample in samples:
            per_connection.setdefault((sample.ts, sample.component_id), []).append(
                sample.value
            )
        points = [
            (ts, component_id, sum(raw) / len(raw))
            for (ts, component_id), raw in per_connection.items()
        ]
    else:
        buckets = resample(
            samples,
            resolution_s,
            key=lambda s: s.component_id,
            ts=lambda s: s.ts,
            value=lambda s: s.value,
        )
        points = [(b.start, b.key, b.value) for b in buckets]

    values: dict[datetime, dict[int, float]] = {}
    for ts, component_id, value in sorted(points, key=lambda p: (p[0], p[1])):
        values.setdefault(ts, {})[component_id] = value
    return values


def evaluate_aggregation(
    prepared: PreparedAggregation,
    samples: Iterable[RawMetricSample],
    resolution_s: int | None,
) -> list[ReceiveAggregatedMicrogridComponentsDataStreamResponse]:
    """Evaluate one formula over the samples of a pass.

    Timestamps at which the formula yields no value (a referenced component
    is missing, a division by zero occurs or the result is not finite)
    produce no response.

    Args:
        prepared: The config and its parsed formula.
        samples: Raw samples of the referenced components and metric.
        resolution_s: Bucket width, or None for native resolution.

    Returns:
        list: Responses in timestamp order.
    """
    responses = []
    for ts, values in component_values(samples, resolution_s).items():
        result = prepared.formula.evaluate(values)
        if result is None:
            logger.debug(
                "Formula %r has no value at %s (components present: %s)",
                prepared.formula.text,
                ts,
                sorted(values),
            )
            continue
        responses.append(
            ReceiveAggregatedMicrogridComponentsDataStreamResponse(
                aggregation_config=prepared.config,
                sample=SimpleAggregatedMetricValue(
                    sampled_at=ts, sample=SimpleMetricValue(value=result)
                ),
            )
        )
    return responses


async def stream_aggregated_data(
    prepared: list[PreparedAggregation],
    stream_filter: AggregationStreamFilter | None,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock = utc_now,
    poll_interval_s: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[ReceiveAggregatedMicrogridComponentsDataStreamResponse]:
    """Stream formula results for prepared aggregation configs.

    Args:
        prepared: Output of :func:`prepare_aggregations`.
        stream_filter: Resampling and time window of the request.
        session_factory: Opens a database session per store query.
        clock: Returns the current UTC time.
        poll_interval_s: Delay between live passes.
        sleep: Awaitable sleep, replaceable in tests.

    Yields:
        ReceiveAggregatedMicrogridComponentsDataStreamResponse: One per
            config and timestamp.
    """
    stream_filter = stream_filter or AggregationStreamFilter()
    resolution_s = validate_resolution(stream_filter.resampling_options)
    window = resolve_window(stream_filter.time_filter, clock())

    logger.info(
        "Aggregation stream opened: formulas=%s resolution=%s window=[%s, %s)",
        [p.formula.text for p in prepared],
        resolution_s,
        window.start,
        window.end,
    )

    async for lower, upper in iter_passes(
        window,
        resolution_s,
        clock=clock,
        poll_interval_s=poll_interval_s,
        sleep=sleep,
    ):
        for item in prepared:
            async with session_factory() as db:
                samples = await fetch_metric_samples(
                    db,
                    item.config.microgrid_id,
                    item.formula.component_ids,
                    [item.config.metric],
                    lower,
                    upper,
                )
            for response in evaluate_aggregation(item, samples, resolution_s):
                yield response
