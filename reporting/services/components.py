"""
Components data stream: per-component metric samples of selected microgrids.

Implements ReceiveMicrogridComponentsDataStream. For every pass over the
request window (see ``reporting.services.windows``) and every requested
microgrid, in request order, the stored samples of the selected components
and metrics are filtered by connection, optionally resampled, grouped by
timestamp and emitted as one response per (microgrid, timestamp).

All responses of one microgrid for a pass are emitted before those of the
next microgrid, so several microgrids show up as sequential, not
interleaved, runs of messages.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import bisect
import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import replace
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reporting.common import (
    Bounds,
    ComponentData,
    ComponentState,
    Metric,
    MetricSample,
    SimpleMetricValue,
)
from reporting.errors import InvalidRequestError
from reporting.models import (
    FilterOption,
    IncludeOptions,
    MetricConnections,
    ReceiveMicrogridComponentsDataStreamRequest,
    ReceiveMicrogridComponentsDataStreamResponse,
    StreamFilter,
)
from reporting.services.resampling import resample
from reporting.services.store import (
    RawMetricSample,
    RawStateSample,
    fetch_metric_samples,
    fetch_state_samples,
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

# Metric -> allowed connection names, or None for every connection.
MetricSelection = Mapping[Metric, frozenset[str] | None]


# ---------------------------------------------------------------------------
# Validation and request normalisation
# ---------------------------------------------------------------------------


def validate_components_request(
    request: ReceiveMicrogridComponentsDataStreamRequest,
) -> None:
    """Check a components-data request before any stream is opened.

    Raises:
        InvalidRequestError: If no microgrid, no component of a microgrid or
            no metric is given, a metric is unspecified, the time window is
            empty or reversed, or the resolution is zero.
    """
    if not request.microgrid_components:
        raise InvalidRequestError("at least one microgrid must be given")
    for entry in request.microgrid_components:
        if not entry.component_ids:
            raise InvalidRequestError(
                f"microgrid {entry.microgrid_id} must name at least one component"
            )
    if not request.metrics:
        raise InvalidRequestError("at least one metric must be given")
    for entry in request.metrics:
        if entry.metric == Metric.UNSPECIFIED:
            raise InvalidRequestError("metric must not be UNSPECIFIED")

    stream_filter = request.filter or StreamFilter()
    validate_time_filter(stream_filter.time_filter)
    validate_resolution(stream_filter.resampling_options)


def build_metric_selection(
    metrics: Iterable[MetricConnections],
) -> dict[Metric, frozenset[str] | None]:
    """Merge metric selectors into one connection filter per metric.

    An entry without connections selects every connection of its metric.
    Several entries for the same metric are combined: the union of their
    connections, or every connection if any of them is unrestricted.
    """
    selection: dict[Metric, frozenset[str] | None] = {}
    for entry in metrics:
        connections = frozenset(entry.connections) if entry.connections else None
        if entry.metric not in selection:
            selection[entry.metric] = connections
            continue
        current = selection[entry.metric]
        if current is None or connections is None:
            selection[entry.metric] = None
        else:
            selection[entry.metric] = current | connections
    return selection


def merge_microgrids(
    request: ReceiveMicrogridComponentsDataStreamRequest,
) -> list[tuple[int, list[int]]]:
    """Return (microgrid_id, component_ids) pairs, one per distinct microgrid.

    Entries naming the same microgrid are merged; order of first appearance
    is kept for microgrids and components alike.
    """
    merged: dict[int, list[int]] = {}
    for entry in request.microgrid_components:
        component_ids = merged.setdefault(entry.microgrid_id, [])
        for component_id in entry.component_ids:
            if component_id not in component_ids:
                component_ids.append(component_id)
    return list(merged.items())


# ---------------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------------


def _selected(sample: RawMetricSample, selection: MetricSelection) -> bool:
    if sample.metric not in selection:
        return False
    allowed = selection[sample.metric]
    return allowed is None or sample.connection in allowed


def _resampled(
    samples: list[RawMetricSample], resolution_s: int
) -> list[RawMetricSample]:
    buckets = resample(
        samples,
        resolution_s,
        key=lambda s: (s.component_id, s.metric, s.connection),
        ts=lambda s: s.ts,
        value=lambda s: s.value,
    )
    # Bounds of a bucket are those of its latest raw sample.
    return [replace(b.last, ts=b.start, value=b.value) for b in buckets]


def _to_metric_sample(sample: RawMetricSample, include_bounds: bool) -> MetricSample:
    bounds: list[Bounds] = []
    has_bounds = sample.lower_bound is not None or sample.upper_bound is not None
    if include_bounds and has_bounds:
        bounds.append(Bounds(lower=sample.lower_bound, upper=sample.upper_bound))
    return MetricSample(
        sampled_at=sample.ts,
        metric=sample.metric,
        sample=SimpleMetricValue(value=sample.value),
        bounds=bounds,
        connection=sample.connection or None,
    )


def _attach_states(
    record_times: Mapping[int, list[datetime]],
    states: Iterable[RawStateSample],
) -> dict[tuple[int, datetime], RawStateSample]:
    """Map each state to the component record it belongs to.

    A state belongs to the component's record with the greatest timestamp
    not after the state's own timestamp; the latest such state wins.
    """
    attached: dict[tuple[int, datetime], RawStateSample] = {}
    for state in sorted(states, key=lambda s: s.ts):
        times = record_times.get(state.component_id)
        if not times:
            continue
        index = bisect.bisect_right(times, state.ts) - 1
        if index < 0:
            continue
        attached[(state.component_id, times[index])] = state
    return attached


def build_components_responses(
    microgrid_id: int,
    samples: Iterable[RawMetricSample],
    states: Iterable[RawStateSample],
    *,
    selection: MetricSelection,
    resolution_s: int | None,
    include_bounds: bool,
    include_states: bool,
) -> list[ReceiveMicrogridComponentsDataStreamResponse]:
    """Turn the samples of one microgrid and pass into responses.

    Args:
        microgrid_id: Microgrid the samples belong to.
        samples: Raw metric samples of the pass.
        states: Raw state samples of the pass.
        selection: Connection filter per metric.
        resolution_s: Bucket width, or None for native resolution.
        include_bounds: Whether to attach bounds to metric samples.
        include_states: Whether to attach component states.

    Returns:
        list: One response per timestamp, in timestamp order. Within a
            response components are ordered by ID and metric samples by
            metric and connection.
    """
    selected = [sample for sample in samples if _selected(sample, selection)]
    if resolution_s is not None:
        selected = _resampled(selected, resolution_s)
    selected.sort(key=lambda s: (s.ts, s.component_id, s.metric, s.connection))

    by_ts: dict[datetime, dict[int, list[RawMetricSample]]] = {}
    for sample in selected:
        components = by_ts.setdefault(sample.ts, {})
        components.setdefault(sample.component_id, []).append(sample)

    attached: dict[tuple[int, datetime], RawStateSample] = {}
    if include_states:
        record_times: dict[int, list[datetime]] = {}
        for ts, components in by_ts.items():
            for component_id in components:
                record_times.setdefault(component_id, []).append(ts)
        attached = _attach_states(record_times, states)

    responses = []
    for ts, components in by_ts.items():
        component_data = []
        for component_id in sorted(components):
            state = attached.get((component_id, ts))
            component_data.append(
                ComponentData(
                    component_id=component_id,
                    metric_samples=[
                        _to_metric_sample(sample, include_bounds)
                        for sample in components[component_id]
                    ],
                    state=None
                    if state is None
                    else ComponentState(
                        sampled_at=state.ts,
                        states=list(state.states),
                        warnings=list(state.warnings),
                        errors=list(state.errors),
                    ),
                )
            )
        responses.append(
            ReceiveMicrogridComponentsDataStreamResponse(
                microgrid_id=microgrid_id, components=component_data
            )
        )
    return responses


# ---------------------------------------------------------------------------
# Stream
# ---------------------------------------------------------------------------


async def stream_components_data(
    request: ReceiveMicrogridComponentsDataStreamRequest,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock = utc_now,
    poll_interval_s: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[ReceiveMicrogridComponentsDataStreamResponse]:
    """Stream component data for a request.

    The request is validated before the first pass. The stream ends once a
    bounded window is exhausted; an unbounded window follows live data
    until the consumer stops iterating.

    Args:
        request: The components-data request.
        session_factory: Opens a database session per store query.
        clock: Returns the current UTC time.
        poll_interval_s: Delay between live passes.
        sleep: Awaitable sleep, replaceable in tests.

    Yields:
        ReceiveMicrogridComponentsDataStreamResponse: One per microgrid and
            timestamp.

    Raises:
        InvalidRequestError: If the request fails validation.
    """
    validate_components_request(request)

    stream_filter = request.filter or StreamFilter()
    resolution_s = validate_resolution(stream_filter.resampling_options)
    include = stream_filter.include_options or IncludeOptions()
    include_bounds = include.bounds == FilterOption.INCLUDE
    include_states = include.states == FilterOption.INCLUDE
    selection = build_metric_selection(request.metrics)
    microgrids = merge_microgrids(request)
    window = resolve_window(stream_filter.time_filter, clock())

    logger.info(
        "Components stream opened: microgrids=%s metrics=%s resolution=%s "
        "window=[%s, %s)",
        [microgrid_id for microgrid_id, _ in microgrids],
        [metric.name for metric in selection],
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
        for microgrid_id, component_ids in microgrids:
            async with session_factory() as db:
                samples = await fetch_metric_samples(
                    db, microgrid_id, component_ids, selection.keys(), lower, upper
                )
                states: list[RawStateSample] = []
                if include_states:
                    states = await fetch_state_samples(
                        db, microgrid_id, component_ids, lower, upper
                    )

            responses = build_components_responses(
                microgrid_id,
                samples,
                states,
                selection=selection,
                resolution_s=resolution_s,
                include_bounds=include_bounds,
                include_states=include_states,
            )
            logger.debug(
                "Pass [%s, %s) microgrid=%s samples=%d responses=%d",
                lower,
                upper,
                microgrid_id,
                len(samples),
                len(responses),
            )
            for response in responses:
                yield response
