"""
Wire messages of the reporting service.

Request and response shapes for the two streaming operations:

- ReceiveMicrogridComponentsDataStream: raw (or resampled) metric samples
  of selected components of one or more microgrids.
- ReceiveAggregatedMicrogridComponentsDataStream: one scalar per timestamp
  computed by a formula over component metric values.

Optional sub-messages and scalars are modelled as ``X | None`` so that an
absent field stays distinguishable from a zero value. Only type-level
constraints are checked here; semantic validation (non-empty selections,
ordered time windows, parseable formulas) is done by the service before a
stream is opened.

Field names are the compatibility contract of the JSON encoding: they must
never be renamed or reused for a different meaning.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, Field

from reporting.common import (
    ComponentData,
    MetricField,
    MicrogridComponentIDs,
    SimpleMetricValue,
    UInt32,
    UInt64,
    UtcDatetime,
    wire_enum,
)

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TimeFilter(BaseModel):
    """Half-open UTC time window ``[start, end)``.

    Attributes:
        start: Inclusive lower bound. None means the earliest available data.
        end: Exclusive upper bound. None means up to now, then keep
            streaming new data as it arrives.
    """

    start: UtcDatetime | None = None
    end: UtcDatetime | None = None


class ResamplingOptions(BaseModel):
    """Resampling of raw samples into fixed, epoch-aligned buckets.

    All samples falling into a left-closed bucket are averaged and the
    result is stamped with the bucket's start time.

    Attributes:
        resolution: Bucket width in seconds. None means native resolution.
    """

    resolution: UInt32 | None = None


class FilterOption(IntEnum):
    """Whether an optional part of the data is included in responses."""

    UNSPECIFIED = 0
    EXCLUDE = 1
    INCLUDE = 2


FilterOptionField = wire_enum(FilterOption)


class IncludeOptions(BaseModel):
    """Additional data to include next to metric samples.

    Both parts are excluded unless explicitly set to ``INCLUDE``.
    """

    bounds: FilterOptionField | None = None
    states: FilterOptionField | None = None


class StreamFilter(BaseModel):
    """Filter shared by all microgrids of a components-data request."""

    resampling_options: ResamplingOptions | None = None
    include_options: IncludeOptions | None = None
    time_filter: TimeFilter | None = None


class AggregationStreamFilter(BaseModel):
    """Filter shared by all formulas of an aggregation request."""

    resampling_options: ResamplingOptions | None = None
    time_filter: TimeFilter | None = None


# ---------------------------------------------------------------------------
# Selections
# ---------------------------------------------------------------------------


class MetricConnections(BaseModel):
    """A metric to stream, optionally restricted to some connections.

    Attributes:
        metric: The metric to stream.
        connections: Connection names to keep. Empty means every connection
            of the metric. Names are matched exactly and need not appear in
            the microgrid's component graph.
    """

    metric: MetricField
    connections: list[str] = Field(default_factory=list)


class AggregationConfig(BaseModel):
    """One formula over one metric of one microgrid.

    Example: the total voltage of three components in series is
    ``AggregationConfig(microgrid_id=42, metric=Metric.DC_VOLTAGE_V,
    aggregation_formula="#1 + #2 + #3")``.

    Attributes:
        microgrid_id: Microgrid the referenced components belong to.
        metric: Metric aggregated by the formula; every referenced component
            must report it.
        aggregation_formula: Either aggregate functions such as
            ``sum(#1, #2)`` or ``avg(#3, #4)``, or arithmetic over component
            references such as ``#1 + #2 - #3``.
    """

    microgrid_id: UInt64
    metric: MetricField
    aggregation_formula: str


class SimpleAggregatedMetricValue(BaseModel):
    """A formula result at a point in time.

    Attributes:
        sampled_at: Timestamp of the samples the value was computed from.
        sample: The aggregated value.
    """

    sampled_at: UtcDatetime
    sample: SimpleMetricValue


# ---------------------------------------------------------------------------
# ReceiveMicrogridComponentsDataStream
# ---------------------------------------------------------------------------


class ReceiveMicrogridComponentsDataStreamRequest(BaseModel):
    """Request for a stream of per-component metric samples.

    Attributes:
        microgrid_components: Microgrids and their components to stream.
            At least one entry, each with at least one component.
        metrics: Metrics to stream. At least one.
        filter: Resampling, include options and time window applied to
            every selected microgrid and component.
    """

    microgrid_components: list[MicrogridComponentIDs] = Field(default_factory=list)
    metrics: list[MetricConnections] = Field(default_factory=list)
    filter: StreamFilter | None = None


class ReceiveMicrogridComponentsDataStreamResponse(BaseModel):
    """Data of one microgrid's components at a single timestamp.

    Each response covers one microgrid; several requested microgrids produce
    sequential responses.
    """

    microgrid_id: UInt64
    components: list[ComponentData] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# ReceiveAggregatedMicrogridComponentsDataStream
# ---------------------------------------------------------------------------


class ReceiveAggregatedMicrogridComponentsDataStreamRequest(BaseModel):
    """Request for a stream of formula results.

    At least one aggregation config must be given. Aggregation follows the
    passive sign convention.
    """

    aggregation_configs: list[AggregationConfig] = Field(default_factory=list)
    filter: AggregationStreamFilter | None = None


class ReceiveAggregatedMicrogridComponentsDataStreamResponse(BaseModel):
    """One formula result, echoing the config it was computed for."""

    aggregation_config: AggregationConfig
    sample: SimpleAggregatedMetricValue
