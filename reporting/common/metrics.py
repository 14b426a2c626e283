"""
Metric vocabulary and metric sample envelopes.

The Metric enumeration names every physical quantity a microgrid component
can report. Numbers are part of the wire contract: members may be added
but existing numbers are never changed or reused, and 0 always means
"unspecified".

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, Field

from reporting.common._wire import UtcDatetime, wire_enum


class Metric(IntEnum):
    """Physical quantities reported by microgrid components."""

    UNSPECIFIED = 0

    DC_VOLTAGE_V = 1
    DC_CURRENT_A = 2
    DC_POWER_W = 3

    AC_FREQUENCY_HZ = 10
    AC_VOLTAGE_V = 11
    AC_CURRENT_A = 12
    AC_ACTIVE_POWER_W = 13
    AC_REACTIVE_POWER_VAR = 14

    BATTERY_SOC_PCT = 20
    BATTERY_CAPACITY_WH = 21
    BATTERY_TEMPERATURE_C = 22

    INVERTER_TEMPERATURE_C = 30

    EV_CHARGER_TEMPERATURE_C = 40


MetricField = wire_enum(Metric)


class SimpleMetricValue(BaseModel):
    """A single scalar metric value."""

    value: float


class Bounds(BaseModel):
    """Inclusive bounds of a metric.

    Either side may be absent, meaning the metric is unbounded on that side.

    Attributes:
        lower: Lower bound, or None if unbounded below.
        upper: Upper bound, or None if unbounded above.
    """

    lower: float | None = None
    upper: float | None = None


class MetricSample(BaseModel):
    """One metric value of one component at one point in time.

    Attributes:
        sampled_at: UTC timestamp of the sample.
        metric: The quantity this sample measures.
        sample: The measured value.
        bounds: Bounds in effect at ``sampled_at``; empty when bounds were
            not requested or are unknown.
        connection: Name of the component sub-channel the value came from
            (e.g. a DC string), or None for component-level values.
    """

    sampled_at: UtcDatetime
    metric: MetricField
    sample: SimpleMetricValue
    bounds: list[Bounds] = Field(default_factory=list)
    connection: str | None = None
