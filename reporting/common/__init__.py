"""
Shared microgrid vocabulary used by the reporting messages.

Metric enumeration, component and microgrid identifiers, and the generic
metric-sample, bound and state envelopes. The reporting messages build on
these types but do not extend them.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from reporting.common._wire import UInt32, UInt64, UtcDatetime, to_utc, wire_enum
from reporting.common.components import ComponentData, ComponentState
from reporting.common.metrics import (
    Bounds,
    Metric,
    MetricField,
    MetricSample,
    SimpleMetricValue,
)
from reporting.common.microgrid import MicrogridComponentIDs

__all__ = [
    "Bounds",
    "ComponentData",
    "ComponentState",
    "Metric",
    "MetricField",
    "MetricSample",
    "MicrogridComponentIDs",
    "SimpleMetricValue",
    "UInt32",
    "UInt64",
    "UtcDatetime",
    "to_utc",
    "wire_enum",
]
