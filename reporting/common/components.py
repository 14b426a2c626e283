"""
Component data envelopes: per-component metric samples and state.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from reporting.common._wire import UInt64, UtcDatetime
from reporting.common.metrics import MetricSample


class ComponentState(BaseModel):
    """Operational state of a component at a point in time.

    State, warning and error codes are opaque identifiers such as
    ``COMPONENT_STATE_CHARGING`` or ``COMPONENT_ERROR_CODE_BATTERY_RELAY_ERROR``.

    Attributes:
        sampled_at: UTC timestamp at which the state was observed.
        states: Active operational states.
        warnings: Active warning codes.
        errors: Active error codes.
    """

    sampled_at: UtcDatetime
    states: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ComponentData(BaseModel):
    """All data reported for one component at one timestamp.

    Attributes:
        component_id: Identifier of the component within its microgrid.
        metric_samples: Metric samples, all sharing the same timestamp.
        state: Latest known state, present only when states were requested.
    """

    component_id: UInt64
    metric_samples: list[MetricSample] = Field(default_factory=list)
    state: ComponentState | None = None
