"""
Tests for the shared microgrid vocabulary (reporting.common).

Covers metric enumeration encoding, UTC handling of timestamps, unsigned
identifier ranges, and the metric-sample and component envelopes.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import json
from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import BaseModel, ValidationError

from reporting.common import (
    Bounds,
    ComponentData,
    ComponentState,
    Metric,
    MetricField,
    MetricSample,
    MicrogridComponentIDs,
    SimpleMetricValue,
    UInt32,
    to_utc,
)


class _Resolution(BaseModel):
    resolution: UInt32


# ---------------------------------------------------------------------------
# Metric enumeration
# ---------------------------------------------------------------------------


class TestMetricField:
    """Tests for metric parsing and serialisation."""

    class _Holder(BaseModel):
        metric: MetricField

    def test_accepts_name(self) -> None:
        assert self._Holder(metric="DC_VOLTAGE_V").metric is Metric.DC_VOLTAGE_V

    def test_accepts_name_case_insensitive(self) -> None:
        assert self._Holder(metric="ac_active_power_w").metric is (
            Metric.AC_ACTIVE_POWER_W
        )

    def test_accepts_number_and_numeric_string(self) -> None:
        assert self._Holder(metric=1).metric is Metric.DC_VOLTAGE_V
        assert self._Holder(metric="13").metric is Metric.AC_ACTIVE_POWER_W

    def test_rejects_unknown_name(self) -> None:
        with pytest.raises(ValidationError):
            self._Holder(metric="WIND_SPEED")

    def test_rejects_unknown_number(self) -> None:
        with pytest.raises(ValidationError):
            self._Holder(metric=9999)

    def test_serialises_to_name_in_json(self) -> None:
        data = json.loads(self._Holder(metric=Metric.DC_CURRENT_A).model_dump_json())
        assert data == {"metric": "DC_CURRENT_A"}

    def test_python_dump_keeps_member(self) -> None:
        dumped = self._Holder(metric=Metric.DC_CURRENT_A).model_dump()
        assert dumped["metric"] is Metric.DC_CURRENT_A

    def test_unspecified_is_zero(self) -> None:
        assert Metric.UNSPECIFIED == 0

    def test_numbers_are_stable(self) -> None:
        # Stored samples and clients sending numbers depend on these values.
        assert {m.name: m.value for m in Metric} == {
            "UNSPECIFIED": 0,
            "DC_VOLTAGE_V": 1,
            "DC_CURRENT_A": 2,
            "DC_POWER_W": 3,
            "AC_FREQUENCY_HZ": 10,
            "AC_VOLTAGE_V": 11,
            "AC_CURRENT_A": 12,
            "AC_ACTIVE_POWER_W": 13,
            "AC_REACTIVE_POWER_VAR": 14,
            "BATTERY_SOC_PCT": 20,
            "BATTERY_CAPACITY_WH": 21,
            "BATTERY_TEMPERATURE_C": 22,
            "INVERTER_TEMPERATURE_C": 30,
            "EV_CHARGER_TEMPERATURE_C": 40,
        }


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


class TestUtcTimestamps:
    """Tests for UTC normalisation of timestamps."""

    def test_naive_is_taken_as_utc(self) -> None:
        assert to_utc(datetime(2026, 1, 1, 12)) == datetime(2026, 1, 1, 12, tzinfo=UTC)

    def test_offset_is_converted_to_utc(self) -> None:
        cet = timezone(timedelta(hours=1))
        converted = to_utc(datetime(2026, 1, 1, 13, tzinfo=cet))
        assert converted == datetime(2026, 1, 1, 12, tzinfo=UTC)
        assert converted.utcoffset() == timedelta(0)

    def test_sample_timestamp_normalised(self) -> None:
        sample = MetricSample(
            sampled_at="2026-01-01T13:00:00+01:00",
            metric="DC_VOLTAGE_V",
            sample=SimpleMetricValue(value=1.0),
        )
        assert sample.sampled_at == datetime(2026, 1, 1, 12, tzinfo=UTC)
        assert sample.sampled_at.tzinfo is not None


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class TestUnsignedIdentifiers:
    """Tests for unsigned integer range checks."""

    def test_negative_microgrid_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MicrogridComponentIDs(microgrid_id=-1, component_ids=[1])

    def test_component_id_above_uint64_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MicrogridComponentIDs(microgrid_id=1, component_ids=[2**64])

    def test_uint64_max_accepted(self) -> None:
        ids = MicrogridComponentIDs(microgrid_id=2**64 - 1, component_ids=[0])
        assert ids.microgrid_id == 2**64 - 1

    def test_uint32_bounds(self) -> None:
        assert _Resolution(resolution=2**32 - 1).resolution == 2**32 - 1
        with pytest.raises(ValidationError):
            _Resolution(resolution=2**32)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class TestEnvelopes:
    """Tests for metric samples, bounds and component data."""

    def test_metric_sample_defaults(self) -> None:
        sample = MetricSample(
            sampled_at=datetime(2026, 1, 1, tzinfo=UTC),
            metric=Metric.DC_POWER_W,
            sample=SimpleMetricValue(value=-250.0),
        )
        assert sample.bounds == []
        assert sample.connection is None

    def test_bounds_sides_optional(self) -> None:
        bounds = Bounds(lower=-10.0)
        assert bounds.lower == -10.0
        assert bounds.upper is None

    def test_component_data_round_trips_through_json(self) -> None:
        data = ComponentData(
            component_id=13,
            metric_samples=[
                MetricSample(
                    sampled_at=datetime(2026, 1, 1, tzinfo=UTC),
                    metric=Metric.DC_VOLTAGE_V,
                    sample=SimpleMetricValue(value=48.2),
                    bounds=[Bounds(lower=40.0, upper=58.0)],
                    connection="dc_battery_1",
                )
            ],
            state=ComponentState(
                sampled_at=datetime(2026, 1, 1, tzinfo=UTC),
                states=["CHARGING"],
            ),
        )
        restored = ComponentData.model_validate_json(data.model_dump_json())
        assert restored == data
        assert restored.state is not None
        assert restored.state.warnings == []
