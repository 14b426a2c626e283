"""
Tests for the aggregated components data stream.

Covers request preparation (config limits, formula parsing, component and
metric checks), per-timestamp evaluation and end-to-end streaming over a
SQLite-backed store.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reporting.common import Metric
from reporting.db.models import Component, MetricSampleRecord
from reporting.errors import (
    FormulaSyntaxError,
    InvalidRequestError,
    UnknownComponentError,
    UnsupportedMetricError,
)
from reporting.models import (
    AggregationConfig,
    AggregationStreamFilter,
    ReceiveAggregatedMicrogridComponentsDataStreamRequest,
    ResamplingOptions,
    TimeFilter,
)
from reporting.services.aggregation import (
    PreparedAggregation,
    component_values,
    evaluate_aggregation,
    prepare_aggregations,
    stream_aggregated_data,
)
from reporting.services.formula import parse_formula
from reporting.services.store import RawMetricSample

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
T0 = datetime(2026, 1, 1, 11, 0, 0, tzinfo=UTC)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def _raw(
    component_id: int, seconds: float, value: float, connection: str = ""
) -> RawMetricSample:
    return RawMetricSample(
        component_id=component_id,
        metric=Metric.DC_VOLTAGE_V,
        connection=connection,
        ts=_at(seconds),
        value=value,
    )


def _config(formula: str = "#1 + #2 + #3", microgrid_id: int = 1) -> AggregationConfig:
    return AggregationConfig(
        microgrid_id=microgrid_id,
        metric=Metric.DC_VOLTAGE_V,
        aggregation_formula=formula,
    )


def _make_request(
    *configs: AggregationConfig,
    stream_filter: AggregationStreamFilter | None = None,
) -> ReceiveAggregatedMicrogridComponentsDataStreamRequest:
    return ReceiveAggregatedMicrogridComponentsDataStreamRequest(
        aggregation_configs=list(configs), filter=stream_filter
    )


def _history(start: float, end: float, resolution: int | None = None):
    return AggregationStreamFilter(
        time_filter=TimeFilter(start=_at(start), end=_at(end)),
        resampling_options=ResamplingOptions(resolution=resolution),
    )


def _series_rows(values: dict[int, list[tuple[float, float]]]) -> list:
    rows: list = [Component(microgrid_id=1, component_id=cid) for cid in values]
    for component_id, points in values.items():
        for seconds, value in points:
            rows.append(
                MetricSampleRecord(
                    microgrid_id=1,
                    component_id=component_id,
                    metric=int(Metric.DC_VOLTAGE_V),
                    connection="",
                    ts=_at(seconds),
                    value=value,
                )
            )
    return rows


async def _prepare(request, session_factory, max_configs: int = 100):
    return await prepare_aggregations(
        request,
        session_factory=session_factory,
        max_configs=max_configs,
        cache_ttl_s=60,
    )


# ---------------------------------------------------------------------------
# Preparation
# ---------------------------------------------------------------------------


class TestPrepareAggregations:
    """Tests for validation before the stream opens."""

    @pytest.mark.asyncio
    async def test_empty_configs_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        with pytest.raises(InvalidRequestError, match="at least one"):
            await _prepare(_make_request(), session_factory)

    @pytest.mark.asyncio
    async def test_too_many_configs_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        request = _make_request(_config(), _config())
        with pytest.raises(InvalidRequestError, match="limit of 1"):
            await _prepare(request, session_factory, max_configs=1)

    @pytest.mark.asyncio
    async def test_unspecified_metric_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        config = AggregationConfig(
            microgrid_id=1, metric=Metric.UNSPECIFIED, aggregation_formula="#1"
        )
        with pytest.raises(InvalidRequestError, match="UNSPECIFIED"):
            await _prepare(_make_request(config), session_factory)

    @pytest.mark.asyncio
    async def test_bad_formula_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        with pytest.raises(FormulaSyntaxError):
            await _prepare(_make_request(_config("#1 +")), session_factory)

    @pytest.mark.asyncio
    async def test_formula_without_components_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        with pytest.raises(InvalidRequestError, match="references no component"):
            await _prepare(_make_request(_config("1 + 2")), session_factory)

    @pytest.mark.asyncio
    async def test_reversed_window_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        request = _make_request(_config(), stream_filter=_history(10, 0))
        with pytest.raises(InvalidRequestError):
            await _prepare(request, session_factory)

    @pytest.mark.asyncio
    async def test_unknown_component_rejected(
        self,
        seed: Callable,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        seed(_series_rows({1: [(0, 1.0)], 2: [(0, 1.0)]}))
        with pytest.raises(UnknownComponentError, match="#3") as exc_info:
            await _prepare(_make_request(_config()), session_factory)
        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.http_status == 404

    @pytest.mark.asyncio
    async def test_unsupported_metric_rejected(
        self,
        seed: Callable,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        seed(_series_rows({1: [(0, 1.0)], 2: [(0, 1.0)], 3: []}))
        with pytest.raises(UnsupportedMetricError, match="#3") as exc_info:
            await _prepare(_make_request(_config()), session_factory)
        assert exc_info.value.code == "FAILED_PRECONDITION"

    @pytest.mark.asyncio
    async def test_valid_request_prepared_in_order(
        self,
        seed: Callable,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        seed(_series_rows({1: [(0, 1.0)], 2: [(0, 1.0)], 3: [(0, 1.0)]}))
        request = _make_request(_config("#3"), _config("sum(#1, #2)"))
        prepared = await _prepare(request, session_factory)
        assert [p.config.aggregation_formula for p in prepared] == ["#3", "sum(#1, #2)"]
        assert prepared[1].formula.component_ids == {1, 2}


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class TestEvaluation:
    """Tests for per-timestamp formula evaluation."""

    def test_connections_averaged_per_component(self) -> None:
        values = component_values(
            [_raw(1, 0, 10.0, "a"), _raw(1, 0, 20.0, "b"), _raw(2, 0, 5.0)], None
        )
        assert values == {_at(0): {1: 15.0, 2: 5.0}}

    def test_resampled_values_per_bucket(self) -> None:
        values = component_values(
            [_raw(1, 1, 1.0), _raw(1, 3, 3.0), _raw(1, 12, 6.0)], 10
        )
        assert values == {_at(0): {1: 2.0}, _at(10): {1: 6.0}}

    def test_sum_per_timestamp(self) -> None:
        prepared = PreparedAggregation(
            config=_config(), formula=parse_formula("#1 + #2 + #3")
        )
        samples = [
            _raw(1, 0, 48.0),
            _raw(2, 0, 47.5),
            _raw(3, 0, 48.5),
            _raw(1, 5, 48.1),
            _raw(2, 5, 47.4),
            _raw(3, 5, 48.5),
        ]
        responses = evaluate_aggregation(prepared, samples, None)
        assert [r.sample.sampled_at for r in responses] == [_at(0), _at(5)]
        assert [r.sample.sample.value for r in responses] == pytest.approx(
            [144.0, 144.0]
        )
        assert all(r.aggregation_config == _config() for r in responses)

    def test_incomplete_timestamp_skipped(self) -> None:
        prepared = PreparedAggregation(config=_config(), formula=parse_formula("#1 + #2"))
        responses = evaluate_aggregation(
            prepared, [_raw(1, 0, 1.0), _raw(1, 5, 1.0), _raw(2, 5, 2.0)], None
        )
        assert [r.sample.sampled_at for r in responses] == [_at(5)]

    def test_overflowing_result_skipped(self) -> None:
        prepared = PreparedAggregation(
            config=_config("#1 * 1e308"), formula=parse_formula("#1 * 1e308")
        )
        responses = evaluate_aggregation(
            prepared, [_raw(1, 0, 10.0), _raw(1, 5, 0.5)], None
        )
        assert [r.sample.sampled_at for r in responses] == [_at(5)]
        decoded = type(responses[0]).model_validate_json(
            responses[0].model_dump_json()
        )
        assert decoded == responses[0]


# ---------------------------------------------------------------------------
# End-to-end stream
# ---------------------------------------------------------------------------


class TestStreamAggregatedData:
    """Tests for streaming formula results from the store."""

    @pytest.mark.asyncio
    async def test_series_voltage_sum(
        self,
        seed: Callable,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        seed(
            _series_rows(
                {
                    1: [(0, 48.0), (1, 48.2)],
                    2: [(0, 47.0), (1, 47.1)],
                    3: [(0, 49.0), (1, 49.3)],
                }
            )
        )
        request = _make_request(_config(), stream_filter=_history(0, 60))
        prepared = await _prepare(request, session_factory)

        responses = [
            response
            async for response in stream_aggregated_data(
                prepared,
                request.filter,
                session_factory=session_factory,
                clock=lambda: NOW,
            )
        ]

        assert [r.sample.sampled_at for r in responses] == [_at(0), _at(1)]
        assert [r.sample.sample.value for r in responses] == pytest.approx(
            [144.0, 144.6]
        )
        assert responses[0].aggregation_config.aggregation_formula == "#1 + #2 + #3"

    @pytest.mark.asyncio
    async def test_resampled_average(
        self,
        seed: Callable,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        seed(_series_rows({1: [(0, 1.0), (2, 3.0), (10, 5.0)], 2: [(4, 4.0), (15, 6.0)]}))
        request = _make_request(
            _config("avg(#1, #2)"), stream_filter=_history(0, 20, resolution=10)
        )
        prepared = await _prepare(request, session_factory)

        responses = [
            response
            async for response in stream_aggregated_data(
                prepared,
                request.filter,
                session_factory=session_factory,
                clock=lambda: NOW,
            )
        ]

        assert [r.sample.sampled_at for r in responses] == [_at(0), _at(10)]
        assert [r.sample.sample.value for r in responses] == pytest.approx([3.0, 5.5])

    @pytest.mark.asyncio
    async def test_configs_emitted_in_request_order(
        self,
        seed: Callable,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        seed(_series_rows({1: [(0, 1.0), (1, 2.0)], 2: [(0, 10.0), (1, 20.0)]}))
        request = _make_request(
            _config("#2"), _config("#1"), stream_filter=_history(0, 60)
        )
        prepared = await _prepare(request, session_factory)

        responses = [
            response
            async for response in stream_aggregated_data(
                prepared,
                request.filter,
                session_factory=session_factory,
                clock=lambda: NOW,
            )
        ]

        assert [r.aggregation_config.aggregation_formula for r in responses] == [
            "#2",
            "#2",
            "#1",
            "#1",
        ]
