"""
Tests for epoch-aligned resampling.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from datetime import UTC, datetime, timedelta

from reporting.services.resampling import (
    align_window,
    bucket_ceil,
    bucket_start,
    resample,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


class TestBucketEdges:
    """Tests for bucket edge arithmetic."""

    def test_bucket_start_floors_to_epoch_multiple(self) -> None:
        assert bucket_start(_at(7), 5) == _at(5)
        assert bucket_start(_at(5), 5) == _at(5)

    def test_bucket_start_subsecond(self) -> None:
        assert bucket_start(_at(9.999), 10) == _at(0)

    def test_bucket_ceil(self) -> None:
        assert bucket_ceil(_at(1), 10) == _at(10)
        assert bucket_ceil(_at(10), 10) == _at(10)

    def test_hour_buckets_are_epoch_aligned(self) -> None:
        ts = datetime(2026, 1, 1, 12, 34, 56, tzinfo=UTC)
        assert bucket_start(ts, 3600) == datetime(2026, 1, 1, 12, tzinfo=UTC)

    def test_align_window_shrinks_to_whole_buckets(self) -> None:
        assert align_window(_at(1), _at(29), 10) == (_at(10), _at(20))

    def test_align_window_keeps_open_sides(self) -> None:
        assert align_window(None, None, 10) == (None, None)
        assert align_window(_at(3), None, 10) == (_at(10), None)


class TestResample:
    """Tests for bucket averaging."""

    def test_mean_per_bucket_stamped_with_left_edge(self) -> None:
        samples = [("a", _at(0), 1.0), ("a", _at(4), 3.0), ("a", _at(5), 10.0)]
        buckets = resample(
            samples, 5, key=lambda s: s[0], ts=lambda s: s[1], value=lambda s: s[2]
        )
        assert [(b.start, b.value, b.count) for b in buckets] == [
            (_at(0), 2.0, 2),
            (_at(5), 10.0, 1),
        ]

    def test_series_kept_apart(self) -> None:
        samples = [("a", _at(1), 1.0), ("b", _at(2), 5.0), ("a", _at(3), 3.0)]
        buckets = resample(
            samples, 10, key=lambda s: s[0], ts=lambda s: s[1], value=lambda s: s[2]
        )
        assert {(b.key, b.value) for b in buckets} == {("a", 2.0), ("b", 5.0)}

    def test_last_is_latest_sample_regardless_of_order(self) -> None:
        samples = [("a", _at(3), 3.0), ("a", _at(1), 1.0)]
        (bucket,) = resample(
            samples, 10, key=lambda s: s[0], ts=lambda s: s[1], value=lambda s: s[2]
        )
        assert bucket.last == ("a", _at(3), 3.0)

    def test_buckets_ordered_by_start(self) -> None:
        samples = [("a", _at(25), 1.0), ("a", _at(5), 1.0), ("b", _at(15), 1.0)]
        buckets = resample(
            samples, 10, key=lambda s: s[0], ts=lambda s: s[1], value=lambda s: s[2]
        )
        assert [b.start for b in buckets] == [_at(0), _at(10), _at(20)]

    def test_empty_input(self) -> None:
        assert resample([], 10, key=str, ts=lambda s: s, value=float) == []
