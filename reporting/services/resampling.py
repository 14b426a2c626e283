"""
Epoch-aligned resampling of raw samples.

Buckets are left-closed intervals ``[k * resolution, (k + 1) * resolution)``
counted from the Unix epoch. A bucket is stamped with its left edge and its
value is the mean of the raw samples inside it. Since buckets partition the
time axis, every raw sample contributes to exactly one bucket.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def bucket_start(ts: datetime, resolution_s: int) -> datetime:
    """Return the left edge of the bucket containing *ts*."""
    width = timedelta(seconds=resolution_s)
    return EPOCH + ((ts - EPOCH) // width) * width


def bucket_ceil(ts: datetime, resolution_s: int) -> datetime:
    """Return the first bucket edge at or after *ts*."""
    start = bucket_start(ts, resolution_s)
    if start == ts:
        return start
    return start + timedelta(seconds=resolution_s)


def align_window(
    start: datetime | None,
    end: datetime | None,
    resolution_s: int,
) -> tuple[datetime | None, datetime | None]:
    """Shrink a window so it only covers whole buckets.

    The start is rounded up and the end rounded down to bucket edges, so
    every bucket produced inside the aligned window starts within the
    original ``[start, end)`` and only contains samples from it.

    Args:
        start: Inclusive window start, or None.
        end: Exclusive window end, or None.
        resolution_s: Bucket width in seconds.

    Returns:
        tuple: The aligned ``(start, end)``; None sides stay None.
    """
    aligned_start = None if start is None else bucket_ceil(start, resolution_s)
    aligned_end = None if end is None else bucket_start(end, resolution_s)
    return aligned_start, aligned_end


@dataclass(frozen=True)
class Bucket(Generic[K, T]):
    """Mean of the samples of one series inside one bucket.

    Attributes:
        key: Series the samples belong to.
        start: Left edge of the bucket.
        value: Arithmetic mean of the sample values.
        count: Number of raw samples averaged.
        last: The latest raw sample of the bucket.
    """

    key: K
    start: datetime
    value: float
    count: int
    last: T


def resample(
    items: Iterable[T],
    resolution_s: int,
    *,
    key: Callable[[T], K],
    ts: Callable[[T], datetime],
    value: Callable[[T], float],
) -> list[Bucket[K, T]]:
    """Average raw samples per series and bucket.

    Args:
        items: Raw samples, in any order.
        resolution_s: Bucket width in seconds.
        key: Returns the series a sample belongs to.
        ts: Returns the timestamp of a sample.
        value: Returns the value of a sample.

    Returns:
        list[Bucket]: One bucket per (series, bucket start) that received at
            least one sample, ordered by bucket start, then by first
            appearance of the series.
    """
    totals: dict[tuple[K, datetime], list] = {}
    for item in items:
        slot = (key(item), bucket_start(ts(item), resolution_s))
        acc = totals.get(slot)
        if acc is None:
            totals[slot] = [value(item), 1, item]
            continue
        acc[0] += value(item)
        acc[1] += 1
        if ts(item) >= ts(acc[2]):
            acc[2] = item

    buckets = [
        Bucket(key=slot[0], start=slot[1], value=total / count, count=count, last=last)
        for slot, (total, count, last) in totals.items()
    ]
    buckets.sort(key=lambda bucket: bucket.start)
    return buckets
