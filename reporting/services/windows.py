"""
Time windows of streaming requests.

Turns a request's optional time filter and resampling options into the
sequence of passes a stream runs over the store. Each pass covers the
half-open window ``[cursor, upper)`` and the next pass starts where the
previous one ended, so no sample is fetched twice. When the window has no
end the stream follows live data by polling every ``poll_interval_s``.

A client that lost its stream can resume without loss by re-issuing the
request with ``start`` set to the last timestamp it received.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from reporting.errors import InvalidRequestError
from reporting.models import ResamplingOptions, TimeFilter
from reporting.services.resampling import align_window, bucket_start

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class StreamWindow:
    """Effective window of a stream.

    Attributes:
        start: Inclusive start, or None for the earliest available data.
        end: Exclusive end, or None to follow live data indefinitely.
    """

    start: datetime | None
    end: datetime | None


def validate_time_filter(time_filter: TimeFilter | None) -> None:
    """Reject time filters whose start is not before their end.

    Raises:
        InvalidRequestError: If both bounds are set and ``start >= end``.
    """
    if time_filter is None or time_filter.start is None or time_filter.end is None:
        return
    if time_filter.start >= time_filter.end:
        raise InvalidRequestError(
            f"time_filter.start ({time_filter.start.isoformat()}) must be before "
            f"time_filter.end ({time_filter.end.isoformat()})"
        )


def validate_resolution(options: ResamplingOptions | None) -> int | None:
    """Return the requested resolution in seconds, or None for native data.

    Raises:
        InvalidRequestError: If a resolution of zero is given.
    """
    if options is None or options.resolution is None:
        return None
    if options.resolution == 0:
        raise InvalidRequestError("resampling_options.resolution must be > 0")
    return options.resolution


def resolve_window(
    time_filter: TimeFilter | None, received_at: datetime
) -> StreamWindow:
    """Return the effective window of a request.

    Without a time filter the stream starts at the time the request was
    received and follows live data.

    Args:
        time_filter: The request's time filter, if any.
        received_at: When the request was received.

    Returns:
        StreamWindow: The effective window.
    """
    if time_filter is None:
        return StreamWindow(start=received_at, end=None)
    return StreamWindow(start=time_filter.start, end=time_filter.end)


async def iter_passes(
    window: StreamWindow,
    resolution_s: int | None,
    *,
    clock: Clock,
    poll_interval_s: float,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[tuple[datetime | None, datetime]]:
    """Yield the consecutive sub-windows a stream must fetch.

    The first pass covers everything from the window start up to now; later
    passes cover what arrived since the previous pass. With resampling the
    window is aligned to whole buckets and each pass stops at the last
    complete bucket, so a bucket is only emitted once all its samples can
    have arrived.

    Args:
        window: Effective window of the stream.
        resolution_s: Bucket width, or None for native resolution.
        clock: Returns the current UTC time.
        poll_interval_s: Delay between passes while waiting for data.
        sleep: Awaitable sleep, replaceable in tests.

    Yields:
        tuple: ``(lower, upper)`` bounds of each pass; ``lower`` is None
            only for the first pass of a window without start.
    """
    start, end = window.start, window.end
    if resolution_s is not None:
        start, end = align_window(start, end, resolution_s)
    if start is not None and end is not None and start >= end:
        logger.debug("Window [%s, %s) holds no complete bucket", start, end)
        return

    cursor = start
    while True:
        upper = clock()
        if resolution_s is not None:
            upper = bucket_start(upper, resolution_s)
        if end is not None:
            upper = min(upper, end)

        if cursor is None or upper > cursor:
            yield cursor, upper
            cursor = upper

        if end is not None and cursor is not None and cursor >= end:
            return
        await sleep(poll_interval_s)
