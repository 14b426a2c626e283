"""
Read access to the sample store.

Query helpers shared by both streams: raw metric samples and state samples
of selected components inside a half-open time window, plus the component
registry (cached in Redis) used to validate aggregation formulas.

Rows are returned as plain frozen dataclasses with UTC timestamps so that
the stream logic never touches ORM objects or session state.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reporting.cache.redis_client import cache_component_ids, get_cached_component_ids
from reporting.common import Metric, to_utc
from reporting.db.models import Component, ComponentStateRecord, MetricSampleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawMetricSample:
    """A stored metric sample.

    Attributes:
        component_id: Component that produced the sample.
        metric: Measured metric.
        connection: Sub-channel name, empty for component-level values.
        ts: UTC timestamp.
        value: Measured value.
        lower_bound: Lower bound in effect, if known.
        upper_bound: Upper bound in effect, if known.
    """

    component_id: int
    metric: Metric
    connection: str
    ts: datetime
    value: float
    lower_bound: float | None = None
    upper_bound: float | None = None


@dataclass(frozen=True)
class RawStateSample:
    """A stored component state sample."""

    component_id: int
    ts: datetime
    states: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


async def fetch_metric_samples(
    db: AsyncSession,
    microgrid_id: int,
    component_ids: Iterable[int],
    metrics: Iterable[Metric],
    start: datetime | None,
    end: datetime | None,
) -> list[RawMetricSample]:
    """Fetch metric samples of some components inside ``[start, end)``.

    Args:
        db: Async database session.
        microgrid_id: Microgrid the components belong to.
        component_ids: Components to fetch.
        metrics: Metrics to fetch.
        start: Inclusive lower bound, or None for the earliest sample.
        end: Exclusive upper bound, or None for no upper bound.

    Returns:
        list[RawMetricSample]: Samples ordered by timestamp, component,
            metric and connection.
    """
    stmt = select(MetricSampleRecord).where(
        MetricSampleRecord.microgrid_id == microgrid_id,
        MetricSampleRecord.component_id.in_(list(component_ids)),
        MetricSampleRecord.metric.in_([int(metric) for metric in metrics]),
    )
    if start is not None:
        stmt = stmt.where(MetricSampleRecord.ts >= start)
    if end is not None:
        stmt = stmt.where(MetricSampleRecord.ts < end)
    stmt = stmt.order_by(
        MetricSampleRecord.ts,
        MetricSampleRecord.component_id,
        MetricSampleRecord.metric,
        MetricSampleRecord.connection,
    )

    result = await db.execute(stmt)
    return [
        RawMetricSample(
            component_id=row.component_id,
            metric=Metric(row.metric),
            connection=row.connection,
            ts=to_utc(row.ts),
            value=row.value,
            lower_bound=row.lower_bound,
            upper_bound=row.upper_bound,
        )
        for row in result.scalars().all()
    ]


async def fetch_state_samples(
    db: AsyncSession,
    microgrid_id: int,
    component_ids: Iterable[int],
    start: datetime | None,
    end: datetime | None,
) -> list[RawStateSample]:
    """Fetch state samples of some components inside ``[start, end)``.

    Args:
        db: Async database session.
        microgrid_id: Microgrid the components belong to.
        component_ids: Components to fetch.
        start: Inclusive lower bound, or None for the earliest sample.
        end: Exclusive upper bound, or None for no upper bound.

    Returns:
        list[RawStateSample]: Samples ordered by timestamp and component.
    """
    stmt = select(ComponentStateRecord).where(
        ComponentStateRecord.microgrid_id == microgrid_id,
        ComponentStateRecord.component_id.in_(list(component_ids)),
    )
    if start is not None:
        stmt = stmt.where(ComponentStateRecord.ts >= start)
    if end is not None:
        stmt = stmt.where(ComponentStateRecord.ts < end)
    stmt = stmt.order_by(ComponentStateRecord.ts, ComponentStateRecord.component_id)

    result = await db.execute(stmt)
    return [
        RawStateSample(
            component_id=row.component_id,
            ts=to_utc(row.ts),
            states=tuple(row.states or ()),
            warnings=tuple(row.warnings or ()),
            errors=tuple(row.errors or ()),
        )
        for row in result.scalars().all()
    ]


async def fetch_registered_component_ids(
    db: AsyncSession,
    microgrid_id: int,
    cache_ttl_s: int,
) -> set[int]:
    """Return the IDs of all components registered in a microgrid.

    Served from the Redis cache when possible; on a miss the registry is
    read from the database and written back to the cache.

    Args:
        db: Async database session.
        microgrid_id: The microgrid to look up.
        cache_ttl_s: Expiry of the cache entry written on a miss.

    Returns:
        set[int]: Registered component IDs (empty for unknown microgrids).
    """
    cached = await get_cached_component_ids(microgrid_id)
    if cached is not None:
        return cached

    result = await db.execute(
        select(Component.component_id).where(Component.microgrid_id == microgrid_id)
    )
    component_ids = set(result.scalars().all())
    logger.debug(
        "Loaded %d registered component(s) for microgrid %s",
        len(component_ids),
        microgrid_id,
    )
    await cache_component_ids(microgrid_id, component_ids, cache_ttl_s)
    return component_ids


async def fetch_components_reporting(
    db: AsyncSession,
    microgrid_id: int,
    component_ids: Iterable[int],
    metric: Metric,
) -> set[int]:
    """Return which of the given components have ever reported a metric.

    Args:
        db: Async database session.
        microgrid_id: Microgrid the components belong to.
        component_ids: Components to check.
        metric: Metric to look for.

    Returns:
        set[int]: The subset of *component_ids* with at least one sample.
    """
    result = await db.execute(
        select(MetricSampleRecord.component_id)
        .where(
            MetricSampleRecord.microgrid_id == microgrid_id,
            MetricSampleRecord.component_id.in_(list(component_ids)),
            MetricSampleRecord.metric == int(metric),
        )
        .distinct()
    )
    return set(result.scalars().all())
