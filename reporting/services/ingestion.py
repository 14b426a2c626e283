"""
Ingestion service for batch-inserting component samples.

Registers components on first sight and inserts metric and state samples
idempotently via ON CONFLICT ... DO NOTHING, returning the counts of rows
actually inserted. Invalidates the microgrid's component registry cache
when new components were registered.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
from dataclasses import dataclass

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from reporting.cache.redis_client import invalidate_microgrid_cache
from reporting.db.models import Component, ComponentStateRecord, MetricSampleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Row counts of one ingest batch.

    Attributes:
        registered_components: Components seen for the first time.
        inserted_metric_samples: Metric samples inserted (duplicates excluded).
        inserted_state_samples: State samples inserted (duplicates excluded).
    """

    registered_components: int
    inserted_metric_samples: int
    inserted_state_samples: int


async def ingest_samples(
    db: AsyncSession,
    microgrid_id: int,
    metric_samples: list[dict],
    state_samples: list[dict],
) -> IngestResult:
    """Insert a batch of samples of one microgrid.

    Every component referenced by a sample is registered first. Samples
    already stored (same key) are silently skipped.

    Args:
        db: Async SQLAlchemy session.
        microgrid_id: Microgrid all samples belong to.
        metric_samples: Rows for the metric_samples table.
        state_samples: Rows for the component_states table.

    Returns:
        IngestResult: Counts of actually inserted rows.
    """
    component_ids = sorted(
        {row["component_id"] for row in metric_samples}
        | {row["component_id"] for row in state_samples}
    )
    if not component_ids:
        return IngestResult(0, 0, 0)

    registered = await _insert_ignoring_duplicates(
        db,
        Component,
        [
            {"microgrid_id": microgrid_id, "component_id": component_id}
            for component_id in component_ids
        ],
        ["microgrid_id", "component_id"],
    )
    inserted_metrics = await _insert_ignoring_duplicates(
        db,
        MetricSampleRecord,
        metric_samples,
        ["microgrid_id", "component_id", "metric", "connection", "ts"],
    )
    inserted_states = await _insert_ignoring_duplicates(
        db,
        ComponentStateRecord,
        state_samples,
        ["microgrid_id", "component_id", "ts"],
    )
    await db.commit()

    logger.info(
        "Ingested %d/%d metric and %d/%d state samples for microgrid %s "
        "(%d new component(s))",
        inserted_metrics,
        len(metric_samples),
        inserted_states,
        len(state_samples),
        microgrid_id,
        registered,
    )

    if registered > 0:
        await invalidate_microgrid_cache(microgrid_id)

    return IngestResult(
        registered_components=registered,
        inserted_metric_samples=inserted_metrics,
        inserted_state_samples=inserted_states,
    )


async def _insert_ignoring_duplicates(
    db: AsyncSession,
    model: type,
    rows: list[dict],
    index_elements: list[str],
) -> int:
    """Insert rows with ON CONFLICT DO NOTHING and return the inserted count."""
    if not rows:
        return 0
    stmt = pg_insert(model).values(rows).on_conflict_do_nothing(
        index_elements=index_elements
    )
    result = await db.execute(stmt)
    return result.rowcount
