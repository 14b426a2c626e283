"""
Initial schema: component registry, metric samples and component states.

Creates the three reporting tables with their composite primary keys and,
on PostgreSQL with TimescaleDB available, converts the two sample tables
into hypertables partitioned on ts with a 7-day chunk interval.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

CHANGELOG:
- 2026-10-19: Initial creation
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_HYPERTABLES = ("metric_samples", "component_states")


def upgrade() -> None:
    """Create reporting tables and, on PostgreSQL, their hypertables."""
    op.create_table(
        "components",
        sa.Column("microgrid_id", sa.BigInteger(), nullable=False),
        sa.Column("component_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "registered_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("microgrid_id", "component_id"),
    )

    op.create_table(
        "metric_samples",
        sa.Column("microgrid_id", sa.BigInteger(), nullable=False),
        sa.Column("component_id", sa.BigInteger(), nullable=False),
        sa.Column("metric", sa.Integer(), nullable=False),
        sa.Column("connection", sa.Text(), nullable=False, server_default=""),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("value", sa.Double(), nullable=False),
        sa.Column("lower_bound", sa.Double(), nullable=True),
        sa.Column("upper_bound", sa.Double(), nullable=True),
        sa.PrimaryKeyConstraint(
            "microgrid_id", "component_id", "metric", "connection", "ts"
        ),
    )

    op.create_table(
        "component_states",
        sa.Column("microgrid_id", sa.BigInteger(), nullable=False),
        sa.Column("component_id", sa.BigInteger(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("states", sa.JSON(), nullable=False),
        sa.Column("warnings", sa.JSON(), nullable=False),
        sa.Column("errors", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("microgrid_id", "component_id", "ts"),
    )

    if op.get_bind().dialect.name != "postgresql":
        return

    op.execute("CREATE EXTENSION IF NOT EXISTS timescaledb")
    for table in _HYPERTABLES:
        op.execute(
            "SELECT create_hypertable("
            f"'{table}', 'ts', "
            "chunk_time_interval => INTERVAL '7 days', "
            "if_not_exists => TRUE"
            ")"
        )


def downgrade() -> None:
    """Drop reporting tables.

    Note: Does not drop the timescaledb extension as other tables may use it.
    """
    op.drop_table("component_states")
    op.drop_table("metric_samples")
    op.drop_table("components")
