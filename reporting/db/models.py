"""
SQLAlchemy ORM models for the reporting sample store.

Defines the component registry, raw metric samples and component state
samples. Composite primary keys make ingestion idempotent: re-sending the
same sample is a no-op. Identifiers are unsigned 64-bit values kept in signed
BIGINT columns through UnsignedBigInteger.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Double, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

_UINT64_SPAN = 2**64
_INT64_MAX = 2**63 - 1


class UnsignedBigInteger(TypeDecorator):
    """Unsigned 64-bit integer stored in a signed BIGINT column.

    Values above the signed range are stored as their two's-complement
    negative, so every uint64 round-trips while ordinary IDs are stored
    unchanged.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value: int | None, dialect: object) -> int | None:
        if value is not None and value > _INT64_MAX:
            return value - _UINT64_SPAN
        return value

    def process_result_value(self, value: int | None, dialect: object) -> int | None:
        if value is not None and value < 0:
            return value + _UINT64_SPAN
        return value


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all reporting ORM models."""

    pass


class Component(Base):
    """A component registered in a microgrid.

    Attributes:
        microgrid_id: Identifier of the microgrid.
        component_id: Identifier of the component within the microgrid.
        registered_at: When the component was first seen.
    """

    __tablename__ = "components"

    microgrid_id: Mapped[int] = mapped_column(UnsignedBigInteger, primary_key=True)
    component_id: Mapped[int] = mapped_column(UnsignedBigInteger, primary_key=True)
    registered_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        """Return string representation of the Component."""
        return (
            f"Component(microgrid_id={self.microgrid_id!r}, "
            f"component_id={self.component_id!r})"
        )


class MetricSampleRecord(Base):
    """A raw metric value of one component connection.

    Stored in the metric_samples table (a TimescaleDB hypertable in
    production) keyed by (microgrid_id, component_id, metric, connection, ts).

    Attributes:
        microgrid_id: Identifier of the microgrid.
        component_id: Identifier of the component.
        metric: Metric number (see ``reporting.common.Metric``).
        connection: Sub-channel name; empty string for component-level values.
        ts: Sample timestamp in UTC.
        value: Measured value.
        lower_bound: Lower bound in effect, or None.
        upper_bound: Upper bound in effect, or None.
    """

    __tablename__ = "metric_samples"

    microgrid_id: Mapped[int] = mapped_column(UnsignedBigInteger, primary_key=True)
    component_id: Mapped[int] = mapped_column(UnsignedBigInteger, primary_key=True)
    metric: Mapped[int] = mapped_column(Integer, primary_key=True)
    connection: Mapped[str] = mapped_column(Text, primary_key=True, default="")
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True
    )
    value: Mapped[float] = mapped_column(Double, nullable=False)
    lower_bound: Mapped[float | None] = mapped_column(Double, nullable=True)
    upper_bound: Mapped[float | None] = mapped_column(Double, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of the MetricSampleRecord."""
        return (
            f"MetricSampleRecord(microgrid_id={self.microgrid_id!r}, "
            f"component_id={self.component_id!r}, metric={self.metric!r}, "
            f"connection={self.connection!r}, ts={self.ts!r}, value={self.value!r})"
        )


class ComponentStateRecord(Base):
    """Operational state, warnings and errors of a component.

    Attributes:
        microgrid_id: Identifier of the microgrid.
        component_id: Identifier of the component.
        ts: Timestamp at which the state was observed, in UTC.
        states: Active state codes.
        warnings: Active warning codes.
        errors: Active error codes.
    """

    __tablename__ = "component_states"

    microgrid_id: Mapped[int] = mapped_column(UnsignedBigInteger, primary_key=True)
    component_id: Mapped[int] = mapped_column(UnsignedBigInteger, primary_key=True)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True
    )
    states: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    warnings: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    errors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        """Return string representation of the ComponentStateRecord."""
        return (
            f"ComponentStateRecord(microgrid_id={self.microgrid_id!r}, "
            f"component_id={self.component_id!r}, ts={self.ts!r})"
        )
