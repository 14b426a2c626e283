"""
Field types shared by all wire messages.

Enumerations travel as member names and are accepted as names or numbers,
timestamps are always UTC, and unsigned integer fields are range-checked
so that out-of-range identifiers fail at parse time.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum
from typing import Annotated, Any, TypeVar

from pydantic import AfterValidator, BeforeValidator, Field, PlainSerializer

E = TypeVar("E", bound=IntEnum)

UInt32 = Annotated[int, Field(ge=0, le=2**32 - 1)]
UInt64 = Annotated[int, Field(ge=0, le=2**64 - 1)]


def to_utc(ts: datetime) -> datetime:
    """Return *ts* as an aware UTC datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(to_utc)]


def wire_enum(enum_type: type[E]) -> Any:
    """Build an annotated field type for an integer enumeration.

    The resulting type accepts a member, its number, its number as a
    string, or its name (case-insensitive), and serialises to the member
    name in JSON mode.

    Args:
        enum_type: The IntEnum subclass to wrap.

    Returns:
        An ``Annotated`` type usable as a pydantic field annotation.
    """

    def _parse(value: object) -> object:
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return int(text)
            try:
                return enum_type[text.upper()]
            except KeyError:
                return value
        return value

    return Annotated[
        enum_type,
        BeforeValidator(_parse),
        PlainSerializer(lambda member: member.name, return_type=str, when_used="json"),
    ]
