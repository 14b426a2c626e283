"""
Microgrid references.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from reporting.common._wire import UInt64


class MicrogridComponentIDs(BaseModel):
    """A microgrid together with a selection of its components."""

    microgrid_id: UInt64
    component_ids: list[UInt64] = Field(default_factory=list)
