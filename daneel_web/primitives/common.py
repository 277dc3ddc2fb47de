"""
Daneel Web — Common Primitives

Shared base classes and utilities used across all systems.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# ─── Base Models ──────────────────────────────────────────────────


class DaneelBaseModel(BaseModel):
    """
    Base model for all observed values.

    Frozen: a value handed to a reader can never be changed underneath it.
    New state is always a new object.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )
