"""
Daneel Web — Collector Type Definitions

Per-source readings and the staleness record the collector keeps for
each source between ticks.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from daneel_web.primitives.common import utc_now
from daneel_web.primitives.snapshot import ActorStatus, ThoughtSummary
from daneel_web.systems.collector.parsing import (
    DEFAULT_AROUSAL,
    DEFAULT_DOMINANCE,
    DEFAULT_VALENCE,
)


@dataclass(frozen=True)
class StreamReading:
    """Everything one tick reads from the stream store."""

    session_thoughts: int = 0
    thoughts: tuple[ThoughtSummary, ...] = ()
    valence: float = DEFAULT_VALENCE
    arousal: float = DEFAULT_AROUSAL
    dominance: float = DEFAULT_DOMINANCE
    actors: Mapping[str, ActorStatus] = field(default_factory=dict)
    # Ids of entries (and "actor:<name>" keys) that could not be read
    dropped_ids: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "actors", MappingProxyType(dict(self.actors)))


@dataclass(frozen=True)
class VectorReading:
    """Everything one tick reads from the vector store."""

    name: str | None = None
    lifetime_thoughts: int = 0
    restart_count: int = 0
    lifetime_dreams: int = 0
    conscious_memories: int = 0
    unconscious_memories: int = 0


@dataclass
class SourceHealth:
    """
    Staleness tracking for one source.

    `stale` flips on the first failed read and back on the first success;
    the last good reading keeps being used in between.
    """

    source: str
    stale: bool = True
    consecutive_failures: int = 0
    total_failures: int = 0
    total_reads: int = 0
    last_success_time: datetime | None = None
    last_error: str | None = None

    def record_success(self) -> None:
        self.stale = False
        self.consecutive_failures = 0
        self.total_reads += 1
        self.last_success_time = utc_now()
        self.last_error = None

    def record_failure(self, reason: str) -> None:
        self.stale = True
        self.consecutive_failures += 1
        self.total_failures += 1
        self.total_reads += 1
        self.last_error = reason

    def to_dict(self) -> dict[str, object]:
        return {
            "stale": self.stale,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "last_success_time": (
                self.last_success_time.isoformat() if self.last_success_time else None
            ),
            "last_error": self.last_error,
        }
