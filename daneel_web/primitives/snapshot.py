"""
Daneel Web — Snapshot Primitive

One immutable, fully-formed point-in-time state of the observed mind.
A new tick produces a wholly new Snapshot; nothing is patched in place.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType

import orjson
from pydantic import Field, field_serializer, field_validator

from daneel_web.primitives.common import DaneelBaseModel, utc_now

# Actors the cognitive process is known to run. Anything not reported
# by the stream store is shown as not alive.
DEFAULT_ACTORS: tuple[str, ...] = (
    "MemoryActor",
    "AttentionActor",
    "SalienceActor",
    "VolitionActor",
)

RECENT_THOUGHTS_LIMIT: int = 20


class IdentityMetrics(DaneelBaseModel):
    name: str = "Timmy"
    uptime_seconds: int = Field(0, ge=0)
    lifetime_thoughts: int = Field(0, ge=0)
    session_thoughts: int = Field(0, ge=0)
    restart_count: int = Field(0, ge=0)


class CognitiveMetrics(DaneelBaseModel):
    conscious_memories: int = Field(0, ge=0)
    unconscious_memories: int = Field(0, ge=0)
    lifetime_dreams: int = Field(0, ge=0)
    current_cycle: int = Field(0, ge=0)


class EmotionalMetrics(DaneelBaseModel):
    """
    Emotional state read off the newest thought.

    valence/arousal/dominance are primitives; connection_drive and
    emotional_intensity are derived from them (see collector.parsing).
    """

    valence: float = Field(0.0, ge=-1.0, le=1.0)
    arousal: float = Field(0.5, ge=0.0, le=1.0)
    dominance: float = Field(0.5, ge=0.0, le=1.0)
    connection_drive: float = Field(0.85, ge=0.0, le=1.0)
    emotional_intensity: float = Field(0.0, ge=0.0, le=1.0)


class ActorStatus(DaneelBaseModel):
    alive: bool = False
    restart_count: int = Field(0, ge=0)


class ThoughtSummary(DaneelBaseModel):
    id: str
    content_preview: str = ""
    salience: float = Field(0.5, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utc_now)


class Snapshot(DaneelBaseModel):
    """The whole observable state, as of `timestamp`."""

    timestamp: datetime = Field(default_factory=utc_now)
    identity: IdentityMetrics = Field(default_factory=IdentityMetrics)
    cognitive: CognitiveMetrics = Field(default_factory=CognitiveMetrics)
    emotional: EmotionalMetrics = Field(default_factory=EmotionalMetrics)
    actors: Mapping[str, ActorStatus] = Field(default_factory=dict, validate_default=True)
    recent_thoughts: tuple[ThoughtSummary, ...] = Field(
        default=(),
        max_length=RECENT_THOUGHTS_LIMIT,
    )

    @field_validator("actors", mode="after")
    @classmethod
    def _freeze_actors(cls, value: Mapping[str, ActorStatus]) -> Mapping[str, ActorStatus]:
        # Copied, so the caller's dict is not aliased either
        return MappingProxyType(dict(value))

    @field_serializer("actors")
    def _dump_actors(self, value: Mapping[str, ActorStatus]) -> dict[str, ActorStatus]:
        return dict(value)


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Serialize a Snapshot to its wire JSON. Called once per published snapshot."""
    return orjson.dumps(snapshot.model_dump(mode="json"))
