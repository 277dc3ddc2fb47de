"""
Daneel Web — Stream Record Parsing

Pure functions that turn raw stream-store records into primitives, and
the derived emotional fields computed from those primitives.

Thought entries look like:
  content   JSON {"Symbol": {"id": "thought_123", "data": [...]}} or free text
  salience  JSON {"importance": 0.65, "novelty": 0.71, "valence": 0.03,
                  "arousal": 0.69, "dominance": 0.5, ...}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import orjson

from daneel_web.errors import MalformedSample
from daneel_web.primitives.common import clamp
from daneel_web.primitives.snapshot import ActorStatus, EmotionalMetrics, ThoughtSummary

DEFAULT_SALIENCE: float = 0.5
DEFAULT_VALENCE: float = 0.0
DEFAULT_AROUSAL: float = 0.5
DEFAULT_DOMINANCE: float = 0.5

# How far valence can pull connection drive off its baseline.
_CONNECTION_VALENCE_GAIN: float = 0.15


def _loads(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None


def _number(obj: Any, key: str, default: float) -> float:
    if not isinstance(obj, dict):
        return default
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def stream_id_timestamp(entry_id: str) -> datetime | None:
    """Redis stream ids are '<unix-ms>-<seq>'; recover the wall-clock part."""
    millis, _, _ = entry_id.partition("-")
    if not millis.isdigit():
        return None
    return datetime.fromtimestamp(int(millis) / 1000.0, tz=timezone.utc)


def content_preview(raw: str, limit: int) -> str:
    """The symbol id when content is a Symbol envelope, else the first `limit` chars."""
    parsed = _loads(raw)
    if isinstance(parsed, dict):
        symbol = parsed.get("Symbol")
        if isinstance(symbol, dict) and isinstance(symbol.get("id"), str):
            return symbol["id"]
    return raw[:limit]


def parse_salience(raw: str | None) -> dict[str, Any]:
    parsed = _loads(raw)
    return parsed if isinstance(parsed, dict) else {}


def parse_thought(
    entry_id: str,
    fields: dict[str, str],
    preview_chars: int,
    fallback_time: datetime,
) -> tuple[ThoughtSummary, dict[str, Any]]:
    """
    One stream entry → (ThoughtSummary, its salience object).

    Raises MalformedSample when the entry has no content.
    """
    content = fields.get("content")
    if content is None:
        raise MalformedSample(f"thought {entry_id} has no content field")

    salience = parse_salience(fields.get("salience"))
    summary = ThoughtSummary(
        id=entry_id,
        content_preview=content_preview(content, preview_chars),
        salience=clamp(_number(salience, "importance", DEFAULT_SALIENCE), 0.0, 1.0),
        timestamp=stream_id_timestamp(entry_id) or fallback_time,
    )
    return summary, salience


def emotional_primitives(salience: dict[str, Any]) -> tuple[float, float, float]:
    """(valence, arousal, dominance) from a thought's salience, clamped to range."""
    return (
        clamp(_number(salience, "valence", DEFAULT_VALENCE), -1.0, 1.0),
        clamp(_number(salience, "arousal", DEFAULT_AROUSAL), 0.0, 1.0),
        clamp(_number(salience, "dominance", DEFAULT_DOMINANCE), 0.0, 1.0),
    )


# ─── Derived Fields ───────────────────────────────────────────────


def emotional_intensity(valence: float, arousal: float) -> float:
    """|valence| × arousal."""
    return clamp(abs(valence) * arousal, 0.0, 1.0)


def connection_drive(valence: float, baseline: float) -> float:
    return clamp(baseline + _CONNECTION_VALENCE_GAIN * valence, 0.0, 1.0)


def derive_emotional(
    valence: float,
    arousal: float,
    dominance: float,
    baseline: float,
) -> EmotionalMetrics:
    return EmotionalMetrics(
        valence=round(valence, 4),
        arousal=round(arousal, 4),
        dominance=round(dominance, 4),
        connection_drive=round(connection_drive(valence, baseline), 4),
        emotional_intensity=round(emotional_intensity(valence, arousal), 4),
    )


# ─── Actors ───────────────────────────────────────────────────────


def parse_actors(
    raw: dict[str, str],
    known_actors: list[str],
) -> tuple[dict[str, ActorStatus], tuple[str, ...]]:
    """
    Actor hash → one status per known actor, plus the names whose entry was unreadable.

    Actors absent from the hash, or whose entry cannot be read, are not alive.
    """
    actors: dict[str, ActorStatus] = {}
    malformed: list[str] = []
    for name in known_actors:
        parsed = _loads(raw.get(name))
        if not isinstance(parsed, dict):
            if name in raw:
                malformed.append(name)
            actors[name] = ActorStatus(alive=False, restart_count=0)
            continue
        restarts = parsed.get("restart_count", 0)
        actors[name] = ActorStatus(
            alive=parsed.get("alive") is True,
            restart_count=restarts if isinstance(restarts, int) and restarts >= 0 else 0,
        )
    return actors, tuple(malformed)
