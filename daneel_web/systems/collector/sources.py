"""
Daneel Web — Collector Sources

One reader per store. Each `read()` returns a complete reading for its
half of the Snapshot or raises SourceUnavailable; it never returns a
partial result.
"""

from __future__ import annotations

from typing import Any

import structlog

from daneel_web.clients.qdrant import VectorStoreClient
from daneel_web.clients.redis import StreamStoreClient
from daneel_web.config import CollectorConfig
from daneel_web.errors import MalformedSample
from daneel_web.primitives.common import utc_now
from daneel_web.primitives.snapshot import ThoughtSummary
from daneel_web.systems.collector.parsing import (
    emotional_primitives,
    parse_actors,
    parse_thought,
)
from daneel_web.systems.collector.types import StreamReading, VectorReading

logger = structlog.get_logger("daneel_web.systems.collector.sources")


class StreamSource:
    """Thought stream and actor liveness from the stream store."""

    name = "stream_store"

    def __init__(self, client: StreamStoreClient, config: CollectorConfig) -> None:
        self._client = client
        self._config = config

    async def read(self) -> StreamReading:
        session_thoughts = await self._client.stream_length()
        entries = await self._client.latest_entries(self._config.recent_thoughts_limit)
        raw_actors = await self._client.actor_statuses()

        now = utc_now()
        thoughts: list[ThoughtSummary] = []
        newest_salience: dict[str, Any] | None = None
        dropped: set[str] = set()
        for entry_id, fields in entries:
            try:
                summary, salience = parse_thought(
                    entry_id, fields, self._config.preview_chars, now
                )
            except MalformedSample as exc:
                dropped.add(entry_id)
                logger.debug("thought_dropped", entry_id=entry_id, reason=str(exc))
                continue
            if newest_salience is None:
                newest_salience = salience
            thoughts.append(summary)

        valence, arousal, dominance = emotional_primitives(newest_salience or {})
        actors, malformed_actors = parse_actors(raw_actors, self._config.known_actors)

        return StreamReading(
            session_thoughts=session_thoughts,
            thoughts=tuple(thoughts),
            valence=valence,
            arousal=arousal,
            dominance=dominance,
            actors=actors,
            dropped_ids=frozenset(dropped).union(f"actor:{name}" for name in malformed_actors),
        )


def _counter(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return 0
    return int(value)


class VectorSource:
    """Memory counts and the identity counters from the vector store."""

    name = "vector_store"

    def __init__(self, client: VectorStoreClient) -> None:
        self._client = client

    async def read(self) -> VectorReading:
        store = self._client.config
        conscious = await self._client.point_count(store.memories_collection)
        unconscious = await self._client.point_count(store.unconscious_collection)
        identity = await self._client.point_payload(
            store.identity_collection, store.identity_point_id
        )

        payload = identity or {}
        name = payload.get("name")
        return VectorReading(
            name=name if isinstance(name, str) and name else None,
            lifetime_thoughts=_counter(payload, "lifetime_thought_count"),
            restart_count=_counter(payload, "restart_count"),
            lifetime_dreams=_counter(payload, "lifetime_dream_count"),
            conscious_memories=conscious,
            unconscious_memories=unconscious,
        )
