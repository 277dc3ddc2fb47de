"""
Daneel Web — Stream Store Client

Read-only async Redis access to the thought stream and the actor
liveness hash. No writes, ever.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any, TypeVar

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from daneel_web.config import StreamStoreConfig
from daneel_web.errors import SourceUnavailable

logger = structlog.get_logger("daneel_web.clients.redis")

T = TypeVar("T")

StreamEntry = tuple[str, dict[str, str]]


class StreamStoreClient:
    """
    Async Redis client with key prefixing for multi-instance support.

    Every read failure surfaces as SourceUnavailable so callers only ever
    handle one error type per store.
    """

    source: str = "stream_store"

    def __init__(self, config: StreamStoreConfig, client: Redis | None = None) -> None:
        self._config = config
        self._client: Redis | None = client

    async def connect(self) -> None:
        """
        Create the connection pool and probe it once.

        An unreachable store is not fatal: the collector degrades per tick.
        """
        if self._client is None:
            timeout_s = self._config.timeout_ms / 1000.0
            self._client = Redis.from_url(
                self._config.full_url,
                decode_responses=True,
                socket_timeout=timeout_s,
                socket_connect_timeout=timeout_s,
            )
        try:
            await self._client.ping()
            logger.info("stream_store_connected", prefix=self._config.prefix)
        except (RedisError, OSError) as exc:
            logger.warning("stream_store_unreachable_at_startup", error=str(exc))

    async def close(self) -> None:
        """Close the connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("stream_store_disconnected")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Stream store client not connected. Call connect() first.")
        return self._client

    def _key(self, key: str) -> str:
        """Prefix a key with the instance prefix."""
        return f"{self._config.prefix}:{key}"

    async def _read(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except (RedisError, OSError) as exc:
            raise SourceUnavailable(self.source, str(exc)) from exc

    # ─── Thought Stream ───────────────────────────────────────────

    async def stream_length(self) -> int:
        """Number of entries in the awake stream (XLEN)."""
        return int(await self._read(self.client.xlen(self._key(self._config.awake_stream))))

    async def latest_entries(self, count: int) -> list[StreamEntry]:
        """Newest `count` stream entries, newest first (XREVRANGE + - COUNT n)."""
        entries = await self._read(
            self.client.xrevrange(
                self._key(self._config.awake_stream),
                max="+",
                min="-",
                count=count,
            )
        )
        return [(str(entry_id), dict(fields)) for entry_id, fields in entries]

    # ─── Actor Liveness ───────────────────────────────────────────

    async def actor_statuses(self) -> dict[str, str]:
        """Raw actor hash: field = actor name, value = JSON status."""
        raw: dict[str, Any] = await self._read(
            self.client.hgetall(self._key(self._config.actors_key))
        )
        return {str(k): str(v) for k, v in raw.items()}

    # ─── Health ───────────────────────────────────────────────────

    async def health_check(self) -> dict[str, Any]:
        """Check connectivity."""
        try:
            await self.client.ping()
            return {"status": "connected"}
        except (RedisError, OSError, RuntimeError) as e:
            return {"status": "disconnected", "error": str(e)}
