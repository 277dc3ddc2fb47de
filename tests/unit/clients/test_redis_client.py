"""
Tests for the read-only stream store client against a mocked redis.asyncio.Redis.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from daneel_web.clients.redis import StreamStoreClient
from daneel_web.config import StreamStoreConfig
from daneel_web.errors import SourceUnavailable


def _make_redis() -> MagicMock:
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.xlen = AsyncMock(return_value=3)
    redis.xrevrange = AsyncMock(
        return_value=[
            ("3-0", {"content": "c"}),
            ("2-0", {"content": "b"}),
        ]
    )
    redis.hgetall = AsyncMock(return_value={"MemoryActor": '{"alive": true}'})
    redis.aclose = AsyncMock()
    return redis


def _make_client(redis: MagicMock | None = None, **config) -> tuple[StreamStoreClient, MagicMock]:
    redis = redis or _make_redis()
    return StreamStoreClient(StreamStoreConfig(**config), client=redis), redis


class TestReads:
    @pytest.mark.asyncio
    async def test_stream_length_uses_prefixed_key(self):
        client, redis = _make_client(prefix="timmy")
        assert await client.stream_length() == 3
        redis.xlen.assert_awaited_once_with("timmy:stream:awake")

    @pytest.mark.asyncio
    async def test_latest_entries_newest_first(self):
        client, redis = _make_client()
        entries = await client.latest_entries(20)

        assert [entry_id for entry_id, _ in entries] == ["3-0", "2-0"]
        redis.xrevrange.assert_awaited_once_with(
            "daneel:stream:awake", max="+", min="-", count=20
        )

    @pytest.mark.asyncio
    async def test_actor_statuses(self):
        client, redis = _make_client()
        assert await client.actor_statuses() == {"MemoryActor": '{"alive": true}'}
        redis.hgetall.assert_awaited_once_with("daneel:actors")

    @pytest.mark.asyncio
    async def test_redis_errors_become_source_unavailable(self):
        redis = _make_redis()
        redis.xlen = AsyncMock(side_effect=RedisConnectionError("refused"))
        client, _ = _make_client(redis)

        with pytest.raises(SourceUnavailable) as exc_info:
            await client.stream_length()

        assert exc_info.value.source == "stream_store"
        assert "refused" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_timeouts_become_source_unavailable(self):
        redis = _make_redis()
        redis.xrevrange = AsyncMock(side_effect=RedisTimeoutError("slow"))
        client, _ = _make_client(redis)

        with pytest.raises(SourceUnavailable):
            await client.latest_entries(20)

    @pytest.mark.asyncio
    async def test_not_connected(self):
        client = StreamStoreClient(StreamStoreConfig())
        with pytest.raises(RuntimeError):
            await client.stream_length()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_connect_tolerates_unreachable_store(self):
        redis = _make_redis()
        redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        client, _ = _make_client(redis)

        await client.connect()

        assert client.client is redis

    @pytest.mark.asyncio
    async def test_health_check(self):
        client, redis = _make_client()
        assert await client.health_check() == {"status": "connected"}

        redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        health = await client.health_check()
        assert health["status"] == "disconnected"

    @pytest.mark.asyncio
    async def test_close(self):
        client, redis = _make_client()
        await client.close()
        redis.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = client.client
