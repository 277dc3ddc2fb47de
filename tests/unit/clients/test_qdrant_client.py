"""
Tests for the read-only vector store client against a mocked AsyncQdrantClient.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from daneel_web.clients.qdrant import VectorStoreClient, _dense_vector
from daneel_web.config import VectorStoreConfig
from daneel_web.errors import SourceUnavailable


def _make_qdrant() -> MagicMock:
    qdrant = MagicMock()
    qdrant.count = AsyncMock(return_value=SimpleNamespace(count=42))
    qdrant.retrieve = AsyncMock(
        return_value=[SimpleNamespace(payload={"lifetime_thought_count": 9})]
    )
    qdrant.scroll = AsyncMock(
        return_value=(
            [
                SimpleNamespace(id="p1", vector=[0.1, 0.2, 0.3], payload={"semantic_salience": 0.7}),
                SimpleNamespace(id=7, vector={"dense": [1, 2, 3]}, payload=None),
            ],
            None,
        )
    )
    qdrant.get_collections = AsyncMock(return_value=SimpleNamespace(collections=[]))
    qdrant.close = AsyncMock()
    return qdrant


def _make_client(qdrant: MagicMock | None = None) -> tuple[VectorStoreClient, MagicMock]:
    qdrant = qdrant or _make_qdrant()
    return VectorStoreClient(VectorStoreConfig(), client=qdrant), qdrant


class TestReads:
    @pytest.mark.asyncio
    async def test_point_count(self):
        client, qdrant = _make_client()
        assert await client.point_count("memories") == 42
        qdrant.count.assert_awaited_once_with(collection_name="memories", exact=True)

    @pytest.mark.asyncio
    async def test_point_payload(self):
        client, qdrant = _make_client()
        payload = await client.point_payload("identity", "00000000-0000-0000-0000-000000000001")

        assert payload == {"lifetime_thought_count": 9}
        qdrant.retrieve.assert_awaited_once()
        assert qdrant.retrieve.await_args.kwargs["with_vectors"] is False

    @pytest.mark.asyncio
    async def test_missing_point_is_none(self):
        qdrant = _make_qdrant()
        qdrant.retrieve = AsyncMock(return_value=[])
        client, _ = _make_client(qdrant)
        assert await client.point_payload("identity", "x") is None

    @pytest.mark.asyncio
    async def test_sample_returns_records(self):
        client, qdrant = _make_client()
        records = await client.sample("memories", 500)

        assert [r.id for r in records] == ["p1", "7"]
        assert records[0].vector == [0.1, 0.2, 0.3]
        assert records[0].payload == {"semantic_salience": 0.7}
        assert records[1].vector == [1.0, 2.0, 3.0]
        assert records[1].payload == {}
        assert qdrant.scroll.await_args.kwargs["limit"] == 500
        assert qdrant.scroll.await_args.kwargs["with_vectors"] is True

    @pytest.mark.asyncio
    async def test_any_failure_is_source_unavailable(self):
        qdrant = _make_qdrant()
        qdrant.count = AsyncMock(side_effect=ConnectionRefusedError())
        client, _ = _make_client(qdrant)

        with pytest.raises(SourceUnavailable) as exc_info:
            await client.point_count("memories")

        assert exc_info.value.source == "vector_store"
        assert exc_info.value.reason == "ConnectionRefusedError"

    @pytest.mark.asyncio
    async def test_health_check(self):
        client, qdrant = _make_client()
        assert await client.health_check() == {"status": "connected"}
        qdrant.get_collections = AsyncMock(side_effect=OSError("down"))
        assert (await client.health_check())["status"] == "disconnected"


class TestDenseVector:
    def test_plain_list(self):
        assert _dense_vector([1, 2]) == [1.0, 2.0]

    def test_named_vectors_take_first_dense(self):
        assert _dense_vector({"sparse": {"indices": [1]}, "dense": [0.5]}) == [0.5]

    def test_nothing_usable(self):
        assert _dense_vector(None) is None
        assert _dense_vector({"sparse": {"indices": [1]}}) is None
