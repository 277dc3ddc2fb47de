"""
Daneel Web — Vector Store Client

Read-only async Qdrant access: point counts, the identity point, and
sampled memory embeddings for projection.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from qdrant_client import AsyncQdrantClient

from daneel_web.config import VectorStoreConfig
from daneel_web.errors import SourceUnavailable

logger = structlog.get_logger("daneel_web.clients.qdrant")

T = TypeVar("T")


@dataclass(frozen=True)
class VectorRecord:
    """One sampled memory: its id, dense embedding (if any), and payload."""

    id: str
    vector: list[float] | None
    payload: dict[str, Any] = field(default_factory=dict)


def _dense_vector(raw: Any) -> list[float] | None:
    """
    Pull a dense float vector out of whatever Qdrant returned.

    Collections with named vectors come back as a dict; the first dense
    entry is used. Sparse vectors are ignored.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        for value in raw.values():
            if isinstance(value, list):
                return [float(x) for x in value]
        return None
    if isinstance(raw, list):
        return [float(x) for x in raw]
    return None


class VectorStoreClient:
    """
    Thin wrapper over AsyncQdrantClient.

    Any client-side failure (HTTP, gRPC, timeout, missing collection)
    surfaces as SourceUnavailable.
    """

    source: str = "vector_store"

    def __init__(
        self,
        config: VectorStoreConfig,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        self._config = config
        self._client: AsyncQdrantClient | None = client

    async def connect(self) -> None:
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self._config.url,
                api_key=self._config.api_key or None,
                prefer_grpc=self._config.prefer_grpc,
                timeout=max(1, self._config.timeout_ms // 1000),
            )
        logger.info("vector_store_configured", url=self._config.url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("vector_store_disconnected")

    @property
    def client(self) -> AsyncQdrantClient:
        if self._client is None:
            raise RuntimeError("Vector store client not connected. Call connect() first.")
        return self._client

    @property
    def config(self) -> VectorStoreConfig:
        return self._config

    async def _read(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except Exception as exc:
            raise SourceUnavailable(self.source, str(exc) or type(exc).__name__) from exc

    # ─── Reads ────────────────────────────────────────────────────

    async def point_count(self, collection: str) -> int:
        """Exact number of points in a collection."""
        result = await self._read(self.client.count(collection_name=collection, exact=True))
        return int(result.count)

    async def point_payload(self, collection: str, point_id: str) -> dict[str, Any] | None:
        """Payload of a single point, or None when the point does not exist."""
        records = await self._read(
            self.client.retrieve(
                collection_name=collection,
                ids=[point_id],
                with_payload=True,
                with_vectors=False,
            )
        )
        if not records:
            return None
        return dict(records[0].payload or {})

    async def sample(self, collection: str, limit: int) -> list[VectorRecord]:
        """Up to `limit` points with their vectors and payloads."""
        records, _next_offset = await self._read(
            self.client.scroll(
                collection_name=collection,
                limit=limit,
                with_payload=True,
                with_vectors=True,
            )
        )
        return [
            VectorRecord(
                id=str(record.id),
                vector=_dense_vector(record.vector),
                payload=dict(record.payload or {}),
            )
            for record in records
        ]

    # ─── Health ───────────────────────────────────────────────────

    async def health_check(self) -> dict[str, Any]:
        try:
            await self.client.get_collections()
            return {"status": "connected"}
        except Exception as e:
            return {"status": "disconnected", "error": str(e)}
