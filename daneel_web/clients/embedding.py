"""
Daneel Web — Embedding Client Abstraction

Used once per projection basis, to embed the anchor texts into the same
space as the memories the cognitive process stores.

Supports local sentence-transformers, an HTTP sidecar, and a
deterministic mock for tests and offline development.
"""

from __future__ import annotations

import asyncio
import hashlib
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx
import numpy as np
import structlog

from daneel_web.errors import ConfigurationError

if TYPE_CHECKING:
    from daneel_web.config import EmbeddingConfig

logger = structlog.get_logger("daneel_web.clients.embedding")


class EmbeddingClient(ABC):
    """Abstract interface for text embedding."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        ...


class LocalEmbeddingClient(EmbeddingClient):
    """
    Local embedding using sentence-transformers.
    Loaded in-process on first use.
    """

    def __init__(self, model_name: str, device: str = "cpu") -> None:
        self._model_name = model_name
        self._device = device
        self._model: Any = None

    def _load_model(self) -> None:
        """Lazy-load the model on first use."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as exc:
                raise ConfigurationError(
                    "embedding.strategy 'local' needs sentence-transformers; "
                    "install the 'local' extra (pip install 'daneel-web[local]') "
                    "or choose the 'sidecar' or 'mock' strategy"
                ) from exc

            self._model = SentenceTransformer(self._model_name, device=self._device)
            logger.info(
                "embedding_model_loaded",
                model=self._model_name,
                device=self._device,
                dimension=self._model.get_sentence_embedding_dimension(),
            )

    def _encode(self, texts: list[str]) -> list[list[float]]:
        self._load_model()
        embeddings = self._model.encode(texts, convert_to_numpy=True, batch_size=32)
        return embeddings.tolist()  # type: ignore[no-any-return]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        # Model load and encode are CPU-bound; keep them off the event loop.
        return await asyncio.to_thread(self._encode, texts)

    async def close(self) -> None:
        self._model = None


class SidecarEmbeddingClient(EmbeddingClient):
    """
    Embedding via HTTP sidecar service.
    For when the model lives in a separate process/container.
    """

    def __init__(self, url: str, client: httpx.AsyncClient | None = None) -> None:
        self._url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        response = await self._client.post(
            f"{self._url}/embed_batch",
            json={"texts": texts},
        )
        response.raise_for_status()
        return response.json()["embeddings"]  # type: ignore[no-any-return]

    async def close(self) -> None:
        await self._client.aclose()


class MockEmbeddingClient(EmbeddingClient):
    """
    Mock embedding client for testing and development.

    Returns normalised vectors seeded from the text itself, so the same
    text always lands on the same vector across restarts.
    """

    def __init__(self, dimension: int = 384) -> None:
        self._dimension = dimension

    def _vector(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(self._dimension).astype(np.float32)
        vec = vec / np.linalg.norm(vec)
        return vec.tolist()  # type: ignore[no-any-return]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(text) for text in texts]

    async def close(self) -> None:
        pass


def create_embedding_client(config: EmbeddingConfig) -> EmbeddingClient:
    """Factory to create the configured embedding client."""
    if config.strategy == "local":
        return LocalEmbeddingClient(
            model_name=config.local_model,
            device=config.local_device,
        )
    elif config.strategy == "sidecar":
        if not config.sidecar_url:
            raise ConfigurationError("Sidecar strategy requires sidecar_url in config")
        return SidecarEmbeddingClient(url=config.sidecar_url)
    elif config.strategy == "mock":
        return MockEmbeddingClient(dimension=config.dimension)
    else:
        raise ConfigurationError(f"Unknown embedding strategy: {config.strategy}")
