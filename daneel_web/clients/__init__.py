"""
Daneel Web — External Service Clients

Read-only connections to the stream store (Redis), the vector store
(Qdrant), and the embedding model used for anchors.
"""

from daneel_web.clients.embedding import (
    EmbeddingClient,
    LocalEmbeddingClient,
    MockEmbeddingClient,
    SidecarEmbeddingClient,
    create_embedding_client,
)
from daneel_web.clients.qdrant import VectorRecord, VectorStoreClient
from daneel_web.clients.redis import StreamEntry, StreamStoreClient

__all__ = [
    "EmbeddingClient",
    "LocalEmbeddingClient",
    "MockEmbeddingClient",
    "SidecarEmbeddingClient",
    "create_embedding_client",
    "VectorRecord",
    "VectorStoreClient",
    "StreamEntry",
    "StreamStoreClient",
]
