"""Vector store provider implementations.

Qdrant is the production store: named dense + sparse vectors per point,
payload indexes for filtering and server-side fused hybrid queries.  The
in-memory store reproduces the same semantics with numpy and is the default
when no store is injected.

To add another backend (pgvector, Weaviate), implement
:class:`IVectorStoreClient` and register it in ``coursekb/main.py``.
"""

from coursekb.providers.vector_store.memory_store import MemoryVectorStore
from coursekb.providers.vector_store.qdrant_store import QdrantVectorStore

__all__ = ["MemoryVectorStore", "QdrantVectorStore"]
