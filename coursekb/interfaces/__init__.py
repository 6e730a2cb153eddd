"""Public interface definitions for all external service providers.

Every external service in the coursekb pipeline is accessed through the
abstract base classes defined in this package.  Concrete adapters live in
``coursekb/providers/`` and are injected at construction time (see
``coursekb/main.py``), so services can be tested with fakes and backends
swapped without touching business logic.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in coursekb/providers/)
    ─────────────────────────────────────────────────────────────────────
    IVectorStoreClient     →  QdrantVectorStore, MemoryVectorStore
    IEmbeddingProvider     →  JinaEmbeddingProvider, OpenAIEmbeddingProvider
    ISparseEncoder         →  FastEmbedSparseEncoder
    IRerankProvider        →  JinaRerankProvider
"""

from coursekb.interfaces.embedding_provider import EmbeddingTask, IEmbeddingProvider
from coursekb.interfaces.rerank_provider import IRerankProvider
from coursekb.interfaces.sparse_encoder import ISparseEncoder
from coursekb.interfaces.vector_store_client import IVectorStoreClient

__all__ = [
    "EmbeddingTask",
    "IEmbeddingProvider",
    "IRerankProvider",
    "ISparseEncoder",
    "IVectorStoreClient",
]
