"""Embedding provider implementations.

Embeddings convert chunk text into dense vectors stored under the
``"default"`` named vector and used for semantic similarity search.

Two implementations of IEmbeddingProvider:
    1. JinaEmbeddingProvider   -- jina-embeddings-v4 over HTTP (1024 dims).
       Default; separate passage/query task adapters.
    2. OpenAIEmbeddingProvider -- text-embedding-3-small or any
       OpenAI-compatible endpoint (TogetherAI, Ollama).
"""

from coursekb.providers.embedding.jina_embedding_provider import JinaEmbeddingProvider
from coursekb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["JinaEmbeddingProvider", "OpenAIEmbeddingProvider"]
