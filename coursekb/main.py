"""coursekb composition root.

Wires together providers and services via dependency injection.  Nothing is
constructed at import time: callers (the CLI, a worker, a test) build one
component graph with :func:`build_components`, use it, and release it with
:func:`close_components`.

Provider selection:
    vector store  -- ``VECTOR_STORE_BACKEND``: qdrant (default) or memory
    embeddings    -- ``EMBEDDING_PROVIDER``: jina (default) or openai
    sparse        -- fastembed BM25 when ``ENABLE_SPARSE_VECTORS`` is true
    rerank        -- Jina reranker when ``ENABLE_RERANKING`` and a Jina key
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from coursekb.config.settings import Settings
from coursekb.interfaces.embedding_provider import IEmbeddingProvider
from coursekb.interfaces.rerank_provider import IRerankProvider
from coursekb.interfaces.sparse_encoder import ISparseEncoder
from coursekb.interfaces.vector_store_client import IVectorStoreClient
from coursekb.providers.embedding.jina_embedding_provider import JinaEmbeddingProvider
from coursekb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from coursekb.providers.rerank.jina_rerank_provider import JinaRerankProvider
from coursekb.providers.sparse.fastembed_sparse_encoder import FastEmbedSparseEncoder
from coursekb.providers.vector_store.memory_store import MemoryVectorStore
from coursekb.providers.vector_store.qdrant_store import QdrantVectorStore
from coursekb.services.ingestion.document_pipeline import DocumentPipeline
from coursekb.services.retrieval.hybrid_retriever import HybridRetriever
from coursekb.services.vector.vector_ingestion_service import VectorIngestionService

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_vector_store(app_settings: Settings) -> IVectorStoreClient:
    """Return the configured vector store backend."""
    if app_settings.vector_store_backend == "memory":
        return MemoryVectorStore()
    return QdrantVectorStore(
        url=app_settings.qdrant_url,
        api_key=app_settings.qdrant_api_key,
        timeout=app_settings.qdrant_timeout,
    )


def _build_embedding_provider(
    app_settings: Settings,
    http_client: httpx.AsyncClient,
) -> IEmbeddingProvider | None:
    """Select the configured embedding provider, falling back to any with credentials.

    Returns ``None`` when no provider has an API key.
    """
    candidates: dict[str, IEmbeddingProvider] = {
        "jina": JinaEmbeddingProvider(settings=app_settings, http_client=http_client),
        "openai": OpenAIEmbeddingProvider(settings=app_settings),
    }
    preferred = candidates[app_settings.embedding_provider]
    if preferred.is_available():
        return preferred
    for name in app_settings.get_available_embedding_providers():
        logger.warning(
            "embedding_provider_fallback",
            configured=app_settings.embedding_provider,
            using=name,
        )
        return candidates[name]
    return None


def _build_sparse_encoder(app_settings: Settings) -> ISparseEncoder | None:
    if not app_settings.enable_sparse_vectors:
        return None
    return FastEmbedSparseEncoder(model_name=app_settings.sparse_model)


def _build_reranker(
    app_settings: Settings,
    http_client: httpx.AsyncClient,
) -> IRerankProvider | None:
    if not app_settings.enable_reranking or not app_settings.jina_api_key:
        return None
    return JinaRerankProvider(settings=app_settings, http_client=http_client)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings | None = None,
    vector_store: IVectorStoreClient | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
) -> dict[str, Any]:
    """Construct every provider and service.

    Parameters
    ----------
    app_settings:
        Application settings; read from the environment when omitted.
    vector_store, embedding_provider:
        Pre-built collaborators that replace the settings-selected ones.

    Returns
    -------
    dict
        Named components: ``settings``, ``http_client``, ``vector_store``,
        ``embedding_provider``, ``sparse_encoder``, ``reranker``,
        ``vector_service``, ``pipeline`` and ``retriever``.
    """
    s = app_settings or Settings()
    http_client = httpx.AsyncClient(timeout=30.0)

    store = vector_store or _build_vector_store(s)
    embedder = embedding_provider or _build_embedding_provider(s, http_client)
    sparse = _build_sparse_encoder(s)
    reranker = _build_reranker(s, http_client)

    vector_service = VectorIngestionService(store=store, settings=s)
    pipeline = DocumentPipeline(
        vector_service=vector_service,
        embedding_provider=embedder,
        settings=s,
        sparse_encoder=sparse,
    )
    retriever = HybridRetriever(
        vector_service=vector_service,
        settings=s,
        embedding_provider=embedder,
        sparse_encoder=sparse,
        reranker=reranker,
    )

    logger.info(
        "components_built",
        vector_store=store.get_provider_name(),
        embedding=embedder.get_provider_name() if embedder else None,
        sparse=sparse.get_provider_name() if sparse else None,
        reranker=reranker.get_provider_name() if reranker else None,
    )
    return {
        "settings": s,
        "http_client": http_client,
        "vector_store": store,
        "embedding_provider": embedder,
        "sparse_encoder": sparse,
        "reranker": reranker,
        "vector_service": vector_service,
        "pipeline": pipeline,
        "retriever": retriever,
    }


async def close_components(components: dict[str, Any]) -> None:
    """Release network resources held by :func:`build_components` output."""
    await components["vector_service"].close()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    logger.info("components_closed")
