"""Unit tests for factory functions in coursekb/main.py.

Covers vector store, embedding, sparse and rerank provider selection plus
the full build_components / close_components round trip, all without
network calls or real API keys.
"""

from __future__ import annotations

import httpx
import pytest

from coursekb.config.settings import Settings
from coursekb.main import (
    _build_embedding_provider,
    _build_reranker,
    _build_sparse_encoder,
    _build_vector_store,
    build_components,
    close_components,
)
from coursekb.providers.embedding.jina_embedding_provider import JinaEmbeddingProvider
from coursekb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from coursekb.providers.rerank.jina_rerank_provider import JinaRerankProvider
from coursekb.providers.sparse.fastembed_sparse_encoder import FastEmbedSparseEncoder
from coursekb.providers.vector_store.memory_store import MemoryVectorStore
from coursekb.providers.vector_store.qdrant_store import QdrantVectorStore
from coursekb.services.ingestion.document_pipeline import DocumentPipeline
from coursekb.services.retrieval.hybrid_retriever import HybridRetriever
from coursekb.services.vector.vector_ingestion_service import VectorIngestionService

from conftest import FakeEmbeddingProvider

# ======================================================================
# Shared helpers
# ======================================================================


def _settings(**overrides) -> Settings:
    """Settings with every API key empty unless overridden."""
    defaults = {
        "jina_api_key": "",
        "openai_api_key": "",
        "openai_base_url": "",
        "vector_store_backend": "memory",
        "enable_sparse_vectors": False,
        "enable_reranking": False,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)


# ======================================================================
# _build_vector_store
# ======================================================================


class TestBuildVectorStore:
    def test_memory_backend(self) -> None:
        assert isinstance(_build_vector_store(_settings()), MemoryVectorStore)

    def test_qdrant_backend(self) -> None:
        store = _build_vector_store(
            _settings(vector_store_backend="qdrant", qdrant_url="http://qdrant.internal:6333")
        )
        assert isinstance(store, QdrantVectorStore)
        assert store.get_provider_name() == "qdrant"


# ======================================================================
# _build_embedding_provider
# ======================================================================


class TestBuildEmbeddingProvider:
    def test_configured_provider_with_key(self) -> None:
        client = httpx.AsyncClient()
        provider = _build_embedding_provider(_settings(jina_api_key="jina-test"), client)
        assert isinstance(provider, JinaEmbeddingProvider)

    def test_falls_back_to_provider_with_credentials(self) -> None:
        client = httpx.AsyncClient()
        provider = _build_embedding_provider(
            _settings(embedding_provider="jina", openai_api_key="sk-test"), client
        )
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_openai_preferred(self) -> None:
        client = httpx.AsyncClient()
        provider = _build_embedding_provider(
            _settings(embedding_provider="openai", jina_api_key="jina-test", openai_api_key="sk-test"),
            client,
        )
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_none_without_any_key(self) -> None:
        assert _build_embedding_provider(_settings(), httpx.AsyncClient()) is None


# ======================================================================
# Sparse encoder and reranker
# ======================================================================


class TestOptionalProviders:
    def test_sparse_disabled(self) -> None:
        assert _build_sparse_encoder(_settings()) is None

    def test_sparse_enabled(self) -> None:
        encoder = _build_sparse_encoder(
            _settings(enable_sparse_vectors=True, sparse_model="Qdrant/bm25")
        )
        assert isinstance(encoder, FastEmbedSparseEncoder)
        assert encoder.get_provider_name() == "fastembed_bm25"

    def test_reranker_needs_flag_and_key(self) -> None:
        client = httpx.AsyncClient()
        assert _build_reranker(_settings(enable_reranking=True), client) is None
        assert _build_reranker(_settings(jina_api_key="jina-test"), client) is None
        assert isinstance(
            _build_reranker(_settings(enable_reranking=True, jina_api_key="jina-test"), client),
            JinaRerankProvider,
        )


# ======================================================================
# build_components / close_components
# ======================================================================


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_assembles_shared_graph(self) -> None:
        embedder = FakeEmbeddingProvider()
        components = build_components(_settings(), embedding_provider=embedder)

        try:
            assert isinstance(components["vector_store"], MemoryVectorStore)
            assert isinstance(components["vector_service"], VectorIngestionService)
            assert isinstance(components["pipeline"], DocumentPipeline)
            assert isinstance(components["retriever"], HybridRetriever)
            assert components["embedding_provider"] is embedder
            assert components["sparse_encoder"] is None
            assert components["reranker"] is None
            assert components["vector_service"].store is components["vector_store"]
        finally:
            await close_components(components)

        assert components["http_client"].is_closed

    @pytest.mark.asyncio
    async def test_injected_store_wins(self) -> None:
        store = MemoryVectorStore()
        components = build_components(_settings(vector_store_backend="qdrant"), vector_store=store)
        try:
            assert components["vector_store"] is store
            assert components["embedding_provider"] is None
        finally:
            await close_components(components)
