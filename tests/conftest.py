"""Shared pytest fixtures for the coursekb test suite."""

from __future__ import annotations

import hashlib
import re
from collections import Counter

import pytest

from coursekb.config.settings import Settings
from coursekb.interfaces.embedding_provider import EmbeddingTask, IEmbeddingProvider
from coursekb.interfaces.sparse_encoder import ISparseEncoder
from coursekb.models.vector import SparseVector
from coursekb.providers.vector_store.memory_store import MemoryVectorStore
from coursekb.utils.logging import configure_logging

_WORD_RE = re.compile(r"\w+")

TEST_DIMENSION = 16

# Bind loggers to the session stderr before any test swaps the streams.
configure_logging(log_level="WARNING")


def _bucket(word: str, modulo: int) -> int:
    return int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % modulo


# ---------------------------------------------------------------------------
# Fake encoders
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words hashing embedder.

    Texts sharing words get similar vectors, which is enough for ranking
    assertions without a network call.
    """

    def __init__(self, dimension: int = TEST_DIMENSION) -> None:
        self._dimension = dimension
        self.calls: list[tuple[list[str], str]] = []

    def vector_for(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for word in _WORD_RE.findall(text.lower()):
            vector[_bucket(word, self._dimension)] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    async def embed(
        self,
        texts: list[str],
        task: EmbeddingTask = "retrieval.passage",
    ) -> list[list[float]]:
        self.calls.append((list(texts), task))
        return [self.vector_for(t) for t in texts]

    async def embed_query(self, text: str) -> list[float]:
        result = await self.embed([text], task="retrieval.query")
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "fake-embedding"

    def is_available(self) -> bool:
        return True


class FakeSparseEncoder(ISparseEncoder):
    """Term-frequency sparse vectors over hashed word ids."""

    def vector_for(self, text: str) -> SparseVector:
        counts = Counter(_bucket(w, 100_000) for w in _WORD_RE.findall(text.lower()))
        indices = sorted(counts)
        return SparseVector(indices=indices, values=[float(counts[i]) for i in indices])

    async def encode(self, texts: list[str]) -> list[SparseVector]:
        return [self.vector_for(t) for t in texts]

    async def encode_query(self, text: str) -> SparseVector:
        return self.vector_for(text)

    def get_provider_name(self) -> str:
        return "fake-sparse"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no API keys, an in-memory store and no pacing delays."""
    return Settings(
        vector_store_backend="memory",
        vector_size=TEST_DIMENSION,
        embedding_dimensions=TEST_DIMENSION,
        jina_api_key="",
        openai_api_key="",
        enable_reranking=False,
        batch_group_delay=0,
        delete_settle_delay=0,
        embedding_batch_delay=0,
        max_chunk_size=60,
        min_chunk_size=10,
        overlap_size=10,
        chunking_strategy="semantic",
        tokenizer="simple",
        app_env="test",
    )


@pytest.fixture
def memory_store() -> MemoryVectorStore:
    return MemoryVectorStore()


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_sparse() -> FakeSparseEncoder:
    return FakeSparseEncoder()


@pytest.fixture
def sample_course_text() -> str:
    """A short multi-section lecture note used across pipeline tests."""
    return (
        "# Introduction to Vector Search\n"
        "\n"
        "Vector search finds documents whose embeddings lie close to a query "
        "embedding. Each document is split into chunks before it is embedded. "
        "Chunks should be small enough to fit the embedding model's context.\n"
        "\n"
        "## Dense and Sparse Retrieval\n"
        "\n"
        "Dense retrieval compares continuous embeddings with cosine similarity. "
        "Sparse retrieval compares weighted keyword indices, much like BM25. "
        "Hybrid retrieval runs both and fuses the two rankings.\n"
        "\n"
        "## Reciprocal Rank Fusion\n"
        "\n"
        "Reciprocal rank fusion scores each result by the sum of one over its "
        "rank in every list. It needs no score calibration between the lists. "
        "Distribution based fusion normalizes the raw scores instead.\n"
        "\n"
        "## Reranking\n"
        "\n"
        "A cross-encoder reranker reads the query and each candidate together. "
        "It is slower than vector search but usually more accurate. Reranking "
        "is applied only to the top candidates of the first stage.\n"
    )
