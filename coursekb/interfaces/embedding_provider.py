"""Abstract base class for text-embedding service providers.

Defines the contract for generating dense embedding vectors from text.
Implementations wrap Jina ``jina-embeddings-v4`` over HTTP or any
OpenAI-compatible embeddings endpoint.  The embedding model itself is a
black box: callers rely only on vector count, order and dimension.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

EmbeddingTask = Literal["retrieval.passage", "retrieval.query"]


# Concrete implementations (coursekb/providers/embedding/):
#   JinaEmbeddingProvider    -- Jina embeddings API via httpx (default)
#   OpenAIEmbeddingProvider  -- OpenAI or OpenAI-compatible API via the openai SDK
class IEmbeddingProvider(ABC):
    """Contract for dense embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(
        self,
        texts: list[str],
        task: EmbeddingTask = "retrieval.passage",
    ) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations batch
            internally when the API has a per-call limit.
        task:
            ``"retrieval.passage"`` for stored chunks, ``"retrieval.query"``
            for search queries.  Providers without task-specific encoders
            ignore it.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*, each
            of length :meth:`get_dimension`.

        Raises
        ------
        coursekb.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query (``task="retrieval.query"``)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must match the ``vector_size`` of the collections these vectors
        are written to.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"jina-embeddings-v4"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
