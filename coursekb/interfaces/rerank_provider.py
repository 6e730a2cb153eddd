"""Abstract base class for reranking service providers.

A reranker re-scores a candidate list against the original query text with
a cross-encoder, which is slower but more precise than vector similarity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursekb.models.retrieval import RerankHit


# Concrete implementation: JinaRerankProvider (coursekb/providers/rerank/)
class IRerankProvider(ABC):
    """Contract for rerank services used by the hybrid retriever."""

    @abstractmethod
    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_n: int | None = None,
    ) -> list[RerankHit]:
        """Score *documents* against *query*.

        Returns
        -------
        list[RerankHit]
            At most *top_n* hits, highest ``relevance_score`` first.  Each
            ``index`` refers to a position in *documents*.

        Raises
        ------
        coursekb.utils.errors.RerankError
            If the rerank API call fails or returns a malformed body.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"jina-reranker-m0"``."""
