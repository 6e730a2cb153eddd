"""Abstract base class for sparse (keyword) encoders.

Sparse vectors drive the keyword side of hybrid search: each vector is a
list of term indices with weights, compared by dot product in the store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursekb.models.vector import SparseVector


# Concrete implementation: FastEmbedSparseEncoder (coursekb/providers/sparse/)
class ISparseEncoder(ABC):
    """Contract for text-to-sparse-vector encoders."""

    @abstractmethod
    async def encode(self, texts: list[str]) -> list[SparseVector]:
        """Encode stored passages, one sparse vector per text."""

    @abstractmethod
    async def encode_query(self, text: str) -> SparseVector:
        """Encode a search query.  May weight terms differently from passages."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"fastembed_bm25"``."""
