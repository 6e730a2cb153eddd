"""Abstract base class for vector-store clients.

Defines the low-level contract the vector ingestion service and hybrid
retriever depend on: collection lifecycle, point upserts, single-vector
and fused multi-vector queries, filtered deletes and collection info.
Implementations translate the backend-neutral models in
:mod:`coursekb.models.vector` into their own client types.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursekb.models.vector import (
    CollectionConfig,
    CollectionInfo,
    FusionMode,
    PayloadIndexSpec,
    PointFilter,
    Prefetch,
    ScoredPoint,
    SparseVector,
    VectorPoint,
)


# Concrete implementations (coursekb/providers/vector_store/):
#   QdrantVectorStore  -- qdrant-client AsyncQdrantClient (production)
#   MemoryVectorStore  -- in-process numpy store (tests, CLI dry runs, default)
class IVectorStoreClient(ABC):
    """Contract for vector-store backends.

    Every point carries a dense vector named ``"default"`` and, when the
    collection enables it, a sparse vector named ``"sparse"``.  All methods
    are async; implementations raise their client library's exceptions
    unchanged and leave wrapping to the calling service.
    """

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """Return ``True`` if a collection called *name* exists."""

    @abstractmethod
    async def create_collection(self, name: str, config: CollectionConfig) -> None:
        """Create collection *name* with the dense/sparse vector layout in *config*."""

    @abstractmethod
    async def create_payload_index(self, name: str, index: PayloadIndexSpec) -> None:
        """Create one payload index on collection *name*."""

    @abstractmethod
    async def upsert(self, name: str, points: list[VectorPoint], wait: bool = False) -> None:
        """Insert or replace *points*.

        Parameters
        ----------
        name:
            Target collection.
        points:
            Points with already-normalized IDs.
        wait:
            Block until the backend has indexed the points.
        """

    @abstractmethod
    async def search(
        self,
        name: str,
        vector: list[float] | SparseVector,
        using: str,
        query_filter: PointFilter | None = None,
        limit: int = 10,
        with_vectors: bool = False,
        hnsw_ef: int | None = None,
        exact: bool = False,
    ) -> list[ScoredPoint]:
        """Nearest-neighbour search on the named vector *using*.

        A :class:`SparseVector` query searches the sparse vector; a list of
        floats searches the dense one.  Results are ordered best first.
        """

    @abstractmethod
    async def query_fused(
        self,
        name: str,
        prefetch: list[Prefetch],
        fusion: FusionMode = "rrf",
        query_filter: PointFilter | None = None,
        limit: int = 10,
        with_vectors: bool = False,
    ) -> list[ScoredPoint]:
        """Run each prefetch sub-query, then fuse their rankings server-side."""

    @abstractmethod
    async def delete(self, name: str, query_filter: PointFilter | None, wait: bool = True) -> None:
        """Delete every point matching *query_filter* (all points when ``None``)."""

    @abstractmethod
    async def get_collection(self, name: str) -> CollectionInfo:
        """Return size, status and point count for collection *name*."""

    @abstractmethod
    async def list_collections(self) -> list[CollectionInfo]:
        """Return info for every collection."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` if the backend answers; may raise on transport errors."""

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"qdrant"`` or ``"memory"``."""
