"""In-process vector store backed by numpy.

Implements :class:`IVectorStoreClient` with the same observable semantics
as the Qdrant adapter: named dense/sparse vectors, filter clauses over
payload keys, RRF/DBSF fused queries and UUID/integer point IDs.  Nothing
is persisted.  Used by the test-suite, by the CLI's ``--backend memory``
mode and as the default store when none is injected.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import numpy as np
import structlog

from coursekb.interfaces.vector_store_client import IVectorStoreClient
from coursekb.models.vector import (
    DENSE_VECTOR_NAME,
    SPARSE_VECTOR_NAME,
    CollectionConfig,
    CollectionInfo,
    DatetimeRangeClause,
    FusionMode,
    MatchAnyClause,
    MatchClause,
    PayloadIndexSpec,
    PointFilter,
    PointId,
    Prefetch,
    RangeClause,
    ScoredPoint,
    SparseVector,
    VectorPoint,
)
from coursekb.services.retrieval.fusion import (
    distribution_based_fusion,
    reciprocal_rank_fusion,
)

logger = structlog.get_logger(logger_name=__name__)

_MISSING = object()


@dataclass
class _MemoryCollection:
    config: CollectionConfig
    points: dict[PointId, VectorPoint] = field(default_factory=dict)
    indexes: list[str] = field(default_factory=list)


def _normalize_id(point_id: PointId) -> PointId:
    """Mirror Qdrant's ID rules: unsigned ints or UUID strings only."""
    if isinstance(point_id, bool):
        raise ValueError(f"Invalid point id: {point_id!r}")
    if isinstance(point_id, int):
        if point_id < 0:
            raise ValueError(f"Point id must be unsigned: {point_id}")
        return point_id
    try:
        return str(uuid.UUID(str(point_id)))
    except ValueError as exc:
        raise ValueError(f"Invalid point id {point_id!r}: not an integer or UUID") from exc


def _lookup(payload: dict[str, Any], key: str) -> Any:
    value: Any = payload
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return _as_utc(value)
    if not isinstance(value, str):
        return None
    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _clause_matches(payload: dict[str, Any], clause: Any) -> bool:
    value = _lookup(payload, clause.key)
    if value is _MISSING or value is None:
        return False

    if isinstance(clause, MatchClause):
        if isinstance(value, list):
            return clause.value in value
        return value == clause.value

    if isinstance(clause, MatchAnyClause):
        if isinstance(value, list):
            return any(v in clause.any for v in value)
        return value in clause.any

    if isinstance(clause, RangeClause):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if clause.gte is not None and value < clause.gte:
            return False
        if clause.lte is not None and value > clause.lte:
            return False
        if clause.gt is not None and value <= clause.gt:
            return False
        if clause.lt is not None and value >= clause.lt:
            return False
        return True

    if isinstance(clause, DatetimeRangeClause):
        moment = _parse_datetime(value)
        if moment is None:
            return False
        if clause.gte is not None and moment < _as_utc(clause.gte):
            return False
        if clause.lte is not None and moment > _as_utc(clause.lte):
            return False
        return True

    raise ValueError(f"Unsupported filter clause: {clause!r}")


def matches_filter(payload: dict[str, Any], query_filter: PointFilter | None) -> bool:
    """Return ``True`` if *payload* satisfies every clause of *query_filter*."""
    if query_filter is None:
        return True
    return all(_clause_matches(payload, clause) for clause in query_filter.must)


class MemoryVectorStore(IVectorStoreClient):
    """Dictionary-of-collections store with brute-force numpy scoring."""

    def __init__(self) -> None:
        self._collections: dict[str, _MemoryCollection] = {}

    def _get(self, name: str) -> _MemoryCollection:
        collection = self._collections.get(name)
        if collection is None:
            raise ValueError(f"Collection '{name}' not found")
        return collection

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def collection_exists(self, name: str) -> bool:
        return name in self._collections

    async def create_collection(self, name: str, config: CollectionConfig) -> None:
        if name in self._collections:
            raise ValueError(f"Collection '{name}' already exists")
        self._collections[name] = _MemoryCollection(config=config)
        logger.debug("memory_collection_created", collection=name, vector_size=config.vector_size)

    async def create_payload_index(self, name: str, index: PayloadIndexSpec) -> None:
        collection = self._get(name)
        if index.field_name not in collection.indexes:
            collection.indexes.append(index.field_name)

    async def get_collection(self, name: str) -> CollectionInfo:
        collection = self._get(name)
        return CollectionInfo(
            name=name,
            status="active",
            vector_size=collection.config.vector_size,
            distance=collection.config.distance,
            points_count=len(collection.points),
            indexed_vectors_count=len(collection.points),
            payload_indexes=list(collection.indexes),
        )

    async def list_collections(self) -> list[CollectionInfo]:
        return [await self.get_collection(name) for name in sorted(self._collections)]

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def upsert(self, name: str, points: list[VectorPoint], wait: bool = False) -> None:
        collection = self._get(name)
        size = collection.config.vector_size
        staged: dict[PointId, VectorPoint] = {}
        for point in points:
            if len(point.vector) != size:
                raise ValueError(
                    f"Wrong input: Vector dimension error: expected dim: {size}, "
                    f"got {len(point.vector)}"
                )
            if point.sparse_vector is not None and not collection.config.sparse_vectors:
                raise ValueError(f"Collection '{name}' has no sparse vector '{SPARSE_VECTOR_NAME}'")
            point_id = _normalize_id(point.id)
            staged[point_id] = point.model_copy(update={"id": point_id})
        # All-or-nothing per call, like a single upsert request.
        collection.points.update(staged)

    async def delete(self, name: str, query_filter: PointFilter | None, wait: bool = True) -> None:
        collection = self._get(name)
        doomed = [
            point_id
            for point_id, point in collection.points.items()
            if matches_filter(point.payload, query_filter)
        ]
        for point_id in doomed:
            del collection.points[point_id]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

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
        collection = self._get(name)
        candidates = [
            point
            for point in collection.points.values()
            if matches_filter(point.payload, query_filter)
        ]
        if isinstance(vector, SparseVector):
            if using != SPARSE_VECTOR_NAME:
                raise ValueError(f"Sparse query must use '{SPARSE_VECTOR_NAME}', got '{using}'")
            scored = self._score_sparse(candidates, vector)
        else:
            if using != DENSE_VECTOR_NAME:
                raise ValueError(f"Dense query must use '{DENSE_VECTOR_NAME}', got '{using}'")
            scored = self._score_dense(collection.config, candidates, vector)

        return [
            ScoredPoint(
                id=point.id,
                score=score,
                payload=dict(point.payload),
                vector=list(point.vector) if with_vectors else None,
            )
            for point, score in scored[:limit]
        ]

    async def query_fused(
        self,
        name: str,
        prefetch: list[Prefetch],
        fusion: FusionMode = "rrf",
        query_filter: PointFilter | None = None,
        limit: int = 10,
        with_vectors: bool = False,
    ) -> list[ScoredPoint]:
        if not prefetch:
            raise ValueError("Fused query needs at least one prefetch")
        rankings: list[list[ScoredPoint]] = []
        for sub in prefetch:
            query = sub.sparse if sub.sparse is not None else sub.dense
            if query is None:
                raise ValueError(f"Prefetch on '{sub.using}' has no query vector")
            rankings.append(
                await self.search(
                    name,
                    query,
                    using=sub.using,
                    query_filter=query_filter,
                    limit=sub.limit,
                    with_vectors=with_vectors,
                )
            )
        if fusion == "dbsf":
            return distribution_based_fusion(rankings, limit)
        return reciprocal_rank_fusion(rankings, limit)

    @staticmethod
    def _score_dense(
        config: CollectionConfig,
        candidates: list[VectorPoint],
        query: list[float],
    ) -> list[tuple[VectorPoint, float]]:
        if len(query) != config.vector_size:
            raise ValueError(
                f"Wrong input: Vector dimension error: expected dim: {config.vector_size}, "
                f"got {len(query)}"
            )
        if not candidates:
            return []

        matrix = np.array([p.vector for p in candidates], dtype=float)
        q = np.array(query, dtype=float)
        if config.distance == "Cosine":
            norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
            with np.errstate(divide="ignore", invalid="ignore"):
                scores = np.where(norms > 0, matrix @ q / norms, 0.0)
            descending = True
        elif config.distance == "Dot":
            scores = matrix @ q
            descending = True
        elif config.distance == "Euclid":
            scores = np.linalg.norm(matrix - q, axis=1)
            descending = False
        else:
            scores = np.abs(matrix - q).sum(axis=1)
            descending = False

        order = np.argsort(-scores if descending else scores, kind="stable")
        return [(candidates[i], float(scores[i])) for i in order]

    @staticmethod
    def _score_sparse(
        candidates: list[VectorPoint],
        query: SparseVector,
    ) -> list[tuple[VectorPoint, float]]:
        weights = dict(zip(query.indices, query.values))
        scored: list[tuple[VectorPoint, float]] = []
        for point in candidates:
            sparse = point.sparse_vector
            if sparse is None:
                continue
            overlap = [weights[i] * v for i, v in zip(sparse.indices, sparse.values) if i in weights]
            if overlap:
                scored.append((point, float(sum(overlap))))
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def get_provider_name(self) -> str:
        return "memory"
