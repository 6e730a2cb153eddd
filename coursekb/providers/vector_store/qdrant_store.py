"""Qdrant vector store adapter.

Wraps :class:`qdrant_client.AsyncQdrantClient` to implement
:class:`IVectorStoreClient`.  Each point stores a dense vector named
``"default"`` and, when the collection enables it, a sparse vector named
``"sparse"``.  Hybrid queries use Qdrant's Query API: one ``Prefetch`` per
vector kind, fused server-side with RRF or DBSF.

Client exceptions (``UnexpectedResponse``, ``httpx`` transport errors) are
propagated unchanged; :class:`VectorIngestionService` wraps them with the
operation and collection name.
"""

from __future__ import annotations

from typing import Any

import structlog
from qdrant_client import AsyncQdrantClient
from qdrant_client import models as qdrant_models

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
    Prefetch,
    RangeClause,
    ScoredPoint,
    SparseVector,
    VectorPoint,
)

logger = structlog.get_logger(logger_name=__name__)

_SCHEMA_TYPES: dict[str, qdrant_models.PayloadSchemaType] = {
    "keyword": qdrant_models.PayloadSchemaType.KEYWORD,
    "integer": qdrant_models.PayloadSchemaType.INTEGER,
    "float": qdrant_models.PayloadSchemaType.FLOAT,
    "bool": qdrant_models.PayloadSchemaType.BOOL,
    "datetime": qdrant_models.PayloadSchemaType.DATETIME,
}

_TOKENIZERS: dict[str, qdrant_models.TokenizerType] = {
    "word": qdrant_models.TokenizerType.WORD,
    "whitespace": qdrant_models.TokenizerType.WHITESPACE,
    "prefix": qdrant_models.TokenizerType.PREFIX,
}

_FUSIONS: dict[str, qdrant_models.Fusion] = {
    "rrf": qdrant_models.Fusion.RRF,
    "dbsf": qdrant_models.Fusion.DBSF,
}


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------
def to_qdrant_filter(query_filter: PointFilter | None) -> qdrant_models.Filter | None:
    """Translate a backend-neutral :class:`PointFilter` into a Qdrant ``Filter``."""
    if query_filter is None or not query_filter.must:
        return None

    conditions: list[qdrant_models.Condition] = []
    for clause in query_filter.must:
        if isinstance(clause, MatchClause):
            conditions.append(
                qdrant_models.FieldCondition(
                    key=clause.key, match=qdrant_models.MatchValue(value=clause.value)
                )
            )
        elif isinstance(clause, MatchAnyClause):
            conditions.append(
                qdrant_models.FieldCondition(
                    key=clause.key, match=qdrant_models.MatchAny(any=list(clause.any))
                )
            )
        elif isinstance(clause, RangeClause):
            conditions.append(
                qdrant_models.FieldCondition(
                    key=clause.key,
                    range=qdrant_models.Range(
                        gte=clause.gte, lte=clause.lte, gt=clause.gt, lt=clause.lt
                    ),
                )
            )
        elif isinstance(clause, DatetimeRangeClause):
            conditions.append(
                qdrant_models.FieldCondition(
                    key=clause.key,
                    range=qdrant_models.DatetimeRange(gte=clause.gte, lte=clause.lte),
                )
            )
    return qdrant_models.Filter(must=conditions)


def _to_sparse(vector: SparseVector) -> qdrant_models.SparseVector:
    return qdrant_models.SparseVector(indices=list(vector.indices), values=list(vector.values))


def _to_point(point: VectorPoint) -> qdrant_models.PointStruct:
    vectors: dict[str, Any] = {DENSE_VECTOR_NAME: list(point.vector)}
    if point.sparse_vector is not None and not point.sparse_vector.is_empty():
        vectors[SPARSE_VECTOR_NAME] = _to_sparse(point.sparse_vector)
    return qdrant_models.PointStruct(id=point.id, vector=vectors, payload=point.payload)


def _dense_of(raw: Any) -> list[float] | None:
    """Pull the dense vector out of whatever shape ``with_vectors`` returned."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        dense = raw.get(DENSE_VECTOR_NAME)
        return list(dense) if isinstance(dense, list) else None
    if isinstance(raw, list):
        return list(raw)
    return None


def _to_scored(point: qdrant_models.ScoredPoint) -> ScoredPoint:
    return ScoredPoint(
        id=point.id,
        score=point.score,
        payload=dict(point.payload or {}),
        vector=_dense_of(point.vector),
    )


def _query_of(prefetch: Prefetch) -> Any:
    if prefetch.sparse is not None:
        return _to_sparse(prefetch.sparse)
    if prefetch.dense is not None:
        return list(prefetch.dense)
    raise ValueError(f"Prefetch on '{prefetch.using}' has no query vector")


class QdrantVectorStore(IVectorStoreClient):
    """Vector store backed by a Qdrant server (or Qdrant Cloud).

    Parameters
    ----------
    url:
        Qdrant REST endpoint, e.g. ``http://localhost:6333``.
    api_key:
        API key for Qdrant Cloud; empty for a local server.
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built client, mainly for tests.  When given, *url*, *api_key*
        and *timeout* are ignored.
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: str = "",
        timeout: int = 30,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        self._url = url
        self._client = client or AsyncQdrantClient(
            url=url,
            api_key=api_key or None,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def collection_exists(self, name: str) -> bool:
        return await self._client.collection_exists(collection_name=name)

    async def create_collection(self, name: str, config: CollectionConfig) -> None:
        sparse_config = (
            {SPARSE_VECTOR_NAME: qdrant_models.SparseVectorParams()}
            if config.sparse_vectors
            else None
        )
        await self._client.create_collection(
            collection_name=name,
            vectors_config={
                DENSE_VECTOR_NAME: qdrant_models.VectorParams(
                    size=config.vector_size,
                    distance=qdrant_models.Distance(config.distance),
                ),
            },
            sparse_vectors_config=sparse_config,
            hnsw_config=qdrant_models.HnswConfigDiff(
                m=config.hnsw.m,
                ef_construct=config.hnsw.ef_construct,
                on_disk=config.hnsw.on_disk,
            ),
            optimizers_config=qdrant_models.OptimizersConfigDiff(
                indexing_threshold=config.optimizers.indexing_threshold,
                memmap_threshold=config.optimizers.memmap_threshold,
            ),
        )
        logger.info(
            "qdrant_collection_created",
            collection=name,
            vector_size=config.vector_size,
            distance=config.distance,
            sparse=config.sparse_vectors,
        )

    async def create_payload_index(self, name: str, index: PayloadIndexSpec) -> None:
        if index.schema_type == "text":
            schema: Any = qdrant_models.TextIndexParams(
                type=qdrant_models.TextIndexType.TEXT,
                tokenizer=_TOKENIZERS[index.tokenizer],
                min_token_len=index.min_token_len,
                max_token_len=index.max_token_len,
                lowercase=index.lowercase,
            )
        else:
            schema = _SCHEMA_TYPES[index.schema_type]
        await self._client.create_payload_index(
            collection_name=name,
            field_name=index.field_name,
            field_schema=schema,
        )

    async def get_collection(self, name: str) -> CollectionInfo:
        info = await self._client.get_collection(collection_name=name)

        vector_size: int | None = None
        distance: str | None = None
        vectors = info.config.params.vectors
        params = vectors.get(DENSE_VECTOR_NAME) if isinstance(vectors, dict) else vectors
        if params is not None:
            vector_size = params.size
            distance = params.distance.value if hasattr(params.distance, "value") else str(params.distance)

        status = "error" if info.status == qdrant_models.CollectionStatus.RED else "active"
        return CollectionInfo(
            name=name,
            status=status,
            vector_size=vector_size,
            distance=distance,
            points_count=info.points_count or 0,
            indexed_vectors_count=info.indexed_vectors_count,
            payload_indexes=sorted((info.payload_schema or {}).keys()),
        )

    async def list_collections(self) -> list[CollectionInfo]:
        response = await self._client.get_collections()
        return [await self.get_collection(c.name) for c in response.collections]

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def upsert(self, name: str, points: list[VectorPoint], wait: bool = False) -> None:
        await self._client.upsert(
            collection_name=name,
            points=[_to_point(p) for p in points],
            wait=wait,
        )

    async def delete(self, name: str, query_filter: PointFilter | None, wait: bool = True) -> None:
        # An empty Filter selects every point.
        await self._client.delete(
            collection_name=name,
            points_selector=qdrant_models.FilterSelector(
                filter=to_qdrant_filter(query_filter) or qdrant_models.Filter()
            ),
            wait=wait,
        )

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
        query: Any = _to_sparse(vector) if isinstance(vector, SparseVector) else list(vector)
        response = await self._client.query_points(
            collection_name=name,
            query=query,
            using=using,
            query_filter=to_qdrant_filter(query_filter),
            limit=limit,
            with_payload=True,
            with_vectors=with_vectors,
            search_params=qdrant_models.SearchParams(hnsw_ef=hnsw_ef, exact=exact),
        )
        return [_to_scored(p) for p in response.points]

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
        qdrant_filter = to_qdrant_filter(query_filter)
        response = await self._client.query_points(
            collection_name=name,
            prefetch=[
                qdrant_models.Prefetch(
                    query=_query_of(p),
                    using=p.using,
                    limit=p.limit,
                    filter=qdrant_filter,
                )
                for p in prefetch
            ],
            query=qdrant_models.FusionQuery(fusion=_FUSIONS[fusion]),
            query_filter=qdrant_filter,
            limit=limit,
            with_payload=True,
            with_vectors=with_vectors,
        )
        return [_to_scored(p) for p in response.points]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        await self._client.get_collections()
        return True

    async def close(self) -> None:
        await self._client.close()

    def get_provider_name(self) -> str:
        return "qdrant"
