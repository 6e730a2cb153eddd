"""Vector ingestion service: collections, batched writes, search and delete.

The :class:`VectorIngestionService` is the only component that talks to an
:class:`IVectorStoreClient`.  It owns:

1. **Collection lifecycle** -- idempotent creation with caller overrides
   deep-merged over settings defaults, then best-effort payload indexes.
2. **Validated, batched insertion** -- vectors are checked before any store
   call, split into batches of ``max_batch_size`` and dispatched
   ``max_concurrent_batches`` at a time with a short pause between groups.
   A failing batch is recorded in :class:`InsertResult` and never aborts the
   remaining batches.
3. **Search** -- dense (``search_similar``), sparse (``keyword_search``) and
   server-side fused (``hybrid_search``) queries, all filtered through
   :func:`~coursekb.services.vector.filters.build_filter`.
4. **Metered delete** -- point counts are snapshotted before and after the
   delete because the store's acknowledgement carries no count.

Operation-level failures (create/search/delete/info) are wrapped in
:class:`VectorStoreError` naming the operation and collection; every
external call runs under ``operation_timeout``.
"""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, TypeVar

import numpy as np
import structlog
from pydantic import ValidationError as PydanticValidationError

from coursekb.config.loader import deep_merged
from coursekb.config.settings import Settings
from coursekb.interfaces.vector_store_client import IVectorStoreClient
from coursekb.models.vector import (
    DEFAULT_PAYLOAD_INDEXES,
    DENSE_VECTOR_NAME,
    SPARSE_VECTOR_NAME,
    BatchConfig,
    BatchError,
    CollectionConfig,
    CollectionInfo,
    CreateCollectionResult,
    DeleteResult,
    HnswConfig,
    InsertResult,
    OptimizerConfig,
    PointId,
    Prefetch,
    ScoredPoint,
    SearchFilters,
    SearchParams,
    SparseVector,
    VectorPoint,
)
from coursekb.providers.vector_store.memory_store import MemoryVectorStore
from coursekb.services.vector.filters import build_filter
from coursekb.utils.concurrency import split_batches, with_timeout
from coursekb.utils.errors import (
    ConfigurationError,
    CourseKBError,
    ValidationError,
    VectorStoreError,
)

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_point_id(point_id: PointId | None) -> tuple[PointId, bool]:
    """Return ``(stored_id, replaced)``.

    Unsigned integers and UUID strings pass through; anything else is
    replaced by a fresh UUID4.
    """
    if isinstance(point_id, int) and not isinstance(point_id, bool) and point_id >= 0:
        return point_id, False
    if isinstance(point_id, str) and _UUID_RE.match(point_id):
        return point_id, False
    return str(uuid.uuid4()), True


class VectorIngestionService:
    """Batched, validated access to a vector store.

    Parameters
    ----------
    store:
        Vector-store backend.  Defaults to a fresh :class:`MemoryVectorStore`.
    settings:
        Process-wide defaults for collection layout, batching and timeouts.

    The service is usable as an async context manager; ``init`` is also
    invoked lazily by the first operation that needs the store.
    """

    def __init__(
        self,
        store: IVectorStoreClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store: IVectorStoreClient = store or MemoryVectorStore()
        self._settings = settings or Settings()
        self._validate_settings(self._settings)
        self._initialized = False
        # Vector sizes of collections this service created or looked up.
        self._known_sizes: dict[str, int] = {}
        # Serializes the exists-then-create sequence across concurrent ingests.
        self._create_lock = asyncio.Lock()

    @staticmethod
    def _validate_settings(settings: Settings) -> None:
        if not 1 <= settings.max_batch_size <= 10000:
            raise ConfigurationError(
                message=f"max_batch_size must be within 1..10000, got {settings.max_batch_size}"
            )
        if settings.max_concurrent_batches < 1:
            raise ConfigurationError(message="max_concurrent_batches must be >= 1")
        if settings.operation_timeout < 1:
            raise ConfigurationError(
                message=f"operation_timeout must be at least 1s, got {settings.operation_timeout}"
            )

    @property
    def store(self) -> IVectorStoreClient:
        return self._store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Verify the store is reachable.  Safe to call more than once."""
        if self._initialized:
            return
        await self._call("health_check", "*", self._store.health_check())
        self._initialized = True
        logger.info("vector_service_initialized", provider=self._store.get_provider_name())

    async def close(self) -> None:
        await self._store.close()
        self._initialized = False
        logger.info("vector_service_closed", provider=self._store.get_provider_name())

    async def __aenter__(self) -> VectorIngestionService:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _call(self, operation: str, collection: str, coro: Awaitable[_T]) -> _T:
        """Await a single-shot store call, wrapping failures with context."""
        try:
            return await with_timeout(
                coro, self._settings.operation_timeout, label=f"{operation} on '{collection}'"
            )
        except CourseKBError:
            raise
        except Exception as exc:
            raise VectorStoreError(
                message=f"{operation} failed for collection '{collection}': {exc}",
                provider_name=self._store.get_provider_name(),
                operation=operation,
                collection=collection,
            ) from exc

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _default_collection_config(self) -> CollectionConfig:
        s = self._settings
        return CollectionConfig(
            vector_size=s.vector_size,
            distance=s.vector_distance,
            hnsw=HnswConfig(m=s.hnsw_m, ef_construct=s.hnsw_ef_construct, on_disk=s.hnsw_on_disk),
            optimizers=OptimizerConfig(
                indexing_threshold=s.indexing_threshold,
                memmap_threshold=s.memmap_threshold,
            ),
            sparse_vectors=s.enable_sparse_vectors,
        )

    def resolve_collection_config(
        self,
        overrides: CollectionConfig | dict[str, Any] | None = None,
    ) -> CollectionConfig:
        """Deep-merge *overrides* over the settings-derived default layout."""
        defaults = self._default_collection_config()
        if overrides is None:
            return defaults
        if isinstance(overrides, CollectionConfig):
            patch = overrides.model_dump(exclude_unset=True)
        else:
            patch = dict(overrides)
        try:
            return CollectionConfig.model_validate(deep_merged(defaults.model_dump(), patch))
        except PydanticValidationError as exc:
            raise ValidationError(
                message=f"Invalid collection config: {exc}", field="config"
            ) from exc

    async def create_collection(
        self,
        name: str,
        config: CollectionConfig | dict[str, Any] | None = None,
    ) -> CreateCollectionResult:
        """Create *name* unless it exists; existing collections are left untouched."""
        if not name:
            raise ValidationError(message="Collection name is required", field="name")
        merged = self.resolve_collection_config(config)
        await self.init()

        async with self._create_lock:
            return await self._create_collection(name, merged)

    async def _create_collection(self, name: str, merged: CollectionConfig) -> CreateCollectionResult:
        operation_id = str(uuid.uuid4())
        start = time.perf_counter()
        logger.info("create_collection_started", operation_id=operation_id, collection=name)

        if await self._call("collection_exists", name, self._store.collection_exists(name)):
            info = await self._call("get_collection", name, self._store.get_collection(name))
            if info.vector_size:
                self._known_sizes[name] = info.vector_size
            logger.info(
                "collection_already_exists",
                operation_id=operation_id,
                collection=name,
                duration_ms=_elapsed_ms(start),
            )
            return CreateCollectionResult(success=True, collection=name, existed=True)

        await self._call("create_collection", name, self._store.create_collection(name, merged))
        self._known_sizes[name] = merged.vector_size

        created: list[str] = []
        index_errors: list[dict[str, str]] = []
        for index in [*DEFAULT_PAYLOAD_INDEXES, *merged.payload_indexes]:
            try:
                await with_timeout(
                    self._store.create_payload_index(name, index),
                    self._settings.operation_timeout,
                    label=f"create_payload_index {index.field_name}",
                )
                created.append(index.field_name)
            except Exception as exc:
                logger.warning(
                    "payload_index_failed",
                    operation_id=operation_id,
                    collection=name,
                    field=index.field_name,
                    error=str(exc),
                )
                index_errors.append({"field": index.field_name, "error": str(exc)})

        logger.info(
            "create_collection_completed",
            operation_id=operation_id,
            collection=name,
            vector_size=merged.vector_size,
            indexes_created=len(created),
            index_errors=len(index_errors),
            duration_ms=_elapsed_ms(start),
        )
        return CreateCollectionResult(
            success=True,
            collection=name,
            existed=False,
            config=merged,
            indexes_created=created,
            index_errors=index_errors,
        )

    async def get_collection_info(self, name: str) -> CollectionInfo:
        await self.init()
        info = await self._call("get_collection", name, self._store.get_collection(name))
        if info.vector_size:
            self._known_sizes[name] = info.vector_size
        return info

    async def list_collections(self) -> list[CollectionInfo]:
        await self.init()
        return await self._call("list_collections", "*", self._store.list_collections())

    async def health_check(self) -> dict[str, Any]:
        """Report store health.  Never raises."""
        provider = self._store.get_provider_name()
        try:
            await with_timeout(
                self._store.health_check(), self._settings.operation_timeout, label="health_check"
            )
            collections = await with_timeout(
                self._store.list_collections(),
                self._settings.operation_timeout,
                label="list_collections",
            )
            return {
                "healthy": True,
                "provider": provider,
                "collections": len(collections),
                "timestamp": _utc_now(),
            }
        except Exception as exc:
            logger.warning("vector_store_unhealthy", provider=provider, error=str(exc))
            return {
                "healthy": False,
                "provider": provider,
                "error": str(exc),
                "timestamp": _utc_now(),
            }

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def _validate_vectors(
        self,
        collection: str,
        vectors: list[VectorPoint],
        expected_dimension: int | None,
    ) -> int:
        if not vectors:
            raise ValidationError(message="No vectors supplied for insertion", field="vectors")

        for position, point in enumerate(vectors):
            if not point.vector:
                raise ValidationError(
                    message=f"Vector at position {position} is empty", field="vectors"
                )
            if not np.isfinite(np.asarray(point.vector, dtype=float)).all():
                raise ValidationError(
                    message=f"Vector at position {position} contains NaN or infinite values",
                    field="vectors",
                )
            sparse = point.sparse_vector
            if sparse is not None and not np.isfinite(np.asarray(sparse.values, dtype=float)).all():
                raise ValidationError(
                    message=f"Sparse vector at position {position} contains NaN or infinite values",
                    field="vectors",
                )

        dimensions = sorted({len(p.vector) for p in vectors})
        if len(dimensions) > 1:
            raise ValidationError(
                message=f"Inconsistent vector dimensions in one call: {dimensions}",
                field="vectors",
            )

        dimension = dimensions[0]
        expected = expected_dimension or self._known_sizes.get(collection)
        if expected is not None and dimension != expected:
            raise ValidationError(
                message=(
                    f"Vector dimension {dimension} does not match collection "
                    f"'{collection}' (expected {expected})"
                ),
                field="vectors",
            )
        return dimension

    async def _upsert_batch(
        self,
        collection: str,
        batch_index: int,
        batch: list[VectorPoint],
        wait: bool,
    ) -> list[PointId]:
        timestamp = _utc_now()
        points: list[VectorPoint] = []
        for point_index, point in enumerate(batch):
            original = point.id if point.id != "" else None
            point_id, replaced = normalize_point_id(original)
            payload = {
                **point.payload,
                "ingestion_timestamp": timestamp,
                "batch_index": batch_index,
                "point_index": point_index,
            }
            if replaced and original is not None:
                payload["original_id"] = original
            points.append(point.model_copy(update={"id": point_id, "payload": payload}))

        await with_timeout(
            self._store.upsert(collection, points, wait=wait),
            self._settings.operation_timeout,
            label=f"upsert batch {batch_index}",
        )
        return [p.id for p in points]

    async def insert_vectors(
        self,
        collection: str,
        vectors: list[VectorPoint],
        options: BatchConfig | None = None,
    ) -> InsertResult:
        """Validate, batch and upsert *vectors*.

        Raises
        ------
        ValidationError
            Before any store call, if the vectors are empty, non-finite or of
            mixed (or unexpected) dimension.

        The collection size is only checked when it is known without a store
        call: from ``options.expected_dimension``, or because this service
        created the collection or read it with :meth:`get_collection_info`.
        For a collection this instance has never seen, wrong-sized vectors
        reach the store and every batch comes back failed; pass
        ``expected_dimension`` (or call ``get_collection_info`` first) to get
        the ``ValidationError`` up front.

        Per-batch failures, including timeouts, are returned in
        ``InsertResult.errors`` rather than raised.
        """
        options = options or BatchConfig()
        self._validate_vectors(collection, vectors, options.expected_dimension)

        s = self._settings
        batch_size = options.max_batch_size or s.max_batch_size
        concurrency = options.max_concurrent_batches or s.max_concurrent_batches
        wait = s.wait_for_indexing if options.wait_for_indexing is None else options.wait_for_indexing

        await self.init()

        operation_id = str(uuid.uuid4())
        start = time.perf_counter()
        batches = split_batches(vectors, batch_size)
        logger.info(
            "insert_vectors_started",
            operation_id=operation_id,
            collection=collection,
            total_vectors=len(vectors),
            total_batches=len(batches),
            batch_size=batch_size,
            max_concurrent=concurrency,
        )

        ids_by_batch: dict[int, list[PointId]] = {}
        errors: list[BatchError] = []
        for group_start in range(0, len(batches), concurrency):
            group = range(group_start, min(group_start + concurrency, len(batches)))
            outcomes = await asyncio.gather(
                *(self._upsert_batch(collection, i, batches[i], wait) for i in group),
                return_exceptions=True,
            )
            for batch_index, outcome in zip(group, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error(
                        "batch_insert_failed",
                        operation_id=operation_id,
                        collection=collection,
                        batch_index=batch_index,
                        error=str(outcome),
                    )
                    errors.append(
                        BatchError(
                            batch_index=batch_index,
                            error=str(outcome) or type(outcome).__name__,
                            point_count=len(batches[batch_index]),
                        )
                    )
                else:
                    ids_by_batch[batch_index] = outcome
                    logger.debug(
                        "batch_inserted",
                        operation_id=operation_id,
                        batch_index=batch_index,
                        points=len(outcome),
                    )
            if group.stop < len(batches) and s.batch_group_delay > 0:
                await asyncio.sleep(s.batch_group_delay)

        point_ids = [pid for i in sorted(ids_by_batch) for pid in ids_by_batch[i]]
        result = InsertResult(
            operation_id=operation_id,
            collection=collection,
            total_vectors=len(vectors),
            total_batches=len(batches),
            successful_batches=len(ids_by_batch),
            failed_batches=len(errors),
            errors=sorted(errors, key=lambda e: e.batch_index),
            point_ids=point_ids,
            duration_ms=_elapsed_ms(start),
        )
        log = logger.warning if errors else logger.info
        log(
            "insert_vectors_completed",
            operation_id=operation_id,
            collection=collection,
            successful_batches=result.successful_batches,
            failed_batches=result.failed_batches,
            duration_ms=result.duration_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _search_params(self, params: SearchParams | None) -> SearchParams:
        if params is not None:
            return params
        return SearchParams(hnsw_ef=self._settings.hnsw_ef, fusion_mode=self._settings.fusion_mode)

    @staticmethod
    def _check_dense(vector: list[float] | None) -> list[float]:
        if not vector:
            raise ValidationError(message="Query vector is empty", field="query_vector")
        if not np.isfinite(np.asarray(vector, dtype=float)).all():
            raise ValidationError(
                message="Query vector contains NaN or infinite values", field="query_vector"
            )
        return list(vector)

    @staticmethod
    def _has_sparse(vector: SparseVector | None) -> bool:
        return vector is not None and not vector.is_empty()

    async def _timed_search(
        self,
        operation: str,
        collection: str,
        coro: Awaitable[list[ScoredPoint]],
        **context: Any,
    ) -> list[ScoredPoint]:
        operation_id = str(uuid.uuid4())
        start = time.perf_counter()
        logger.debug(f"{operation}_started", operation_id=operation_id, collection=collection, **context)
        try:
            results = await self._call(operation, collection, coro)
        except VectorStoreError as exc:
            logger.error(
                f"{operation}_failed",
                operation_id=operation_id,
                collection=collection,
                error=str(exc),
                duration_ms=_elapsed_ms(start),
            )
            raise
        logger.info(
            f"{operation}_completed",
            operation_id=operation_id,
            collection=collection,
            results=len(results),
            duration_ms=_elapsed_ms(start),
        )
        return results

    async def search_similar(
        self,
        collection: str,
        query_vector: list[float],
        filters: SearchFilters | None = None,
        limit: int = 10,
        params: SearchParams | None = None,
    ) -> list[ScoredPoint]:
        """Dense nearest-neighbour search on the ``"default"`` vector."""
        vector = self._check_dense(query_vector)
        params = self._search_params(params)
        await self.init()
        return await self._timed_search(
            "semantic_search",
            collection,
            self._store.search(
                collection,
                vector,
                using=DENSE_VECTOR_NAME,
                query_filter=build_filter(filters),
                limit=limit,
                with_vectors=params.include_vectors,
                hnsw_ef=params.hnsw_ef,
                exact=params.exact,
            ),
            limit=limit,
        )

    async def keyword_search(
        self,
        collection: str,
        sparse_vector: SparseVector,
        filters: SearchFilters | None = None,
        limit: int = 10,
        params: SearchParams | None = None,
    ) -> list[ScoredPoint]:
        """Sparse-only search on the ``"sparse"`` vector."""
        if not self._has_sparse(sparse_vector):
            raise ValidationError(message="Sparse query vector is empty", field="sparse_vector")
        params = self._search_params(params)
        await self.init()
        return await self._timed_search(
            "keyword_search",
            collection,
            self._store.search(
                collection,
                sparse_vector,
                using=SPARSE_VECTOR_NAME,
                query_filter=build_filter(filters),
                limit=limit,
                with_vectors=params.include_vectors,
            ),
            limit=limit,
        )

    async def hybrid_search(
        self,
        collection: str,
        dense_vector: list[float] | None,
        sparse_vector: SparseVector | None,
        filters: SearchFilters | None = None,
        limit: int = 10,
        params: SearchParams | None = None,
    ) -> list[ScoredPoint]:
        """Fuse dense and sparse rankings server-side.

        With only one kind of vector supplied this delegates to
        :meth:`search_similar` or :meth:`keyword_search`, so results match
        the corresponding single-mode search exactly.
        """
        has_dense = bool(dense_vector)
        has_sparse = self._has_sparse(sparse_vector)
        if not has_dense and not has_sparse:
            raise ValidationError(
                message="Hybrid search requires at least one of dense or sparse vectors",
                field="vectors",
            )
        if not has_sparse:
            return await self.search_similar(collection, dense_vector, filters, limit, params)
        if not has_dense:
            return await self.keyword_search(collection, sparse_vector, filters, limit, params)

        dense = self._check_dense(dense_vector)
        params = self._search_params(params)
        prefetch = [
            Prefetch(using=DENSE_VECTOR_NAME, dense=dense, limit=params.dense_limit or limit),
            Prefetch(using=SPARSE_VECTOR_NAME, sparse=sparse_vector, limit=params.sparse_limit or limit),
        ]
        await self.init()
        return await self._timed_search(
            "hybrid_search",
            collection,
            self._store.query_fused(
                collection,
                prefetch,
                fusion=params.fusion_mode,
                query_filter=build_filter(filters),
                limit=limit,
                with_vectors=params.include_vectors,
            ),
            limit=limit,
            fusion=params.fusion_mode,
        )

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_by_filter(self, collection: str, filters: SearchFilters) -> DeleteResult:
        """Delete matching points and report the observed change in point count.

        An empty filter set is rejected rather than wiping the collection.
        """
        query_filter = build_filter(filters)
        if query_filter is None:
            raise ValidationError(
                message="delete_by_filter requires at least one filter clause", field="filters"
            )
        await self.init()

        operation_id = str(uuid.uuid4())
        start = time.perf_counter()
        logger.info("delete_by_filter_started", operation_id=operation_id, collection=collection)

        before = await self._call("count", collection, self._store.get_collection(collection))
        await self._call("delete", collection, self._store.delete(collection, query_filter, wait=True))
        if self._settings.delete_settle_delay > 0:
            await asyncio.sleep(self._settings.delete_settle_delay)
        after = await self._call("count", collection, self._store.get_collection(collection))

        deleted = max(0, before.points_count - after.points_count)
        result = DeleteResult(
            success=True,
            collection=collection,
            deleted_count=deleted,
            count_before=before.points_count,
            count_after=after.points_count,
            duration_ms=_elapsed_ms(start),
        )
        logger.info(
            "delete_by_filter_completed",
            operation_id=operation_id,
            collection=collection,
            deleted_count=deleted,
            duration_ms=result.duration_ms,
        )
        return result
