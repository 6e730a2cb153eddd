"""Query-time retrieval: search mode dispatch, post-filtering and reranking.

The :class:`HybridRetriever` turns a query string into a ranked list of
chunks in four steps:

1. **Encode** -- use caller-supplied vectors or encode the query with the
   injected dense (``retrieval.query``) and sparse encoders.
2. **Search** -- ``semantic`` (dense only), ``keyword`` (sparse only) or
   ``hybrid`` (server-side fusion of whichever vectors are available).
3. **Post-filter** -- drop hits below ``min_quality`` or outside
   ``course_id`` according to their payload.
4. **Rerank** -- optionally re-score the survivors with a cross-encoder.
   A rerank failure falls back to the pre-rerank order.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from coursekb.config.settings import Settings
from coursekb.models.retrieval import RankedResult, RetrievalOptions
from coursekb.models.vector import ScoredPoint, SearchParams, SparseVector
from coursekb.utils.errors import ValidationError

if TYPE_CHECKING:
    from coursekb.interfaces.embedding_provider import IEmbeddingProvider
    from coursekb.interfaces.rerank_provider import IRerankProvider
    from coursekb.interfaces.sparse_encoder import ISparseEncoder
    from coursekb.services.vector.vector_ingestion_service import VectorIngestionService

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_RERANK_TOP_N = 10


class HybridRetriever:
    """Ranked chunk retrieval over a :class:`VectorIngestionService`.

    Parameters
    ----------
    vector_service:
        Executes the store queries.
    settings:
        Defaults for mode, fusion, limits and reranking.
    embedding_provider:
        Encodes query text into a dense vector when none is supplied.
    sparse_encoder:
        Encodes query text into a sparse vector when none is supplied.
    reranker:
        Optional cross-encoder; reranking is skipped without one.
    """

    def __init__(
        self,
        vector_service: VectorIngestionService,
        settings: Settings | None = None,
        embedding_provider: IEmbeddingProvider | None = None,
        sparse_encoder: ISparseEncoder | None = None,
        reranker: IRerankProvider | None = None,
    ) -> None:
        self._vectors = vector_service
        self._settings = settings or Settings()
        self._embedder = embedding_provider
        self._sparse = sparse_encoder
        self._reranker = reranker

    async def search(
        self,
        collection: str,
        query: str,
        options: RetrievalOptions | None = None,
    ) -> list[RankedResult]:
        """Retrieve chunks for *query* from *collection*.

        Raises
        ------
        ValidationError
            If the mode needs a vector that is neither supplied nor
            encodable, or hybrid mode has no vector at all.
        VectorStoreError
            If the store query fails.
        """
        options = options or RetrievalOptions()
        s = self._settings
        mode = options.search_mode or s.search_mode
        limit = options.limit or s.search_limit
        params = SearchParams(hnsw_ef=s.hnsw_ef, fusion_mode=options.fusion_mode or s.fusion_mode)

        start = time.perf_counter()
        if mode == "semantic":
            dense = await self._dense_for(query, options, required=True)
            hits = await self._vectors.search_similar(
                collection, dense, options.filters, limit, params
            )
        elif mode == "keyword":
            sparse = await self._sparse_for(query, options, required=True)
            hits = await self._vectors.keyword_search(
                collection, sparse, options.filters, limit, params
            )
        else:
            dense = await self._dense_for(query, options, required=False)
            sparse = await self._sparse_for(query, options, required=False)
            if dense is None and sparse is None:
                raise ValidationError(
                    message="Hybrid search requires at least one of dense or sparse vectors",
                    field="vectors",
                )
            hits = await self._vectors.hybrid_search(
                collection, dense, sparse, options.filters, limit, params
            )

        hits = self._post_filter(hits, options.min_quality, options.course_id)
        results = await self._maybe_rerank(query, hits, options)

        logger.info(
            "retrieval_completed",
            collection=collection,
            mode=mode,
            candidates=len(hits),
            results=len(results),
            reranked=any(r.relevance_score is not None for r in results),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return results

    # ------------------------------------------------------------------
    # Query encoding
    # ------------------------------------------------------------------

    async def _dense_for(
        self, query: str, options: RetrievalOptions, required: bool
    ) -> list[float] | None:
        if options.dense_vector:
            return list(options.dense_vector)
        if self._embedder is not None and query.strip():
            return await self._embedder.embed_query(query)
        if required:
            raise ValidationError(
                message="Semantic search needs a dense vector or an embedding provider",
                field="dense_vector",
            )
        return None

    async def _sparse_for(
        self, query: str, options: RetrievalOptions, required: bool
    ) -> SparseVector | None:
        if options.sparse_vector is not None and not options.sparse_vector.is_empty():
            return options.sparse_vector
        if self._sparse is not None and query.strip():
            encoded = await self._sparse.encode_query(query)
            if not encoded.is_empty():
                return encoded
        if required:
            raise ValidationError(
                message="Keyword search needs a sparse vector or a sparse encoder",
                field="sparse_vector",
            )
        return None

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    @staticmethod
    def _post_filter(
        hits: list[ScoredPoint],
        min_quality: float | None,
        course_id: str | None,
    ) -> list[ScoredPoint]:
        kept = hits
        if min_quality is not None:
            # A missing score counts as 0, same as the store-side range filter.
            kept = [h for h in kept if (h.payload.get("quality_score") or 0) >= min_quality]
        if course_id:
            kept = [h for h in kept if h.payload.get("course_id") == course_id]
        return kept

    async def _maybe_rerank(
        self,
        query: str,
        hits: list[ScoredPoint],
        options: RetrievalOptions,
    ) -> list[RankedResult]:
        enabled = (
            self._settings.enable_reranking
            if options.enable_reranking is None
            else options.enable_reranking
        )
        if not enabled or self._reranker is None or len(hits) <= 1:
            return _ranked(hits)

        top_n = options.final_top_k or min(_DEFAULT_RERANK_TOP_N, len(hits))
        documents = [str(h.payload.get("text", "")) for h in hits]
        try:
            verdicts = await self._reranker.rerank(query, documents, top_n=top_n)
        except Exception as exc:
            logger.warning(
                "rerank_failed_fallback",
                provider=self._reranker.get_provider_name(),
                error=str(exc),
                candidates=len(hits),
            )
            return _ranked(hits[:top_n])

        results: list[RankedResult] = []
        for verdict in sorted(verdicts, key=lambda v: v.relevance_score, reverse=True)[:top_n]:
            if verdict.index >= len(hits):
                continue
            hit = hits[verdict.index]
            results.append(
                RankedResult(
                    id=hit.id,
                    rank=len(results) + 1,
                    score=hit.score,
                    relevance_score=verdict.relevance_score,
                    original_index=verdict.index,
                    payload=hit.payload,
                )
            )
        return results


def _ranked(hits: list[ScoredPoint]) -> list[RankedResult]:
    return [
        RankedResult(id=h.id, rank=i, score=h.score, original_index=i - 1, payload=h.payload)
        for i, h in enumerate(hits, start=1)
    ]
