"""Orchestrator for turning extracted text into stored, searchable chunks.

Pipeline stages: **preprocess -> chunk -> assess -> embed -> store**.

:class:`DocumentPipeline` coordinates the collaborators without any of them
knowing about each other:

    1. DocumentPreprocessor -- sanitizes text, detects language, extracts
       title / key phrases / structure
    2. ChunkingEngine -- splits the text with the selected strategy
    3. QualityAssessor -- scores readability, coherence and completeness
    4. IEmbeddingProvider (+ optional ISparseEncoder) -- encodes chunk text
    5. VectorIngestionService -- writes versioned chunk payloads in batches

``process`` runs stages 1-3 only and is what the CLI ``analyze`` command
uses.  ``ingest`` runs all five; ``ingest_many`` runs several documents
concurrently under a semaphore.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

from coursekb.config.settings import Settings
from coursekb.models.document import ChunkingConfig, ChunkStrategy
from coursekb.models.pipeline import DocumentIngestResult, ProcessingResult, SourceDocument
from coursekb.models.vector import BatchConfig, ChunkPayload, SparseVector, VectorPoint
from coursekb.services.ingestion.chunker import ChunkingEngine
from coursekb.services.ingestion.preprocessor import DocumentPreprocessor
from coursekb.services.ingestion.quality_assessor import QualityAssessor
from coursekb.services.ingestion.tokenizer import build_tokenizer
from coursekb.utils.concurrency import throttled_gather
from coursekb.utils.errors import EmbeddingError

if TYPE_CHECKING:
    from coursekb.interfaces.embedding_provider import IEmbeddingProvider
    from coursekb.interfaces.sparse_encoder import ISparseEncoder
    from coursekb.services.vector.vector_ingestion_service import VectorIngestionService

logger = structlog.get_logger(logger_name=__name__)


class DocumentPipeline:
    """Preprocess, chunk, assess and (optionally) store documents.

    Parameters
    ----------
    vector_service:
        Destination for embedded chunks.  Only needed by :meth:`ingest`.
    embedding_provider:
        Dense encoder for chunk text.  Only needed by :meth:`ingest`.
    settings:
        Chunking defaults and the sparse-vector switch.
    sparse_encoder:
        Optional keyword encoder; when present every point also carries a
        sparse vector.
    chunker, preprocessor, assessor:
        Override the default stage implementations (mainly for tests).
    """

    def __init__(
        self,
        vector_service: VectorIngestionService | None = None,
        embedding_provider: IEmbeddingProvider | None = None,
        settings: Settings | None = None,
        sparse_encoder: ISparseEncoder | None = None,
        chunker: ChunkingEngine | None = None,
        preprocessor: DocumentPreprocessor | None = None,
        assessor: QualityAssessor | None = None,
    ) -> None:
        self._settings = settings or Settings()
        s = self._settings
        self._vectors = vector_service
        self._embedder = embedding_provider
        self._sparse = sparse_encoder
        self._chunker = chunker or ChunkingEngine(
            ChunkingConfig(
                max_chunk_size=s.max_chunk_size,
                min_chunk_size=s.min_chunk_size,
                overlap_size=s.overlap_size,
            ),
            tokenizer=build_tokenizer(s),
        )
        self._preprocessor = preprocessor or DocumentPreprocessor()
        self._assessor = assessor or QualityAssessor()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def process(
        self,
        text: str,
        document_id: str,
        metadata: dict[str, Any] | None = None,
        strategy: ChunkStrategy | str | None = None,
        config: ChunkingConfig | None = None,
    ) -> ProcessingResult:
        """Preprocess, chunk and quality-assess one document.

        Raises
        ------
        ValidationError
            If *text* is empty or whitespace-only.
        ConfigurationError
            If *config* has ``overlap_size >= max_chunk_size``.
        """
        start = time.perf_counter()
        strategy = ChunkStrategy(strategy or self._settings.chunking_strategy)

        document = self._preprocessor.preprocess(text, document_id, metadata)
        chunks = self._chunker.chunk_document(document, strategy, config)
        report = self._assessor.assess(document, chunks)

        elapsed = time.perf_counter() - start
        logger.info(
            "document_processed",
            document_id=document_id,
            strategy=strategy.value,
            chunks=len(chunks),
            overall_score=report.overall_score,
            duration_ms=round(elapsed * 1000, 2),
        )
        return ProcessingResult(
            document=document,
            chunks=chunks,
            report=report,
            processing_time=elapsed,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        text: str,
        document_id: str,
        collection: str,
        course_id: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        strategy: ChunkStrategy | str | None = None,
        quality_threshold: float | None = None,
        batch_config: BatchConfig | None = None,
    ) -> DocumentIngestResult:
        """Process one document and store its chunks in *collection*.

        The collection is created on first use with the embedding
        provider's dimension.  Documents whose overall quality score is
        below *quality_threshold* are skipped without touching the store.
        """
        if self._vectors is None or self._embedder is None:
            raise RuntimeError("ingest requires a vector service and an embedding provider")

        start = time.perf_counter()
        processed = self.process(text, document_id, metadata, strategy)
        score = processed.report.overall_score

        def _skip(reason: str) -> DocumentIngestResult:
            logger.info("document_skipped", document_id=document_id, reason=reason)
            return DocumentIngestResult(
                document_id=document_id,
                collection=collection,
                quality_score=score,
                skipped=True,
                skip_reason=reason,
                ingestion_time=time.perf_counter() - start,
            )

        if quality_threshold is not None and score < quality_threshold:
            return _skip(f"quality score {score:.2f} below threshold {quality_threshold:.2f}")
        if not processed.chunks:
            return _skip("no chunks produced")

        await self._vectors.create_collection(
            collection, {"vector_size": self._embedder.get_dimension()}
        )
        points = await self._build_points(processed, course_id, resource_id, metadata)
        insert = await self._vectors.insert_vectors(collection, points, batch_config)

        result = DocumentIngestResult(
            document_id=document_id,
            collection=collection,
            chunks_created=len(processed.chunks),
            total_tokens=processed.total_tokens,
            quality_score=score,
            insert=insert,
            ingestion_time=time.perf_counter() - start,
        )
        logger.info(
            "document_ingested",
            document_id=document_id,
            collection=collection,
            chunks=result.chunks_created,
            failed_batches=insert.failed_batches,
            duration_ms=round(result.ingestion_time * 1000, 2),
        )
        return result

    async def _build_points(
        self,
        processed: ProcessingResult,
        course_id: str | None,
        resource_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> list[VectorPoint]:
        chunks = processed.chunks
        document = processed.document
        texts = [c.text for c in chunks]

        dense = await self._embedder.embed(texts, task="retrieval.passage")
        if len(dense) != len(chunks):
            raise EmbeddingError(
                message=f"Expected {len(chunks)} embeddings, got {len(dense)}",
                provider_name=self._embedder.get_provider_name(),
            )

        sparse: list[SparseVector | None] = [None] * len(chunks)
        if self._sparse is not None and self._settings.enable_sparse_vectors:
            encoded = await self._sparse.encode(texts)
            if len(encoded) != len(chunks):
                raise EmbeddingError(
                    message=f"Expected {len(chunks)} sparse vectors, got {len(encoded)}",
                    provider_name=self._sparse.get_provider_name(),
                )
            sparse = list(encoded)

        points: list[VectorPoint] = []
        for chunk, vector, sparse_vector in zip(chunks, dense, sparse):
            payload = ChunkPayload(
                document_id=document.id,
                chunk_id=chunk.id,
                chunk_index=chunk.index,
                total_chunks=len(chunks),
                course_id=course_id,
                resource_id=resource_id,
                title=document.metadata.get("title"),
                text=chunk.text,
                language=document.language,
                quality_score=processed.report.overall_score,
                token_count=chunk.token_count,
                strategy=chunk.strategy.value,
                embedding_model=self._embedder.get_provider_name(),
                extra={
                    **(metadata or {}),
                    "position": chunk.position.model_dump(),
                },
            )
            points.append(
                VectorPoint(
                    id=chunk.id,
                    vector=vector,
                    sparse_vector=sparse_vector,
                    payload=payload.to_payload(),
                )
            )
        return points

    async def ingest_many(
        self,
        documents: list[SourceDocument],
        collection: str,
        course_id: str | None = None,
        quality_threshold: float | None = None,
        max_concurrent: int | None = None,
    ) -> list[DocumentIngestResult]:
        """Ingest *documents* concurrently; one failure does not stop the others.

        At most *max_concurrent* documents (default ``max_concurrent_batches``)
        are in flight.  Failed documents come back with ``skipped=True`` and
        ``error`` set.
        """
        semaphore = asyncio.Semaphore(max_concurrent or self._settings.max_concurrent_batches)
        outcomes = await throttled_gather(
            [
                self.ingest(
                    doc.text,
                    doc.id,
                    collection,
                    course_id=course_id,
                    resource_id=doc.metadata.get("resource_id"),
                    metadata=doc.metadata,
                    quality_threshold=quality_threshold,
                )
                for doc in documents
            ],
            semaphore,
        )

        results: list[DocumentIngestResult] = []
        for doc, outcome in zip(documents, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("document_ingest_failed", document_id=doc.id, error=str(outcome))
                results.append(
                    DocumentIngestResult(
                        document_id=doc.id,
                        collection=collection,
                        skipped=True,
                        skip_reason="ingestion failed",
                        error=str(outcome),
                    )
                )
            else:
                results.append(outcome)
        return results
