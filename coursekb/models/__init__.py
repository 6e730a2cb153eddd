"""Pydantic v2 data models for coursekb.

- **document** -- Document, Chunk, ChunkPosition, ChunkStrategy, ChunkingConfig.
- **quality** -- QualityReport and its readability/coherence/completeness parts.
- **vector** -- points, payload schema, filters, collection config and
  operation results shared by every vector store adapter.
- **retrieval** -- RetrievalOptions and RankedResult for the hybrid retriever.
- **pipeline** -- SourceDocument, ProcessingResult and DocumentIngestResult from the
  document pipeline.
"""

from coursekb.models.document import (
    Chunk,
    ChunkingConfig,
    ChunkPosition,
    ChunkStrategy,
    Document,
    DocumentStructure,
)
from coursekb.models.pipeline import DocumentIngestResult, ProcessingResult, SourceDocument
from coursekb.models.quality import (
    CoherenceResult,
    CompletenessResult,
    QualityIssue,
    QualityReport,
    ReadabilityResult,
    Recommendation,
)
from coursekb.models.retrieval import RankedResult, RerankHit, RetrievalOptions
from coursekb.models.vector import (
    BatchConfig,
    BatchError,
    ChunkPayload,
    CollectionConfig,
    CollectionInfo,
    CreateCollectionResult,
    DeleteResult,
    InsertResult,
    PointFilter,
    ScoredPoint,
    SearchFilters,
    SearchParams,
    SparseVector,
    VectorPoint,
)

__all__ = [
    "BatchConfig",
    "BatchError",
    "Chunk",
    "ChunkPayload",
    "ChunkPosition",
    "ChunkStrategy",
    "ChunkingConfig",
    "CoherenceResult",
    "CollectionConfig",
    "CollectionInfo",
    "CompletenessResult",
    "CreateCollectionResult",
    "DeleteResult",
    "Document",
    "DocumentIngestResult",
    "DocumentStructure",
    "InsertResult",
    "PointFilter",
    "ProcessingResult",
    "QualityIssue",
    "QualityReport",
    "RankedResult",
    "ReadabilityResult",
    "Recommendation",
    "RerankHit",
    "RetrievalOptions",
    "ScoredPoint",
    "SearchFilters",
    "SearchParams",
    "SourceDocument",
    "SparseVector",
    "VectorPoint",
]
