"""Vector store data models.

Backend-neutral shapes shared by the vector ingestion service, the hybrid
retriever and every :class:`~coursekb.interfaces.vector_store_client.IVectorStoreClient`
adapter.  Adapters translate these into their client library's own types
(e.g. ``qdrant_client.models``) at the boundary so services never import a
specific backend.

Stored payloads follow a versioned schema (:class:`ChunkPayload`): a fixed
set of recognised top-level keys, used for filtering and provenance, plus an
``extra`` bag for anything else.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

PointId = Union[int, str]
Distance = Literal["Cosine", "Euclid", "Dot", "Manhattan"]
FusionMode = Literal["rrf", "dbsf"]
SearchMode = Literal["semantic", "keyword", "hybrid"]

DENSE_VECTOR_NAME = "default"
SPARSE_VECTOR_NAME = "sparse"
PAYLOAD_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------
class SparseVector(BaseModel):
    """Index/value pairs for keyword-style (lexical) similarity."""

    model_config = ConfigDict(frozen=True)

    indices: list[int] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_lengths(self) -> SparseVector:
        if len(self.indices) != len(self.values):
            raise ValueError("sparse vector indices and values must have equal length")
        return self

    def is_empty(self) -> bool:
        return not self.indices


class VectorPoint(BaseModel):
    """A point to be written to a collection.

    ``id`` may be any int or string; the ingestion service rewrites
    non-UUID strings before the point reaches the store.
    """

    model_config = ConfigDict(frozen=True)

    id: PointId
    vector: list[float]
    sparse_vector: SparseVector | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class ScoredPoint(BaseModel):
    """A point returned by a search, with its similarity or fusion score."""

    model_config = ConfigDict(frozen=True)

    id: PointId
    score: float
    payload: dict[str, Any] = Field(default_factory=dict)
    vector: list[float] | None = None


class ChunkPayload(BaseModel):
    """Versioned payload stored with every chunk point.

    Top-level keys are the ones the filter builder and payload indexes know
    about.  Unrecognised keys round-trip through ``extra``.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = PAYLOAD_SCHEMA_VERSION
    document_id: str
    chunk_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int | None = None
    course_id: str | None = None
    resource_id: str | None = None
    title: str | None = None
    text: str = ""
    language: str | None = None
    quality_score: float | None = None
    token_count: int = 0
    strategy: str | None = None
    embedding_model: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Flatten into the dict stored in the vector store, dropping ``None`` values."""
        data = self.model_dump(exclude={"extra"}, exclude_none=True)
        if self.extra:
            data["extra"] = dict(self.extra)
        return data

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChunkPayload:
        """Rebuild from a stored payload; unknown keys land in ``extra``."""
        known = set(cls.model_fields) - {"extra"}
        fields = {k: v for k, v in payload.items() if k in known}
        extra = dict(payload.get("extra") or {})
        extra.update({k: v for k, v in payload.items() if k not in known and k != "extra"})
        return cls(**fields, extra=extra)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------
class MatchClause(BaseModel):
    """Exact match on a payload key (list payloads match if they contain the value)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["match"] = "match"
    key: str
    value: str | int | bool


class MatchAnyClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["match_any"] = "match_any"
    key: str
    any: list[str | int]


class RangeClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["range"] = "range"
    key: str
    gte: float | None = None
    lte: float | None = None
    gt: float | None = None
    lt: float | None = None


class DatetimeRangeClause(BaseModel):
    """Range over an ISO-8601 timestamp payload value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["datetime_range"] = "datetime_range"
    key: str
    gte: datetime | None = None
    lte: datetime | None = None


FilterClause = Annotated[
    Union[MatchClause, MatchAnyClause, RangeClause, DatetimeRangeClause],
    Field(discriminator="kind"),
]


class PointFilter(BaseModel):
    """Conjunction of clauses; a point must satisfy every one."""

    model_config = ConfigDict(frozen=True)

    must: list[FilterClause] = Field(default_factory=list)


class SearchFilters(BaseModel):
    """Caller-facing filter options, compiled by ``build_filter``."""

    model_config = ConfigDict(frozen=True)

    course_id: str | None = None
    resource_ids: list[str] | None = None
    min_quality: float | None = None
    max_quality: float | None = None
    language: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    custom: list[FilterClause] = Field(default_factory=list)


class SearchParams(BaseModel):
    """Per-query tuning knobs passed through to the store."""

    model_config = ConfigDict(frozen=True)

    include_vectors: bool = False
    hnsw_ef: int = 128
    exact: bool = False
    fusion_mode: FusionMode = "rrf"
    dense_limit: int | None = Field(default=None, ge=1)
    sparse_limit: int | None = Field(default=None, ge=1)


class Prefetch(BaseModel):
    """One sub-query of a fused hybrid query."""

    model_config = ConfigDict(frozen=True)

    using: str
    dense: list[float] | None = None
    sparse: SparseVector | None = None
    limit: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
class HnswConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    m: int = 16
    ef_construct: int = 100
    on_disk: bool = False


class OptimizerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    indexing_threshold: int = 20000
    memmap_threshold: int = 50000


class PayloadIndexSpec(BaseModel):
    """A payload index to create on a collection."""

    model_config = ConfigDict(frozen=True)

    field_name: str
    schema_type: Literal["keyword", "integer", "float", "bool", "datetime", "text"]
    # Text index options, ignored for other schema types.
    tokenizer: Literal["word", "whitespace", "prefix"] = "word"
    min_token_len: int = 2
    max_token_len: int = 20
    lowercase: bool = True


DEFAULT_PAYLOAD_INDEXES: tuple[PayloadIndexSpec, ...] = (
    PayloadIndexSpec(field_name="course_id", schema_type="keyword"),
    PayloadIndexSpec(field_name="resource_id", schema_type="keyword"),
    PayloadIndexSpec(field_name="quality_score", schema_type="float"),
    PayloadIndexSpec(field_name="language", schema_type="keyword"),
    PayloadIndexSpec(field_name="chunk_index", schema_type="integer"),
    PayloadIndexSpec(field_name="title", schema_type="text"),
)


class CollectionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    vector_size: int = Field(default=1024, ge=1)
    distance: Distance = "Cosine"
    hnsw: HnswConfig = Field(default_factory=HnswConfig)
    optimizers: OptimizerConfig = Field(default_factory=OptimizerConfig)
    sparse_vectors: bool = True
    payload_indexes: list[PayloadIndexSpec] = Field(
        default_factory=list,
        description="Custom indexes created in addition to the defaults.",
    )


class CollectionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    status: Literal["active", "archived", "error"] = "active"
    vector_size: int | None = None
    distance: str | None = None
    points_count: int = 0
    indexed_vectors_count: int | None = None
    payload_indexes: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------
class BatchConfig(BaseModel):
    """Insert-time batching knobs; unset fields fall back to Settings."""

    model_config = ConfigDict(frozen=True)

    max_batch_size: int | None = Field(default=None, ge=1, le=10000)
    max_concurrent_batches: int | None = Field(default=None, ge=1)
    wait_for_indexing: bool | None = None
    expected_dimension: int | None = Field(
        default=None,
        ge=1,
        description="Reject vectors whose length differs, before any network call.",
    )


class CreateCollectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    collection: str
    existed: bool = False
    config: CollectionConfig | None = None
    indexes_created: list[str] = Field(default_factory=list)
    index_errors: list[dict[str, str]] = Field(default_factory=list)


class BatchError(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_index: int
    error: str
    point_count: int = 0


class InsertResult(BaseModel):
    """Outcome of one ``insert_vectors`` call.

    Partial success is expected: check ``failed_batches`` (or ``success``)
    and retry the batches listed in ``errors``.
    """

    model_config = ConfigDict(frozen=True)

    operation_id: str
    collection: str
    total_vectors: int
    total_batches: int
    successful_batches: int
    failed_batches: int
    errors: list[BatchError] = Field(default_factory=list)
    point_ids: list[PointId] = Field(
        default_factory=list,
        description="Stored IDs of points in successful batches, in input order.",
    )
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_batches == 0


class DeleteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    collection: str
    deleted_count: int
    count_before: int
    count_after: int
    duration_ms: float = 0.0
