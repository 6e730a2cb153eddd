"""Query-time models for the hybrid retriever."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coursekb.models.vector import (
    ChunkPayload,
    FusionMode,
    PointId,
    SearchFilters,
    SearchMode,
    SparseVector,
)


class RetrievalOptions(BaseModel):
    """Options for one :meth:`HybridRetriever.search` call.

    Unset fields fall back to the retriever's Settings.  ``dense_vector``
    and ``sparse_vector`` may be supplied pre-computed; otherwise the
    retriever encodes the query text with its injected encoders.
    """

    model_config = ConfigDict(frozen=True)

    search_mode: SearchMode | None = None
    fusion_mode: FusionMode | None = None
    limit: int | None = Field(default=None, ge=1)
    min_quality: float | None = None
    course_id: str | None = None
    enable_reranking: bool | None = None
    final_top_k: int | None = Field(default=None, ge=1)
    filters: SearchFilters | None = Field(
        default=None,
        description="Store-side filters applied inside the vector query.",
    )
    dense_vector: list[float] | None = None
    sparse_vector: SparseVector | None = None


class RankedResult(BaseModel):
    """One retrieval hit in final ranked order."""

    model_config = ConfigDict(frozen=True)

    id: PointId
    rank: int = Field(ge=1)
    score: float = Field(description="Store score (similarity or fusion).")
    relevance_score: float | None = Field(
        default=None, description="Reranker score, when reranking ran."
    )
    original_index: int | None = Field(
        default=None, description="Position in the pre-rerank candidate list."
    )
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))

    def as_chunk_payload(self) -> ChunkPayload:
        return ChunkPayload.from_payload(self.payload)


class RerankHit(BaseModel):
    """A single reranker verdict: the candidate's position and its new score."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    relevance_score: float
