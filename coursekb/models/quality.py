"""Quality report data models.

One :class:`QualityReport` is produced per document-processing run by
:class:`~coursekb.services.ingestion.quality_assessor.QualityAssessor`.
Every score field is bounded to ``[0, 100]`` at the model level so an
out-of-range value fails loudly instead of leaking into stored payloads.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high"]


class ReadabilityMetrics(BaseModel):
    """Raw grade-level and ease metrics behind the readability score."""

    model_config = ConfigDict(frozen=True)

    flesch_kincaid_grade: float = 0.0
    gunning_fog: float = 0.0
    smog_index: float = 0.0
    automated_readability_index: float = 0.0
    coleman_liau_index: float = 0.0
    flesch_reading_ease: float = 0.0
    average_grade: float = 0.0


class ReadabilityResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    level: str = Field(description='e.g. "standard", "difficult"; "unknown" on failure.')
    metrics: ReadabilityMetrics | None = None
    error: str | None = Field(default=None, description="Failure reason when level is unknown.")


class CoherenceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    per_chunk_scores: list[float] = Field(
        default_factory=list,
        description="Jaccard similarity (0-1) of each adjacent chunk pair, in order.",
    )
    interpretation: str = ""


class ChunkDistribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    total_tokens: int = 0
    average_chunk_size: float = 0.0
    min_chunk_size: int = 0
    max_chunk_size: int = 0
    std_dev: float = 0.0
    uniformity: float = Field(default=0.0, ge=0.0, le=1.0)


class CompletenessResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    coverage: float = Field(ge=0.0, description="Chunk characters / document characters x 100.")
    distribution: ChunkDistribution = Field(default_factory=ChunkDistribution)


class QualityIssue(BaseModel):
    """A structural error detected in the raw document text."""

    model_config = ConfigDict(frozen=True)

    type: Literal["encoding", "formatting", "truncation", "duplication"]
    severity: Severity
    message: str


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    area: str
    priority: Severity
    suggestion: str


class QualityReport(BaseModel):
    """Aggregated quality assessment for one document and its chunks."""

    model_config = ConfigDict(frozen=True)

    readability: ReadabilityResult
    coherence: CoherenceResult
    completeness: CompletenessResult
    errors: list[QualityIssue] = Field(default_factory=list)
    overall_score: float = Field(ge=0.0, le=100.0)
    recommendations: list[Recommendation] = Field(default_factory=list)
