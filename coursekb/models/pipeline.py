"""Document pipeline result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coursekb.models.document import Chunk, Document
from coursekb.models.quality import QualityReport
from coursekb.models.vector import InsertResult


class SourceDocument(BaseModel):
    """Raw text handed over by the extraction service."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProcessingResult(BaseModel):
    """Output of preprocess -> chunk -> assess for one document."""

    model_config = ConfigDict(frozen=True)

    document: Document
    chunks: list[Chunk] = Field(default_factory=list)
    report: QualityReport
    processing_time: float = Field(default=0.0, ge=0.0, description="Seconds.")

    @property
    def total_tokens(self) -> int:
        return sum(c.token_count for c in self.chunks)


class DocumentIngestResult(BaseModel):
    """Summary of ingesting one document into a collection."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    collection: str
    chunks_created: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    skipped: bool = False
    skip_reason: str | None = None
    error: str | None = Field(default=None, description="Set when ingestion raised.")
    insert: InsertResult | None = None
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Seconds.")
