"""Document and chunk data models.

A :class:`Document` is the normalized text of one uploaded file or web page
together with its detected language and structural counts.  The chunking
engine turns it into an ordered list of :class:`Chunk` objects whose
``index`` values run densely from ``0`` to ``N-1``.

All models use frozen config: a document is immutable once chunked, and a
chunk is immutable once emitted.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChunkStrategy(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Segmentation strategy used to produce a chunk."""

    FIXED = "fixed"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    SEMANTIC = "semantic"


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------
class DocumentStructure(BaseModel):
    """Structural counts computed during preprocessing."""

    model_config = ConfigDict(frozen=True)

    total_lines: int = Field(default=0, ge=0)
    paragraphs: int = Field(default=0, ge=0)
    sentences: int = Field(default=0, ge=0)
    headings: int = Field(default=0, ge=0)
    lists: int = Field(default=0, ge=0, description="Number of bullet or numbered list items.")
    code_blocks: int = Field(default=0, ge=0)


class Document(BaseModel):
    """A normalized source document ready for chunking."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Identifier supplied by the extraction service.")
    text: str = Field(description="Normalized document text.")
    language: str = Field(default="en", description="ISO 639-1 language code.")
    structure: DocumentStructure = Field(default_factory=DocumentStructure)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Arbitrary key/value metadata (title, course_id, key_phrases, ...).",
    )


# ---------------------------------------------------------------------------
# Chunk
# ---------------------------------------------------------------------------
class ChunkPosition(BaseModel):
    """Character span of a chunk inside its source text.

    Positions for the ``fixed`` strategy are exact.  For every other
    strategy they are located after the fact and are best-effort only:
    ``match`` records whether the whole chunk was found (``"exact"``),
    only its first five words were found (``"anchor"``), or nothing matched
    and ``start`` defaulted to 0 (``"none"``).  An anchor match can land on
    an earlier occurrence when the chunk's leading words repeat in the
    document.
    """

    model_config = ConfigDict(frozen=True)

    start: int = Field(default=0, ge=0)
    end: int = Field(default=0, ge=0)
    match: Literal["exact", "anchor", "none"] = "exact"


class Chunk(BaseModel):
    """A bounded contiguous span of a document's text sized for embedding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID) for this chunk.")
    document_id: str = Field(description="Identifier of the parent document.")
    index: int = Field(ge=0, description="0-based position of the chunk within its document.")
    text: str = Field(description="The chunk's textual content.")
    token_count: int = Field(default=0, ge=0)
    strategy: ChunkStrategy
    position: ChunkPosition = Field(default_factory=ChunkPosition)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="sentence_count, word_count and strategy-specific fields.",
    )


class ChunkingConfig(BaseModel):
    """Token budgets for the chunking engine.

    Validated by :class:`~coursekb.services.ingestion.chunker.ChunkingEngine`,
    which rejects ``overlap_size >= max_chunk_size``.
    """

    model_config = ConfigDict(frozen=True)

    max_chunk_size: int = Field(default=1000, ge=1, description="Token budget per chunk.")
    min_chunk_size: int = Field(
        default=100,
        ge=0,
        description="Semantic strategy closes early at a boundary only after this many tokens.",
    )
    overlap_size: int = Field(default=50, ge=0, description="Token budget for overlap windows.")
