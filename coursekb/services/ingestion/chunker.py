"""Multi-strategy text chunking with token budgets.

Splits normalized document text into :class:`~coursekb.models.document.Chunk`
objects using one of four strategies:

1. **fixed** -- Slides a window of ``max_chunk_size`` tokens over the token
   stream, advancing by ``max_chunk_size - overlap_size``.  Windows may cut
   mid-sentence but together cover the whole text, and their positions are
   exact character spans.

2. **sentence** -- Packs whole sentences until the next one would overflow
   the budget, then starts a new chunk with that sentence.  Sentences are
   never split.

3. **paragraph** -- Packs whole paragraphs with the same overflow rule.  A
   paragraph that alone exceeds the budget is split with the sentence
   strategy.

4. **semantic** -- Packs sentences like the sentence strategy, but closes a
   chunk early at a section boundary (a heading, a sentence ending in ``:``,
   a following numbered or ALL-CAPS line) once it holds ``min_chunk_size``
   tokens, and seeds each chunk opened after an overflow with the trailing
   sentences of the previous one (up to ``overlap_size`` tokens) so that
   context spanning the cut is embedded twice.

Only a unit that alone exceeds ``max_chunk_size`` (one sentence, or one
paragraph under the paragraph strategy when its sentences cannot be split
further) produces an oversized chunk.

Positions for the non-fixed strategies are located after chunking and are
best-effort; see :class:`~coursekb.models.document.ChunkPosition`.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

import structlog

from coursekb.models.document import (
    Chunk,
    ChunkingConfig,
    ChunkPosition,
    ChunkStrategy,
    Document,
)
from coursekb.services.ingestion.tokenizer import SimpleTokenizer, Tokenizer
from coursekb.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = (
    "Dr",
    "Mr",
    "Mrs",
    "Ms",
    "Prof",
    "Jr",
    "Sr",
    "St",
    "vs",
    "etc",
    "approx",
    "dept",
    "est",
    "Fig",
    "fig",
    "al",
    "No",
    "Vol",
    "Ch",
    "Sec",
    "e.g",
    "i.e",
)
_ABBREVIATION_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(a) for a in _ABBREVIATIONS) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?]+[\"')\]]*(?:\s|$)")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_WHITESPACE_RE = re.compile(r"\s+")

# Lines that stand on their own rather than joining the surrounding prose.
_HEADING_RE = re.compile(r"^#{1,6}\s+\S")
_NUMBERED_RE = re.compile(r"^\d+[.)]")
_BULLET_RE = re.compile(r"^[-*\u2022]\s+")
_ALL_CAPS_RE = re.compile(r"^[A-Z][A-Z\s]+$")

_ANCHOR_WORDS = 5


def split_sentences(text: str) -> list[str]:
    """Split *text* at sentence boundaries while respecting abbreviations.

    Periods after known abbreviations are masked with ``\\x00`` (same
    length, so indices stay aligned with the original text) before
    matching sentence terminators.  A word-boundary regex does the masking
    so a word such as "Best." still ends a sentence despite "est.".
    """
    masked = _ABBREVIATION_RE.sub(lambda m: m.group().replace(".", "\x00"), text)

    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    # Trailing text that didn't end with punctuation.
    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences


@dataclass(frozen=True)
class _Draft:
    """A chunk before ids, indices and positions are assigned."""

    text: str
    metadata: dict
    span: tuple[int, int] | None = None


class ChunkingEngine:
    """Splits text into token-bounded chunks with a selectable strategy.

    Parameters
    ----------
    config:
        Default token budgets; a per-call ``config`` passed to :meth:`chunk`
        takes precedence.
    tokenizer:
        Token counter for every budget.  Defaults to :class:`SimpleTokenizer`.
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        self._config = self._validate(config or ChunkingConfig())
        self._tokenizer = tokenizer or SimpleTokenizer()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        strategy: ChunkStrategy | str = ChunkStrategy.SEMANTIC,
        config: ChunkingConfig | None = None,
        document_id: str | None = None,
    ) -> list[Chunk]:
        """Split *text* into chunks.

        Parameters
        ----------
        text:
            Normalized document text.
        strategy:
            One of ``fixed``, ``sentence``, ``paragraph``, ``semantic``.
        config:
            Optional per-call token budgets.
        document_id:
            Parent document id copied into every chunk.  A UUID is generated
            when omitted.

        Returns
        -------
        list[Chunk]
            Chunks in source order with indices ``0..N-1``.  Whitespace-only
            input returns an empty list; empty candidate chunks are dropped.
        """
        strategy = ChunkStrategy(strategy)
        cfg = self._validate(config) if config is not None else self._config
        doc_id = document_id or str(uuid.uuid4())

        if not text or not text.strip():
            return []

        if strategy is ChunkStrategy.FIXED:
            drafts = self._chunk_fixed(text, cfg)
        elif strategy is ChunkStrategy.SENTENCE:
            drafts = self._chunk_sentences(self._split_units(text), cfg)
        elif strategy is ChunkStrategy.PARAGRAPH:
            drafts = self._chunk_paragraphs(text, cfg)
        else:
            drafts = self._chunk_semantic(self._split_units(text), cfg)

        drafts = [d for d in drafts if d.text.strip()]
        locator = _PositionLocator(text)

        chunks: list[Chunk] = []
        for index, draft in enumerate(drafts):
            if draft.span is not None:
                position = ChunkPosition(start=draft.span[0], end=draft.span[1], match="exact")
            else:
                position = locator.locate(draft.text)
            chunks.append(
                Chunk(
                    id=str(uuid.uuid4()),
                    document_id=doc_id,
                    index=index,
                    text=draft.text,
                    token_count=self._tokenizer.count(draft.text),
                    strategy=strategy,
                    position=position,
                    metadata={
                        "sentence_count": len(self._split_sentences(draft.text)),
                        "word_count": len(draft.text.split()),
                        "method": strategy.value,
                        "tokenizer": self._tokenizer.get_name(),
                        **draft.metadata,
                    },
                )
            )

        logger.debug(
            "chunking_complete",
            document_id=doc_id,
            strategy=strategy.value,
            num_chunks=len(chunks),
            avg_tokens=self._avg_tokens(chunks),
            unmatched_positions=sum(1 for c in chunks if c.position.match == "none"),
        )
        return chunks

    def chunk_document(
        self,
        document: Document,
        strategy: ChunkStrategy | str = ChunkStrategy.SEMANTIC,
        config: ChunkingConfig | None = None,
    ) -> list[Chunk]:
        """Chunk ``document.text`` with ``document.id`` as the parent id."""
        return self.chunk(document.text, strategy, config, document_id=document.id)

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _chunk_fixed(self, text: str, cfg: ChunkingConfig) -> list[_Draft]:
        """Token windows with exact spans.

        Each span runs from its first token (0 for the first window) to the
        start of the token after its last one (``len(text)`` for the final
        window), so consecutive spans touch or overlap and their union is
        the whole text.
        """
        tokens = self._tokenizer.tokenize(text)
        if not tokens:
            return [_Draft(text=text.strip(), metadata={}, span=(0, len(text)))]

        step = cfg.max_chunk_size - cfg.overlap_size
        total = len(tokens)
        drafts: list[_Draft] = []
        for token_start in range(0, total, step):
            token_end = min(token_start + cfg.max_chunk_size, total)
            char_start = 0 if token_start == 0 else tokens[token_start].start
            char_end = len(text) if token_end == total else tokens[token_end].start
            drafts.append(
                _Draft(
                    text=text[char_start:char_end].strip(),
                    metadata={"token_start": token_start, "token_end": token_end},
                    span=(char_start, char_end),
                )
            )
            if token_end == total:
                break
        return drafts

    def _chunk_sentences(self, sentences: list[str], cfg: ChunkingConfig) -> list[_Draft]:
        """Greedy sentence packing; the overflowing sentence opens the next chunk."""
        drafts: list[_Draft] = []
        current: list[str] = []
        current_tokens = 0

        for sentence in sentences:
            sent_tokens = self._tokenizer.count(sentence)
            if current and current_tokens + sent_tokens > cfg.max_chunk_size:
                drafts.append(_Draft(text=" ".join(current), metadata={}))
                current = []
                current_tokens = 0
            current.append(sentence)
            current_tokens += sent_tokens

        if current:
            drafts.append(_Draft(text=" ".join(current), metadata={}))
        return drafts

    def _chunk_paragraphs(self, text: str, cfg: ChunkingConfig) -> list[_Draft]:
        """Greedy paragraph packing with sentence fallback for oversized paragraphs."""
        drafts: list[_Draft] = []
        current: list[str] = []
        current_tokens = 0

        def flush() -> None:
            nonlocal current, current_tokens
            if current:
                drafts.append(
                    _Draft(text="\n\n".join(current), metadata={"paragraph_count": len(current)})
                )
            current = []
            current_tokens = 0

        for para in self._split_paragraphs(text):
            para_tokens = self._tokenizer.count(para)

            if para_tokens > cfg.max_chunk_size:
                flush()
                for draft in self._chunk_sentences(self._split_units(para), cfg):
                    drafts.append(
                        _Draft(text=draft.text, metadata={"paragraph_count": 1, "split": "sentence"})
                    )
                continue

            if current and current_tokens + para_tokens > cfg.max_chunk_size:
                flush()

            current.append(para)
            current_tokens += para_tokens

        flush()
        return drafts

    def _chunk_semantic(self, sentences: list[str], cfg: ChunkingConfig) -> list[_Draft]:
        """Sentence packing with boundary-aware early closes and overlap re-seeding."""
        drafts: list[_Draft] = []
        current: list[tuple[str, int]] = []  # (sentence, token_count)
        current_tokens = 0
        overlap_count = 0

        def emit(reason: str) -> None:
            drafts.append(
                _Draft(
                    text=" ".join(s for s, _ in current),
                    metadata={"boundary": reason, "overlap_sentences": overlap_count},
                )
            )

        for i, sentence in enumerate(sentences):
            sent_tokens = self._tokenizer.count(sentence)

            if current and current_tokens + sent_tokens > cfg.max_chunk_size:
                emit("overflow")
                current, current_tokens = self._build_overlap(current, cfg.overlap_size)
                # The overlap must leave room for the sentence that overflowed.
                while current and current_tokens + sent_tokens > cfg.max_chunk_size:
                    current_tokens -= current.pop(0)[1]
                overlap_count = len(current)

            current.append((sentence, sent_tokens))
            current_tokens += sent_tokens

            next_sentence = sentences[i + 1] if i + 1 < len(sentences) else None
            if next_sentence is None:
                break
            if current_tokens >= cfg.min_chunk_size and self._is_boundary(sentence, next_sentence):
                emit("section")
                current = []
                current_tokens = 0
                overlap_count = 0

        if current:
            emit("end")
        return drafts

    @staticmethod
    def _build_overlap(
        parts: list[tuple[str, int]], overlap: int
    ) -> tuple[list[tuple[str, int]], int]:
        """Return tail sentences from *parts* whose combined tokens <= *overlap*."""
        overlap_parts: list[tuple[str, int]] = []
        overlap_tokens = 0
        for text, tok_count in reversed(parts):
            if overlap_tokens + tok_count > overlap:
                break
            overlap_parts.insert(0, (text, tok_count))
            overlap_tokens += tok_count
        return overlap_parts, overlap_tokens

    @staticmethod
    def _is_boundary(current: str, next_sentence: str) -> bool:
        """Return True when a section break falls between *current* and *next_sentence*."""
        if current.rstrip().endswith(":"):
            return True
        nxt = next_sentence.strip()
        return bool(
            _HEADING_RE.match(nxt)
            or re.match(r"^\d+\.", nxt)
            or _ALL_CAPS_RE.match(nxt)
        )

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split *text* on blank lines, discarding blanks."""
        parts = _PARAGRAPH_SPLIT_RE.split(text)
        return [p.strip() for p in parts if p.strip()]

    def _split_units(self, text: str) -> list[str]:
        """Split *text* into sentence units.

        Headings, list items, ALL-CAPS lines and lines ending in ``:`` become
        units of their own; consecutive prose lines are joined and split at
        sentence boundaries.
        """
        units: list[str] = []
        for para in self._split_paragraphs(text):
            prose: list[str] = []
            for raw_line in para.splitlines():
                line = raw_line.strip()
                if not line:
                    continue
                if self._is_standalone_line(line):
                    if prose:
                        units.extend(self._split_sentences(" ".join(prose)))
                        prose = []
                    units.append(line)
                else:
                    prose.append(line)
            if prose:
                units.extend(self._split_sentences(" ".join(prose)))
        return units

    @staticmethod
    def _is_standalone_line(line: str) -> bool:
        return bool(
            _HEADING_RE.match(line)
            or _NUMBERED_RE.match(line)
            or _BULLET_RE.match(line)
            or (len(line) > 1 and _ALL_CAPS_RE.match(line))
            or line.endswith(":")
        )

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        return split_sentences(text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(config: ChunkingConfig) -> ChunkingConfig:
        if config.overlap_size >= config.max_chunk_size:
            raise ConfigurationError(
                message=(
                    f"overlap_size ({config.overlap_size}) must be smaller than "
                    f"max_chunk_size ({config.max_chunk_size})"
                ),
                provider_name="chunker",
            )
        if config.min_chunk_size > config.max_chunk_size:
            raise ConfigurationError(
                message=(
                    f"min_chunk_size ({config.min_chunk_size}) exceeds "
                    f"max_chunk_size ({config.max_chunk_size})"
                ),
                provider_name="chunker",
            )
        return config

    @staticmethod
    def _avg_tokens(chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        return sum(c.token_count for c in chunks) // len(chunks)


class _PositionLocator:
    """Finds chunk text inside the source, ignoring whitespace differences.

    Both sides are whitespace-collapsed; ``_index_map[i]`` is the source
    offset of normalized character ``i``.  Lookup tries the whole chunk,
    then its first five words, then gives up with ``start=0``.  The anchor
    lookup returns the first occurrence, which is wrong when a chunk's
    leading words also appear earlier in the document.
    """

    def __init__(self, source: str) -> None:
        self._source = source
        chars: list[str] = []
        index_map: list[int] = []
        pending_space = False
        for offset, ch in enumerate(source):
            if ch.isspace():
                pending_space = bool(chars)
                continue
            if pending_space:
                chars.append(" ")
                index_map.append(offset - 1)
                pending_space = False
            chars.append(ch)
            index_map.append(offset)
        self._normalized = "".join(chars)
        self._index_map = index_map

    def locate(self, chunk_text: str) -> ChunkPosition:
        needle = _WHITESPACE_RE.sub(" ", chunk_text).strip()
        if not needle:
            return ChunkPosition(start=0, end=0, match="none")

        pos = self._normalized.find(needle)
        if pos >= 0:
            start = self._index_map[pos]
            end = self._index_map[pos + len(needle) - 1] + 1
            return ChunkPosition(start=start, end=end, match="exact")

        anchor = " ".join(needle.split(" ")[:_ANCHOR_WORDS])
        pos = self._normalized.find(anchor)
        if pos >= 0:
            start = self._index_map[pos]
            end = min(start + len(chunk_text), len(self._source))
            return ChunkPosition(start=start, end=end, match="anchor")

        return ChunkPosition(start=0, end=min(len(chunk_text), len(self._source)), match="none")
