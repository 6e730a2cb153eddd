"""Document preprocessing: sanitization, metadata and structure analysis.

Turns extracted text (``{id, text, metadata}`` from the upstream file/URL
extraction service) into a normalized :class:`~coursekb.models.document.Document`
ready for chunking.

Steps, in order:

1. **Special characters** -- non-breaking spaces, zero-width characters,
   BOMs and Unicode line/paragraph separators.
2. **Sanitize** -- null bytes and control characters removed, typographic
   quotes and dashes mapped to ASCII, runs of spaces/tabs collapsed.
   Paragraph breaks are kept because the paragraph and semantic chunking
   strategies depend on them.
3. **Deduplicate** -- repeated paragraphs (case-insensitive, longer than
   20 characters) are dropped after their first occurrence.
4. **Metadata** -- title, language, word/character counts, reading time
   and key phrases.
5. **Structure** -- line, paragraph, sentence, heading, list and code-block
   counts.
"""

from __future__ import annotations

import hashlib
import math
import re
from collections import Counter
from typing import Any

import structlog
from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from coursekb.models.document import Document, DocumentStructure
from coursekb.services.ingestion.chunker import split_sentences
from coursekb.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

# Deterministic language detection across runs.
DetectorFactory.seed = 0

_DEFAULT_LANGUAGE = "en"
_LANGUAGE_SAMPLE_CHARS = 1000
_WORDS_PER_MINUTE = 200
_DEDUPE_MIN_CHARS = 20
_KEY_PHRASE_LIMIT = 10

_SPECIAL_CHARS = str.maketrans(
    {
        "\u00a0": " ",
        "\u200b": "",
        "\u200c": "",
        "\u200d": "",
        "\ufeff": "",
        "\u2028": "\n",
        "\u2029": "\n\n",
    }
)
_TYPOGRAPHY = str.maketrans(
    {
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\u2013": "-",
        "\u2014": "-",
    }
)

# Control characters except \t, \n and \r.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_MULTI_SPACE = re.compile(r"[ \t]+")
_TRAILING_SPACE = re.compile(r"[ \t]+\n")
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

_HEADING_LINE = re.compile(r"^#+\s|^[A-Z][^.!?]*:$")
_LIST_LINE = re.compile(r"^[-*+]\s|^\d+\.\s")
_WORD = re.compile(r"[A-Za-z][A-Za-z'-]+")

_STOP_WORDS = frozenset(
    {
        "the", "be", "to", "of", "and", "a", "in", "that", "have", "i", "it",
        "for", "not", "on", "with", "he", "as", "you", "do", "at", "this",
        "but", "his", "by", "from", "they", "we", "say", "her", "she", "or",
        "an", "will", "my", "one", "all", "would", "there", "their", "what",
        "so", "up", "out", "if", "about", "who", "get", "which", "go", "me",
        "when", "make", "can", "like", "time", "no", "just", "him", "know",
        "take", "into", "your", "some", "could", "them", "than", "then",
        "now", "only", "its", "also", "after", "use", "how", "our", "these",
        "those", "been", "were", "was", "are", "is", "has", "had", "such",
        "each", "more", "most", "other", "very", "should", "may", "must",
    }
)


class DocumentPreprocessor:
    """Normalizes raw extracted text into a :class:`Document`."""

    def preprocess(
        self,
        text: str,
        document_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> Document:
        """Sanitize *text* and attach language, metadata and structure.

        Raises
        ------
        ValidationError
            If *text* is empty, or nothing remains after sanitization.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError(
                message=f"Document {document_id!r} has no text content",
                provider_name="preprocessor",
                field="text",
            )

        cleaned = self.deduplicate_paragraphs(self.sanitize(self.handle_special_characters(text)))
        if not cleaned:
            raise ValidationError(
                message=f"Document {document_id!r} is empty after sanitization",
                provider_name="preprocessor",
                field="text",
            )

        language = self.detect_language(cleaned)
        doc_metadata = dict(metadata or {})
        doc_metadata.update(self.extract_metadata(cleaned, title=doc_metadata.get("title")))
        structure = self.analyze_structure(cleaned)

        logger.info(
            "document_preprocessed",
            document_id=document_id,
            original_length=len(text),
            sanitized_length=len(cleaned),
            language=language,
            paragraphs=structure.paragraphs,
        )
        return Document(
            id=document_id,
            text=cleaned,
            language=language,
            structure=structure,
            metadata=doc_metadata,
        )

    # ------------------------------------------------------------------
    # Cleaning
    # ------------------------------------------------------------------

    @staticmethod
    def handle_special_characters(text: str) -> str:
        return text.translate(_SPECIAL_CHARS)

    @staticmethod
    def sanitize(text: str) -> str:
        cleaned = text.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")
        cleaned = _CONTROL_CHARS.sub("", cleaned)
        cleaned = cleaned.translate(_TYPOGRAPHY)
        cleaned = _MULTI_SPACE.sub(" ", cleaned)
        cleaned = _TRAILING_SPACE.sub("\n", cleaned)
        cleaned = _MULTI_NEWLINE.sub("\n\n", cleaned)
        return cleaned.strip()

    @staticmethod
    def deduplicate_paragraphs(text: str) -> str:
        """Drop repeated paragraphs; short ones (headings, labels) are always kept."""
        seen: set[str] = set()
        unique: list[str] = []
        for para in _PARAGRAPH_SPLIT.split(text):
            normalized = para.strip().lower()
            if not normalized:
                continue
            if len(normalized) > _DEDUPE_MIN_CHARS:
                digest = hashlib.md5(normalized.encode("utf-8")).hexdigest()
                if digest in seen:
                    continue
                seen.add(digest)
            unique.append(para.strip())
        return "\n\n".join(unique)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @staticmethod
    def detect_language(text: str) -> str:
        """Return an ISO 639-1 code, or ``"en"`` when detection fails."""
        try:
            return detect(text[:_LANGUAGE_SAMPLE_CHARS])
        except LangDetectException as exc:
            logger.warning("language_detection_failed", error=str(exc), fallback=_DEFAULT_LANGUAGE)
            return _DEFAULT_LANGUAGE

    def extract_metadata(self, text: str, title: str | None = None) -> dict[str, Any]:
        word_count = len(text.split())
        metadata: dict[str, Any] = {
            "title": title or self.extract_title(text),
            "word_count": word_count,
            "character_count": len(text),
            "estimated_reading_time": math.ceil(word_count / _WORDS_PER_MINUTE),
        }
        key_phrases = self.extract_key_phrases(text)
        if key_phrases:
            metadata["key_phrases"] = key_phrases
        return metadata

    @staticmethod
    def extract_title(text: str) -> str:
        for line in text.splitlines():
            candidate = line.strip().lstrip("#").strip()
            if not candidate:
                continue
            if 5 < len(candidate) < 100:
                return candidate
            break
        return "Untitled Document"

    @staticmethod
    def extract_key_phrases(text: str, limit: int = _KEY_PHRASE_LIMIT) -> list[str]:
        """Most frequent content words longer than three characters."""
        counts = Counter(
            word.lower()
            for word in _WORD.findall(text)
            if len(word) > 3 and word.lower() not in _STOP_WORDS
        )
        return [term for term, _ in counts.most_common(limit)]

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @staticmethod
    def analyze_structure(text: str) -> DocumentStructure:
        lines = text.split("\n")
        headings = 0
        lists = 0
        code_blocks = 0
        in_code_block = False

        for line in lines:
            trimmed = line.strip()
            if trimmed.startswith("```"):
                in_code_block = not in_code_block
                if not in_code_block:
                    code_blocks += 1
                continue
            if in_code_block:
                continue
            if _HEADING_LINE.match(trimmed):
                headings += 1
            if _LIST_LINE.match(trimmed):
                lists += 1

        paragraphs = len([p for p in _PARAGRAPH_SPLIT.split(text) if p.strip()])
        sentences = len(split_sentences(text.replace("\n", " ")))
        return DocumentStructure(
            total_lines=len(lines),
            paragraphs=paragraphs,
            sentences=sentences,
            headings=headings,
            lists=lists,
            code_blocks=code_blocks,
        )
