"""Multi-metric quality scoring for a document and its chunks.

Produces a :class:`~coursekb.models.quality.QualityReport` from four
independent signals:

1. **Readability** -- five grade-level formulas and the Flesch reading-ease
   score from ``textstat``.  The mean grade is mapped onto 0-100 with
   ``(20 - grade) * 5`` and averaged with the ease score.
2. **Coherence** -- word-set Jaccard similarity between each pair of
   adjacent chunks (case-insensitive, whitespace-tokenized), averaged.
3. **Completeness** -- coverage (chunk characters over document characters)
   and uniformity of chunk token counts (``1 - std / mean``).
4. **Errors** -- rule-based detectors for encoding damage, symbol-heavy
   formatting, truncation and duplicated lines.

The overall score is ``0.3 * (readability + coherence + completeness)``
minus 5 points per detected error (at most 30), clamped to ``[0, 100]``.

No signal can abort an assessment: readability falls back to a neutral 50
with level ``"unknown"``, and zero chunks yield coherence 100 and
completeness 0.
"""

from __future__ import annotations

import math
import re

import numpy as np
import structlog
import textstat

from coursekb.models.document import Chunk, Document
from coursekb.models.quality import (
    ChunkDistribution,
    CoherenceResult,
    CompletenessResult,
    QualityIssue,
    QualityReport,
    ReadabilityMetrics,
    ReadabilityResult,
    Recommendation,
)
from coursekb.utils.errors import ProcessingError

logger = structlog.get_logger(logger_name=__name__)

_WEIGHT = 0.3
_ERROR_PENALTY = 5.0
_MAX_ERROR_PENALTY = 30.0
_NEUTRAL_READABILITY = 50.0

_NON_WORD_CHAR = re.compile(r"[^\w\s]")
_SPECIAL_CHAR_RATIO = 0.3
_DUPLICATE_LINE_MIN_CHARS = 50
_DUPLICATE_LINE_LIMIT = 5

# (threshold, label) pairs, checked top-down.
_READABILITY_LEVELS = (
    (90.0, "very easy"),
    (80.0, "easy"),
    (70.0, "fairly easy"),
    (60.0, "standard"),
    (50.0, "fairly difficult"),
    (30.0, "difficult"),
)
_COHERENCE_LEVELS = (
    (0.7, "highly coherent"),
    (0.5, "moderately coherent"),
    (0.3, "somewhat coherent"),
)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class QualityAssessor:
    """Scores a document and its chunks.  Stateless and safe to share."""

    def assess(self, document: Document | str, chunks: list[Chunk]) -> QualityReport:
        """Build the full quality report for *document* and its *chunks*."""
        text = document.text if isinstance(document, Document) else document

        readability = self.assess_readability(text)
        coherence = self.assess_coherence(chunks)
        completeness = self.assess_completeness(text, chunks)
        errors = self.detect_errors(text)

        penalty = min(len(errors) * _ERROR_PENALTY, _MAX_ERROR_PENALTY)
        overall = _clamp(
            readability.score * _WEIGHT
            + coherence.score * _WEIGHT
            + completeness.score * _WEIGHT
            - penalty
        )

        report = QualityReport(
            readability=readability,
            coherence=coherence,
            completeness=completeness,
            errors=errors,
            overall_score=round(overall, 2),
            recommendations=self.recommend(readability, coherence, completeness, errors),
        )
        logger.debug(
            "quality_assessed",
            document_id=document.id if isinstance(document, Document) else None,
            overall_score=report.overall_score,
            readability=readability.score,
            coherence=coherence.score,
            completeness=completeness.score,
            error_count=len(errors),
        )
        return report

    # ------------------------------------------------------------------
    # Readability
    # ------------------------------------------------------------------

    def assess_readability(self, text: str) -> ReadabilityResult:
        try:
            metrics = self._readability_metrics(text)
        except ProcessingError as exc:
            logger.warning("readability_assessment_failed", error=exc.message)
            return ReadabilityResult(
                score=_NEUTRAL_READABILITY,
                level="unknown",
                error=exc.message,
            )

        grade_score = _clamp((20.0 - metrics.average_grade) * 5.0)
        ease = _clamp(metrics.flesch_reading_ease)
        score = round(_clamp((ease + grade_score) / 2.0), 2)
        return ReadabilityResult(score=score, level=self._readability_level(score), metrics=metrics)

    @staticmethod
    def _readability_metrics(text: str) -> ReadabilityMetrics:
        """Run the textstat formulas; any failure or non-finite value is a ProcessingError."""
        if not text or not re.search(r"\w", text):
            raise ProcessingError(
                message="Text has no words to score",
                provider_name="textstat",
                stage="readability",
            )
        try:
            grades = {
                "flesch_kincaid_grade": textstat.flesch_kincaid_grade(text),
                "gunning_fog": textstat.gunning_fog(text),
                "smog_index": textstat.smog_index(text),
                "automated_readability_index": textstat.automated_readability_index(text),
                "coleman_liau_index": textstat.coleman_liau_index(text),
            }
            ease = textstat.flesch_reading_ease(text)
        except Exception as exc:
            raise ProcessingError(
                message=f"Readability computation failed: {exc}",
                provider_name="textstat",
                stage="readability",
            ) from exc

        values = [*grades.values(), ease]
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
            raise ProcessingError(
                message="Readability formulas returned non-finite values",
                provider_name="textstat",
                stage="readability",
            )

        return ReadabilityMetrics(
            **{k: float(v) for k, v in grades.items()},
            flesch_reading_ease=float(ease),
            average_grade=float(np.mean(list(grades.values()))),
        )

    @staticmethod
    def _readability_level(score: float) -> str:
        for threshold, label in _READABILITY_LEVELS:
            if score >= threshold:
                return label
        return "very difficult"

    # ------------------------------------------------------------------
    # Coherence
    # ------------------------------------------------------------------

    def assess_coherence(self, chunks: list[Chunk]) -> CoherenceResult:
        pair_scores = [
            self.jaccard_similarity(a.text, b.text) for a, b in zip(chunks, chunks[1:])
        ]
        mean = float(np.mean(pair_scores)) if pair_scores else 1.0
        return CoherenceResult(
            score=round(_clamp(mean * 100.0), 2),
            per_chunk_scores=[round(s, 4) for s in pair_scores],
            interpretation=self._interpret_coherence(mean),
        )

    @staticmethod
    def jaccard_similarity(text_a: str, text_b: str) -> float:
        words_a = set(text_a.lower().split())
        words_b = set(text_b.lower().split())
        union = words_a | words_b
        if not union:
            return 0.0
        return len(words_a & words_b) / len(union)

    @staticmethod
    def _interpret_coherence(score: float) -> str:
        for threshold, label in _COHERENCE_LEVELS:
            if score >= threshold:
                return label
        return "low coherence"

    # ------------------------------------------------------------------
    # Completeness
    # ------------------------------------------------------------------

    def assess_completeness(self, text: str, chunks: list[Chunk]) -> CompletenessResult:
        """Coverage and size uniformity of *chunks*.

        Zero chunks score 0: there is no coverage and the uniformity ratio
        ``std / mean`` is undefined.
        """
        if not chunks:
            return CompletenessResult(score=0.0, coverage=0.0, distribution=ChunkDistribution())

        chunk_chars = sum(len(c.text) for c in chunks)
        coverage = (chunk_chars / len(text) * 100.0) if text else 0.0

        sizes = np.array([c.token_count for c in chunks], dtype=float)
        mean = float(sizes.mean())
        std = float(sizes.std())
        uniformity = _clamp(1.0 - std / mean, 0.0, 1.0) if mean > 0 else 0.0

        score = (min(coverage, 100.0) + uniformity * 100.0) / 2.0
        return CompletenessResult(
            score=round(_clamp(score), 2),
            coverage=round(coverage, 2),
            distribution=ChunkDistribution(
                total_chunks=len(chunks),
                total_tokens=int(sizes.sum()),
                average_chunk_size=round(mean, 2),
                min_chunk_size=int(sizes.min()),
                max_chunk_size=int(sizes.max()),
                std_dev=round(std, 2),
                uniformity=round(uniformity, 4),
            ),
        )

    # ------------------------------------------------------------------
    # Error detection
    # ------------------------------------------------------------------

    @staticmethod
    def detect_errors(text: str) -> list[QualityIssue]:
        errors: list[QualityIssue] = []

        if "\ufffd" in text:
            errors.append(
                QualityIssue(
                    type="encoding",
                    severity="medium",
                    message="Potential encoding issues detected",
                )
            )

        if text and len(_NON_WORD_CHAR.findall(text)) / len(text) > _SPECIAL_CHAR_RATIO:
            errors.append(
                QualityIssue(
                    type="formatting",
                    severity="low",
                    message="High ratio of special characters",
                )
            )

        trimmed = text.strip()
        if trimmed.endswith("...") or trimmed.endswith("\u2026"):
            errors.append(
                QualityIssue(
                    type="truncation",
                    severity="high",
                    message="Content appears to be truncated",
                )
            )

        seen: set[str] = set()
        duplicates = 0
        for line in text.split("\n"):
            if line in seen:
                if len(line) > _DUPLICATE_LINE_MIN_CHARS:
                    duplicates += 1
            else:
                seen.add(line)
        if duplicates > _DUPLICATE_LINE_LIMIT:
            errors.append(
                QualityIssue(
                    type="duplication",
                    severity="medium",
                    message=f"Found {duplicates} duplicate lines",
                )
            )

        return errors

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    @staticmethod
    def recommend(
        readability: ReadabilityResult,
        coherence: CoherenceResult,
        completeness: CompletenessResult,
        errors: list[QualityIssue],
    ) -> list[Recommendation]:
        recommendations: list[Recommendation] = []

        if readability.score < 50:
            recommendations.append(
                Recommendation(
                    area="readability",
                    priority="high",
                    suggestion="Consider simplifying complex sentences and reducing technical jargon",
                )
            )
        if coherence.score < 60:
            recommendations.append(
                Recommendation(
                    area="coherence",
                    priority="medium",
                    suggestion="Improve transitions between sections for better flow",
                )
            )
        if completeness.coverage < 95:
            recommendations.append(
                Recommendation(
                    area="completeness",
                    priority="high",
                    suggestion="Some content may have been lost during processing",
                )
            )
        for error in errors:
            if error.severity == "high":
                recommendations.append(
                    Recommendation(
                        area="errors",
                        priority="high",
                        suggestion=f"Fix {error.type}: {error.message}",
                    )
                )
        return recommendations
