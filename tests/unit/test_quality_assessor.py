"""Unit tests for QualityAssessor -- readability, coherence, completeness and errors."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from coursekb.models.document import Chunk, ChunkStrategy
from coursekb.services.ingestion.quality_assessor import QualityAssessor

_PROSE = (
    "The library opens at nine in the morning. Students can borrow up to five books. "
    "Late returns cost a small fee. The reading room is quiet and bright. "
    "Staff can help you find articles and journals."
)


def _chunk(text: str, index: int = 0, tokens: int | None = None) -> Chunk:
    return Chunk(
        id=f"chunk-{index}",
        document_id="doc-1",
        index=index,
        text=text,
        token_count=tokens if tokens is not None else len(text.split()),
        strategy=ChunkStrategy.SENTENCE,
    )


@pytest.fixture()
def assessor() -> QualityAssessor:
    return QualityAssessor()


# ======================================================================
# Readability
# ======================================================================


class TestReadability:
    def test_plain_prose_is_scored(self, assessor: QualityAssessor) -> None:
        result = assessor.assess_readability(_PROSE)

        assert 0 <= result.score <= 100
        assert result.level != "unknown"
        assert result.metrics is not None
        assert result.error is None

    def test_empty_text_gets_neutral_score(self, assessor: QualityAssessor) -> None:
        result = assessor.assess_readability("")

        assert result.score == 50.0
        assert result.level == "unknown"
        assert result.error

    def test_metric_failure_gets_neutral_score(self, assessor: QualityAssessor) -> None:
        with patch(
            "coursekb.services.ingestion.quality_assessor.textstat.flesch_kincaid_grade",
            side_effect=ZeroDivisionError("division by zero"),
        ):
            result = assessor.assess_readability(_PROSE)

        assert result.score == 50.0
        assert result.level == "unknown"
        assert "division by zero" in result.error

    def test_non_finite_metric_gets_neutral_score(self, assessor: QualityAssessor) -> None:
        with patch(
            "coursekb.services.ingestion.quality_assessor.textstat.smog_index",
            return_value=float("nan"),
        ):
            result = assessor.assess_readability(_PROSE)

        assert result.level == "unknown"


# ======================================================================
# Coherence
# ======================================================================


class TestCoherence:
    def test_jaccard(self) -> None:
        assert QualityAssessor.jaccard_similarity("a b c", "B C d") == 0.5
        assert QualityAssessor.jaccard_similarity("", "") == 0.0

    def test_single_chunk_is_fully_coherent(self, assessor: QualityAssessor) -> None:
        result = assessor.assess_coherence([_chunk("only one chunk")])
        assert result.score == 100.0
        assert result.per_chunk_scores == []
        assert result.interpretation == "highly coherent"

    def test_zero_chunks_is_fully_coherent(self, assessor: QualityAssessor) -> None:
        assert assessor.assess_coherence([]).score == 100.0

    def test_adjacent_pairs(self, assessor: QualityAssessor) -> None:
        chunks = [_chunk("a b c", 0), _chunk("b c d", 1), _chunk("x y z", 2)]
        result = assessor.assess_coherence(chunks)

        assert result.per_chunk_scores == [0.5, 0.0]
        assert result.score == 25.0
        assert result.interpretation == "low coherence"


# ======================================================================
# Completeness
# ======================================================================


class TestCompleteness:
    def test_zero_chunks_scores_zero(self, assessor: QualityAssessor) -> None:
        result = assessor.assess_completeness("some text", [])
        assert result.score == 0.0
        assert result.coverage == 0.0
        assert result.distribution.total_chunks == 0

    def test_full_uniform_coverage(self, assessor: QualityAssessor) -> None:
        text = "alpha beta gamma delta"
        result = assessor.assess_completeness(text, [_chunk(text, tokens=4)])

        assert result.coverage == 100.0
        assert result.distribution.uniformity == 1.0
        assert result.score == 100.0

    def test_uneven_chunks_lower_uniformity(self, assessor: QualityAssessor) -> None:
        chunks = [_chunk("a", 0, tokens=2), _chunk("b", 1, tokens=6)]
        result = assessor.assess_completeness("a b", chunks)

        # mean 4, std 2
        assert result.distribution.uniformity == 0.5
        assert result.distribution.min_chunk_size == 2
        assert result.distribution.max_chunk_size == 6
        assert result.distribution.total_tokens == 8

    def test_overlap_coverage_is_capped_in_score(self, assessor: QualityAssessor) -> None:
        text = "one two"
        chunks = [_chunk(text, 0, tokens=2), _chunk(text, 1, tokens=2)]
        result = assessor.assess_completeness(text, chunks)

        assert result.coverage == 200.0
        assert result.score == 100.0


# ======================================================================
# Error detection
# ======================================================================


class TestErrorDetection:
    def test_clean_text(self) -> None:
        assert QualityAssessor.detect_errors(_PROSE) == []

    def test_encoding_damage(self) -> None:
        errors = QualityAssessor.detect_errors("Caf\ufffd au lait")
        assert [e.type for e in errors] == ["encoding"]

    def test_symbol_heavy_text(self) -> None:
        errors = QualityAssessor.detect_errors("!!!@@@### ok")
        assert "formatting" in [e.type for e in errors]

    def test_truncation(self) -> None:
        errors = QualityAssessor.detect_errors("And then the story continues...")
        assert [(e.type, e.severity) for e in errors] == [("truncation", "high")]

    def test_duplicate_lines(self) -> None:
        line = "This exact line is repeated many times throughout the document body."
        errors = QualityAssessor.detect_errors("\n".join([line] * 7))
        assert [e.type for e in errors] == ["duplication"]
        assert "6 duplicate lines" in errors[0].message

    def test_short_duplicates_ignored(self) -> None:
        assert QualityAssessor.detect_errors("\n".join(["- item"] * 10)) == []


# ======================================================================
# Full report
# ======================================================================


class TestAssess:
    def test_empty_text_no_chunks(self, assessor: QualityAssessor) -> None:
        report = assessor.assess("", [])

        # 50 * 0.3 + 100 * 0.3 + 0 * 0.3
        assert report.overall_score == 45.0
        assert report.readability.level == "unknown"

    def test_score_is_bounded(self, assessor: QualityAssessor) -> None:
        line = "@@@ ### !!! $$$ %%% ^^^ &&& *** ((( ))) \ufffd broken line here ..."
        text = "\n".join([line] * 8) + "..."
        report = assessor.assess(text, [_chunk("x", 0, tokens=1), _chunk("y", 1, tokens=50)])

        assert 0.0 <= report.overall_score <= 100.0
        assert len(report.errors) == 4

    def test_single_chunk_document(self, assessor: QualityAssessor) -> None:
        report = assessor.assess(_PROSE, [_chunk(_PROSE, tokens=40)])

        assert report.coherence.score == 100.0
        assert report.completeness.coverage == 100.0
        assert 0.0 <= report.overall_score <= 100.0

    def test_recommendations(self, assessor: QualityAssessor) -> None:
        report = assessor.assess(
            "A story cut short...",
            [_chunk("A story", 0, tokens=2), _chunk("cut", 1, tokens=1)],
        )
        areas = {r.area for r in report.recommendations}

        assert "coherence" in areas
        assert "completeness" in areas
        errors = [r for r in report.recommendations if r.area == "errors"]
        assert errors and errors[0].suggestion.startswith("Fix truncation")
