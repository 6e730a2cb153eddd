"""Unit tests for the ChunkingEngine -- fixed, sentence, paragraph and semantic strategies."""

from __future__ import annotations

import pytest

from coursekb.models.document import ChunkingConfig, ChunkStrategy, Document
from coursekb.services.ingestion.chunker import ChunkingEngine, _PositionLocator, split_sentences
from coursekb.services.ingestion.tokenizer import SimpleTokenizer
from coursekb.utils.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_THREE_SENTENCES = "Sentence one. Sentence two. Sentence three."


def _make_engine(max_size: int = 60, min_size: int = 10, overlap: int = 10) -> ChunkingEngine:
    """Build a ChunkingEngine with a predictable configuration."""
    return ChunkingEngine(
        ChunkingConfig(max_chunk_size=max_size, min_chunk_size=min_size, overlap_size=overlap)
    )


def _numbered_sentences(count: int) -> str:
    # Every sentence is exactly four simple tokens: "Word3", "text", "here", ".".
    return " ".join(f"Word{i} text here." for i in range(count))


# ---------------------------------------------------------------------------
# Sentence splitting
# ---------------------------------------------------------------------------


class TestSplitSentences:
    def test_basic_split(self) -> None:
        assert split_sentences(_THREE_SENTENCES) == [
            "Sentence one.",
            "Sentence two.",
            "Sentence three.",
        ]

    def test_abbreviations_do_not_split(self) -> None:
        sentences = split_sentences("Dr. Smith teaches Ch. 4 today. Attendance is optional.")
        assert sentences == ["Dr. Smith teaches Ch. 4 today.", "Attendance is optional."]

    def test_word_ending_like_abbreviation_still_splits(self) -> None:
        assert split_sentences("This is the Best. Next one.") == ["This is the Best.", "Next one."]

    def test_trailing_text_without_punctuation(self) -> None:
        assert split_sentences("First. Then a fragment") == ["First.", "Then a fragment"]


# ---------------------------------------------------------------------------
# Common behaviour
# ---------------------------------------------------------------------------


class TestChunkBasics:
    def test_three_sentences_fit_one_chunk(self) -> None:
        engine = _make_engine(max_size=1000, min_size=100, overlap=50)
        chunks = engine.chunk(_THREE_SENTENCES, ChunkStrategy.SENTENCE)

        assert len(chunks) == 1
        assert chunks[0].index == 0
        assert chunks[0].text == _THREE_SENTENCES
        assert chunks[0].token_count == SimpleTokenizer().count(_THREE_SENTENCES)

    @pytest.mark.parametrize("strategy", [s.value for s in ChunkStrategy])
    def test_whitespace_only_returns_empty(self, strategy: str) -> None:
        assert _make_engine().chunk("  \n\n\t ", strategy) == []

    @pytest.mark.parametrize("strategy", [s.value for s in ChunkStrategy])
    def test_indices_are_dense_and_ids_unique(self, strategy: str, sample_course_text: str) -> None:
        chunks = _make_engine(max_size=30, min_size=5, overlap=5).chunk(
            sample_course_text, strategy, document_id="doc-1"
        )

        assert len(chunks) > 1
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert len({c.id for c in chunks}) == len(chunks)
        assert all(c.document_id == "doc-1" for c in chunks)
        assert all(c.text.strip() for c in chunks)
        assert all(c.strategy.value == strategy for c in chunks)

    @pytest.mark.parametrize("strategy", [s.value for s in ChunkStrategy])
    def test_no_chunk_exceeds_budget(self, strategy: str, sample_course_text: str) -> None:
        # Every sentence in the sample is shorter than 25 tokens.
        chunks = _make_engine(max_size=25, min_size=5, overlap=5).chunk(
            sample_course_text, strategy
        )
        assert all(c.token_count <= 25 for c in chunks)

    def test_oversized_sentence_is_kept_whole(self) -> None:
        long_sentence = " ".join(["word"] * 30) + "."
        chunks = _make_engine(max_size=10, min_size=2, overlap=2).chunk(
            f"Short one. {long_sentence} Short two.", ChunkStrategy.SENTENCE
        )

        assert [c.text for c in chunks] == ["Short one.", long_sentence, "Short two."]
        assert chunks[1].token_count == 31

    def test_metadata_fields(self) -> None:
        chunk = _make_engine().chunk(_THREE_SENTENCES, ChunkStrategy.SENTENCE)[0]
        assert chunk.metadata["sentence_count"] == 3
        assert chunk.metadata["word_count"] == 6
        assert chunk.metadata["method"] == "sentence"
        assert chunk.metadata["tokenizer"] == "simple"

    def test_chunk_document_uses_document_id(self) -> None:
        document = Document(id="lecture-3", text=_THREE_SENTENCES)
        chunks = _make_engine().chunk_document(document, ChunkStrategy.SENTENCE)
        assert chunks[0].document_id == "lecture-3"

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError):
            _make_engine().chunk(_THREE_SENTENCES, "by-vibes")


class TestConfigValidation:
    def test_overlap_equal_to_max_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="overlap_size"):
            ChunkingEngine(ChunkingConfig(max_chunk_size=50, overlap_size=50, min_chunk_size=10))

    def test_min_above_max_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="min_chunk_size"):
            ChunkingEngine(ChunkingConfig(max_chunk_size=50, overlap_size=5, min_chunk_size=80))

    def test_per_call_config_is_validated(self) -> None:
        engine = _make_engine()
        with pytest.raises(ConfigurationError):
            engine.chunk(
                _THREE_SENTENCES,
                ChunkStrategy.FIXED,
                config=ChunkingConfig(max_chunk_size=5, overlap_size=9, min_chunk_size=1),
            )

    def test_per_call_config_overrides_default(self) -> None:
        engine = _make_engine(max_size=1000, min_size=10, overlap=10)
        chunks = engine.chunk(
            _THREE_SENTENCES,
            ChunkStrategy.SENTENCE,
            config=ChunkingConfig(max_chunk_size=3, overlap_size=0, min_chunk_size=1),
        )
        assert len(chunks) == 3


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class TestFixedStrategy:
    def test_windows_cover_the_whole_text(self) -> None:
        text = _numbered_sentences(12)
        chunks = _make_engine(max_size=10, min_size=1, overlap=3).chunk(text, ChunkStrategy.FIXED)

        assert chunks[0].position.start == 0
        assert chunks[-1].position.end == len(text)
        for previous, current in zip(chunks, chunks[1:]):
            assert current.position.start <= previous.position.end

    def test_positions_are_exact_spans(self) -> None:
        text = _numbered_sentences(12)
        chunks = _make_engine(max_size=10, min_size=1, overlap=3).chunk(text, ChunkStrategy.FIXED)

        for chunk in chunks:
            assert chunk.position.match == "exact"
            assert text[chunk.position.start : chunk.position.end].strip() == chunk.text

    def test_window_step_and_size(self) -> None:
        text = _numbered_sentences(12)  # 48 tokens
        chunks = _make_engine(max_size=10, min_size=1, overlap=3).chunk(text, ChunkStrategy.FIXED)

        starts = [c.metadata["token_start"] for c in chunks]
        assert starts == list(range(0, 48, 7))[: len(starts)]
        assert chunks[-1].metadata["token_end"] == 48
        assert all(c.token_count <= 10 for c in chunks)


class TestSentenceStrategy:
    def test_greedy_packing(self) -> None:
        chunks = _make_engine(max_size=10, min_size=1, overlap=2).chunk(
            _numbered_sentences(5), ChunkStrategy.SENTENCE
        )
        assert [c.text for c in chunks] == [
            "Word0 text here. Word1 text here.",
            "Word2 text here. Word3 text here.",
            "Word4 text here.",
        ]

    def test_positions_found_in_source(self) -> None:
        text = _numbered_sentences(5)
        chunks = _make_engine(max_size=10, min_size=1, overlap=2).chunk(
            text, ChunkStrategy.SENTENCE
        )
        for chunk in chunks:
            assert chunk.position.match == "exact"
            assert text[chunk.position.start : chunk.position.end] == chunk.text


class TestParagraphStrategy:
    def test_paragraphs_are_packed_whole(self) -> None:
        text = "Para one is here.\n\nPara two is here.\n\nPara three is here."
        chunks = _make_engine(max_size=8, min_size=1, overlap=2).chunk(
            text, ChunkStrategy.PARAGRAPH
        )
        assert [c.text for c in chunks] == [
            "Para one is here.",
            "Para two is here.",
            "Para three is here.",
        ]

    def test_small_paragraphs_share_a_chunk(self) -> None:
        text = "One.\n\nTwo.\n\nThree."
        chunks = _make_engine(max_size=10, min_size=1, overlap=2).chunk(
            text, ChunkStrategy.PARAGRAPH
        )
        assert len(chunks) == 1
        assert chunks[0].text == "One.\n\nTwo.\n\nThree."
        assert chunks[0].metadata["paragraph_count"] == 3

    def test_oversized_paragraph_falls_back_to_sentences(self) -> None:
        text = "Intro.\n\n" + _numbered_sentences(6)
        chunks = _make_engine(max_size=10, min_size=1, overlap=2).chunk(
            text, ChunkStrategy.PARAGRAPH
        )

        assert chunks[0].text == "Intro."
        split = chunks[1:]
        assert split
        assert all(c.metadata.get("split") == "sentence" for c in split)
        assert all(c.token_count <= 10 for c in split)


class TestSemanticStrategy:
    def test_overflow_reseeds_with_trailing_sentence(self) -> None:
        chunks = _make_engine(max_size=10, min_size=2, overlap=4).chunk(
            _numbered_sentences(10), ChunkStrategy.SEMANTIC
        )

        assert chunks[0].text == "Word0 text here. Word1 text here."
        assert chunks[1].text.startswith("Word1 text here.")
        assert chunks[1].metadata["overlap_sentences"] == 1
        assert chunks[0].metadata["overlap_sentences"] == 0
        assert all(c.token_count <= 10 for c in chunks)
        assert chunks[-1].text.endswith("Word9 text here.")

    def test_heading_closes_a_section(self) -> None:
        text = (
            "# Setup\n\nInstall the tool now. Configure it well.\n\n"
            "# Usage\n\nRun the tool daily. Check the output."
        )
        chunks = _make_engine(max_size=100, min_size=3, overlap=5).chunk(
            text, ChunkStrategy.SEMANTIC
        )

        assert len(chunks) == 2
        assert chunks[0].text.startswith("# Setup")
        assert chunks[0].metadata["boundary"] == "section"
        assert chunks[1].text.startswith("# Usage")
        assert chunks[1].metadata["boundary"] == "end"

    def test_short_section_is_not_closed_early(self) -> None:
        text = "# Setup\n\nGo.\n\n# Usage\n\nRun the tool daily."
        chunks = _make_engine(max_size=100, min_size=50, overlap=5).chunk(
            text, ChunkStrategy.SEMANTIC
        )
        assert len(chunks) == 1

    def test_line_ending_in_colon_closes_a_section(self) -> None:
        text = "Install the tool now.\nConfigure it as follows:\nRun it daily. Check the output."
        chunks = _make_engine(max_size=100, min_size=3, overlap=5).chunk(
            text, ChunkStrategy.SEMANTIC
        )

        assert [c.text for c in chunks] == [
            "Install the tool now. Configure it as follows:",
            "Run it daily. Check the output.",
        ]
        assert chunks[0].metadata["boundary"] == "section"
        assert chunks[1].metadata["boundary"] == "end"

    def test_numbered_line_opens_a_section(self) -> None:
        text = (
            "Prepare the workspace first. Clear the desk.\n"
            "1. Open the editor.\n"
            "2. Save the file."
        )
        chunks = _make_engine(max_size=100, min_size=3, overlap=5).chunk(
            text, ChunkStrategy.SEMANTIC
        )

        assert [c.text for c in chunks] == [
            "Prepare the workspace first. Clear the desk.",
            "1. Open the editor.",
            "2. Save the file.",
        ]
        assert chunks[0].metadata["boundary"] == "section"
        assert chunks[1].metadata["boundary"] == "section"

    def test_all_caps_line_opens_a_section(self) -> None:
        text = (
            "Read the manual before starting. Keep it nearby.\n"
            "SAFETY NOTES\n"
            "Wear gloves at all times."
        )
        chunks = _make_engine(max_size=100, min_size=3, overlap=5).chunk(
            text, ChunkStrategy.SEMANTIC
        )

        assert [c.text for c in chunks] == [
            "Read the manual before starting. Keep it nearby.",
            "SAFETY NOTES Wear gloves at all times.",
        ]
        assert chunks[0].metadata["boundary"] == "section"
        assert chunks[0].metadata["overlap_sentences"] == 0

    @pytest.mark.parametrize(
        "text",
        [
            "Install it.\nDo this:\nRun it daily.",
            "Prepare it.\n1. Open the editor.",
            "Read it.\nSAFETY NOTES\nWear gloves.",
        ],
    )
    def test_boundary_waits_for_min_chunk_size(self, text: str) -> None:
        chunks = _make_engine(max_size=100, min_size=50, overlap=5).chunk(
            text, ChunkStrategy.SEMANTIC
        )

        assert len(chunks) == 1
        assert chunks[0].metadata["boundary"] == "end"


# ---------------------------------------------------------------------------
# Position locating
# ---------------------------------------------------------------------------


class TestPositionLocator:
    _SOURCE = "The cat sat on the mat today.\n\nAnother   line follows here."

    def test_exact_match_ignores_whitespace_runs(self) -> None:
        position = _PositionLocator(self._SOURCE).locate("Another line follows here.")
        assert position.match == "exact"
        assert self._SOURCE[position.start : position.end] == "Another   line follows here."

    def test_anchor_match_on_leading_words(self) -> None:
        position = _PositionLocator(self._SOURCE).locate("The cat sat on the rug instead.")
        assert position.match == "anchor"
        assert position.start == 0

    def test_no_match_defaults_to_zero(self) -> None:
        position = _PositionLocator(self._SOURCE).locate("Zebras are striped.")
        assert position.match == "none"
        assert position.start == 0
