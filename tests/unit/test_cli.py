"""Unit tests for the coursekb CLI (coursekb/cli/ingest.py)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from coursekb.cli.ingest import _build_parser, main
from coursekb.models.pipeline import DocumentIngestResult
from coursekb.models.vector import BatchError, InsertResult

from conftest import FakeEmbeddingProvider


@pytest.fixture(autouse=True)
def _cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JINA_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENABLE_SPARSE_VECTORS", "false")
    monkeypatch.setenv("ENABLE_RERANKING", "false")
    monkeypatch.setenv("VECTOR_STORE_BACKEND", "memory")
    monkeypatch.setenv("APP_ENV", "test")
    # Logging is configured per process; keep it off the captured streams.
    with patch("coursekb.cli.ingest.configure_logging"):
        yield


@pytest.fixture()
def notes_file(tmp_path: Path, sample_course_text: str) -> Path:
    path = tmp_path / "lecture1.md"
    path.write_text(sample_course_text, encoding="utf-8")
    return path


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# ======================================================================
# Parser
# ======================================================================


class TestParser:
    def test_backend_flag_on_every_subcommand(self) -> None:
        parser = _build_parser()
        for argv in (["collections"], ["health"], ["delete", "--collection", "c"]):
            assert parser.parse_args([*argv, "--backend", "memory"]).backend == "memory"

    def test_invalid_strategy_rejected(self, notes_file: Path) -> None:
        assert _run(["analyze", "--file", str(notes_file), "--strategy", "recursive"]) == 2

    def test_no_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


# ======================================================================
# analyze
# ======================================================================


class TestAnalyze:
    def test_prints_report(self, notes_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["analyze", "--file", str(notes_file), "--strategy", "sentence"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["document_id"] == "lecture1"
        assert report["title"] == "Introduction to Vector Search"
        assert report["strategy"] == "sentence"
        assert report["chunks"]["count"] > 0
        assert report["chunks"]["total_tokens"] >= report["chunks"]["max_tokens"] > 0
        assert 0 <= report["quality"]["overall_score"] <= 100

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["analyze", "--file", str(tmp_path / "absent.md")]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_empty_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        blank = tmp_path / "blank.md"
        blank.write_text("   \n")
        assert _run(["analyze", "--file", str(blank)]) == 1
        assert "Error:" in capsys.readouterr().err


# ======================================================================
# Store-backed commands
# ======================================================================


class TestStoreCommands:
    def test_collections_empty(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["collections", "--backend", "memory"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_health(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["health", "--backend", "memory"]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status["healthy"] is True
        assert status["provider"] == "memory"

    def test_delete_needs_a_filter(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["delete", "--collection", "course_42"]) == 1
        assert "--course-id" in capsys.readouterr().err

    def test_delete_missing_collection(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["delete", "--collection", "course_42", "--course-id", "42"]) == 1
        assert "course_42" in capsys.readouterr().err

    def test_ingest_without_embedder(
        self, notes_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert _run(["ingest", "--file", str(notes_file), "--collection", "course_42"]) == 1
        assert "no embedding provider" in capsys.readouterr().err

    def test_ingest_with_embedder(
        self, notes_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch(
            "coursekb.main._build_embedding_provider", return_value=FakeEmbeddingProvider()
        ):
            code = _run(
                [
                    "ingest",
                    "--file",
                    str(notes_file),
                    "--collection",
                    "course_42",
                    "--course-id",
                    "42",
                ]
            )

        result = json.loads(capsys.readouterr().out)
        assert code == 0
        assert result["document_id"] == "lecture1"
        assert result["skipped"] is False
        assert result["chunks_created"] > 0
        assert result["insert"]["failed_batches"] == 0

    def test_ingest_below_threshold(
        self, notes_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch(
            "coursekb.main._build_embedding_provider", return_value=FakeEmbeddingProvider()
        ):
            code = _run(
                [
                    "ingest",
                    "--file",
                    str(notes_file),
                    "--collection",
                    "course_42",
                    "--quality-threshold",
                    "101",
                ]
            )

        assert code == 0
        assert json.loads(capsys.readouterr().out)["skipped"] is True

    def test_search_missing_collection(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch(
            "coursekb.main._build_embedding_provider", return_value=FakeEmbeddingProvider()
        ):
            code = _run(
                ["search", "--collection", "course_42", "--query", "fusion", "--mode", "semantic"]
            )

        assert code == 1
        assert "Error:" in capsys.readouterr().err

    def test_ingest_partial_failure_exits_1(
        self, notes_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        partial = DocumentIngestResult(
            document_id="lecture1",
            collection="course_42",
            chunks_created=4,
            insert=InsertResult(
                operation_id="op-1",
                collection="course_42",
                total_vectors=4,
                total_batches=2,
                successful_batches=1,
                failed_batches=1,
                errors=[BatchError(batch_index=1, error="upsert timed out", point_count=2)],
            ),
        )
        with patch(
            "coursekb.main._build_embedding_provider", return_value=FakeEmbeddingProvider()
        ), patch(
            "coursekb.services.ingestion.document_pipeline.DocumentPipeline.ingest",
            new=AsyncMock(return_value=partial),
        ):
            code = _run(["ingest", "--file", str(notes_file), "--collection", "course_42"])

        captured = capsys.readouterr()
        assert code == 1
        assert json.loads(captured.out)["insert"]["failed_batches"] == 1
        assert "1 of 2 batches failed" in captured.err


# ======================================================================
# --config
# ======================================================================


def _config_file(tmp_path: Path, data: dict) -> str:
    path = tmp_path / "coursekb.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestConfigFile:
    def test_config_on_every_subcommand(self) -> None:
        parser = _build_parser()
        for argv in (["collections"], ["health"], ["analyze", "--file", "x.md"]):
            assert parser.parse_args([*argv, "--config", "c.yaml"]).config == "c.yaml"

    def test_analyze_uses_config_values(
        self, tmp_path: Path, notes_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config = _config_file(
            tmp_path,
            {
                "chunking": {
                    "chunking_strategy": "fixed",
                    "max_chunk_size": 120,
                    "min_chunk_size": 20,
                    "overlap_size": 10,
                }
            },
        )

        assert _run(["analyze", "--file", str(notes_file), "--config", config]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["strategy"] == "fixed"
        assert 0 < report["chunks"]["max_tokens"] <= 120

    def test_environment_outranks_config(
        self,
        tmp_path: Path,
        notes_file: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("CHUNKING_STRATEGY", "sentence")
        config = _config_file(tmp_path, {"chunking": {"chunking_strategy": "fixed"}})

        assert _run(["analyze", "--file", str(notes_file), "--config", config]) == 0
        assert json.loads(capsys.readouterr().out)["strategy"] == "sentence"

    def test_backend_flag_outranks_config(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.delenv("VECTOR_STORE_BACKEND")
        config = _config_file(tmp_path, {"vector_store": {"vector_store_backend": "qdrant"}})

        assert _run(["health", "--config", config, "--backend", "memory"]) == 0
        assert json.loads(capsys.readouterr().out)["provider"] == "memory"

    def test_missing_config_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["collections", "--config", str(tmp_path / "absent.yaml")]) == 1
        assert "config file not found" in capsys.readouterr().err

    def test_invalid_config_value(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config = _config_file(tmp_path, {"batching": {"max_batch_size": 0}})

        assert _run(["collections", "--config", config]) == 1
        assert "invalid configuration" in capsys.readouterr().err
