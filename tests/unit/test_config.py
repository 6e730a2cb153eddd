"""Unit tests for Settings and the YAML config loaders."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError as PydanticValidationError

from coursekb.config.loader import deep_merged, settings_from_config
from coursekb.config.settings import Settings


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # No stray .env file and no inherited overrides.
    monkeypatch.chdir(tmp_path)
    for var in (
        "APP_ENV",
        "LOG_LEVEL",
        "MAX_CHUNK_SIZE",
        "CHUNKING_STRATEGY",
        "VECTOR_SIZE",
        "VECTOR_STORE_BACKEND",
        "JINA_API_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)


def _write_yaml(path: Path, data: dict) -> str:
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.max_chunk_size == 1000
        assert settings.chunking_strategy == "semantic"
        assert settings.vector_store_backend == "qdrant"
        assert settings.search_mode == "hybrid"
        assert settings.fusion_mode == "rrf"
        assert settings.get_available_embedding_providers() == []

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_CHUNK_SIZE", "500")
        monkeypatch.setenv("VECTOR_STORE_BACKEND", "memory")
        monkeypatch.setenv("JINA_API_KEY", "jina-abc")

        settings = Settings()

        assert settings.max_chunk_size == 500
        assert settings.vector_store_backend == "memory"
        assert settings.get_available_embedding_providers() == ["jina"]

    def test_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("VECTOR_SIZE=384\n")
        assert Settings().vector_size == 384

    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(max_batch_size=0)
        with pytest.raises(PydanticValidationError):
            Settings(chunking_strategy="recursive")


class TestSettingsFromConfig:
    def test_sections_are_flattened(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path / "coursekb.yaml",
            {
                "chunking": {"max_chunk_size": 300, "chunking_strategy": "fixed"},
                "vector_store": {"vector_size": 8, "vector_store_backend": "memory"},
                "log_level": "DEBUG",
                "not_a_setting": True,
            },
        )

        settings = settings_from_config(path)

        assert settings.max_chunk_size == 300
        assert settings.chunking_strategy == "fixed"
        assert settings.vector_size == 8
        assert settings.vector_store_backend == "memory"
        assert settings.log_level == "DEBUG"

    def test_env_outranks_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_yaml(tmp_path / "coursekb.yaml", {"vector_store": {"vector_size": 8}})
        monkeypatch.setenv("VECTOR_SIZE", "32")

        assert settings_from_config(path).vector_size == 32

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        settings = settings_from_config(str(tmp_path / "absent.yaml"))
        assert settings.max_chunk_size == 1000


class TestDeepMerged:
    def test_nested_merge(self) -> None:
        base = {"hnsw": {"m": 16, "ef_construct": 100}, "distance": "Cosine"}
        merged = deep_merged(base, {"hnsw": {"m": 32}})

        assert merged == {"hnsw": {"m": 32, "ef_construct": 100}, "distance": "Cosine"}

    def test_base_is_not_mutated(self) -> None:
        base = {"hnsw": {"m": 16}}
        deep_merged(base, {"hnsw": {"m": 64}, "extra": 1})
        assert base == {"hnsw": {"m": 16}}
