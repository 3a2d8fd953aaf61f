"""Tests for quiz generator configuration."""

import json
from pathlib import Path

import pytest

from src.quiz.config import (
    DEFAULT_MODELS,
    EmbeddingBackend,
    MockConfig,
    ModelSpec,
    QuizConfig,
    RunMode,
    VectorIndexKind,
    load_model_catalog,
)
from src.quiz.errors import ConfigurationError


class TestQuizConfig:
    def test_default_mode_is_mock(self) -> None:
        config = QuizConfig()
        assert config.mode == RunMode.MOCK

    def test_defaults(self) -> None:
        config = QuizConfig()
        assert config.embedding_backend == EmbeddingBackend.SENTENCE_TRANSFORMERS
        assert config.embedding_dimensions == 384
        assert config.vector_index == VectorIndexKind.MEMORY
        assert config.llm_timeout_seconds == 60.0
        assert config.student_search_threshold == 0.3
        assert config.default_model == "OpenAI_GPT_4o_Mini"

    def test_custom_config(self) -> None:
        config = QuizConfig(mode=RunMode.PRODUCTION, chunk_size=1024, search_limit=20)
        assert config.mode == RunMode.PRODUCTION
        assert config.chunk_size == 1024
        assert config.search_limit == 20

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AIQUIZ_MODE", "hybrid")
        monkeypatch.setenv("AIQUIZ_CHUNK_SIZE", "256")
        config = QuizConfig()
        assert config.mode == RunMode.HYBRID
        assert config.chunk_size == 256

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValueError):
            QuizConfig(chunk_size=0)
        with pytest.raises(ValueError):
            QuizConfig(llm_timeout_seconds=-1)


class TestModelCatalog:
    def test_default_catalog_order(self) -> None:
        catalog = QuizConfig().model_catalog()
        assert list(catalog) == [m.name for m in DEFAULT_MODELS]
        assert catalog["OpenAI_GPT_4o"].model == "gpt-4o"

    def test_duplicate_names_rejected(self) -> None:
        config = QuizConfig(models=[ModelSpec(name="A"), ModelSpec(name="A")])
        with pytest.raises(ConfigurationError, match="Duplicate model"):
            config.model_catalog()

    def test_empty_catalog_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="empty"):
            QuizConfig(models=[]).model_catalog()

    def test_catalog_file(self, tmp_path: Path) -> None:
        path = tmp_path / "models.json"
        path.write_text(
            json.dumps(
                {
                    "models": [
                        {"name": "Groq_Llama", "provider": "groq", "model": "llama-3.1-70b",
                         "base_url": "https://api.groq.com/openai/v1", "api_key_env": "GROQ_API_KEY"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        catalog = QuizConfig(models_file=str(path)).model_catalog()
        assert list(catalog) == ["Groq_Llama"]
        assert catalog["Groq_Llama"].api_key_env == "GROQ_API_KEY"

    def test_catalog_file_as_list(self, tmp_path: Path) -> None:
        path = tmp_path / "models.json"
        path.write_text(json.dumps([{"name": "Solo"}]), encoding="utf-8")
        assert [m.name for m in load_model_catalog(path)] == ["Solo"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read model catalog"):
            load_model_catalog(tmp_path / "missing.json")

    def test_not_a_list(self, tmp_path: Path) -> None:
        path = tmp_path / "models.json"
        path.write_text(json.dumps({"models": "gpt-4o"}), encoding="utf-8")
        with pytest.raises(ConfigurationError, match="list of models"):
            load_model_catalog(path)

    def test_invalid_entry(self, tmp_path: Path) -> None:
        path = tmp_path / "models.json"
        path.write_text(json.dumps([{"name": ""}]), encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid model catalog"):
            load_model_catalog(path)


class TestMockConfig:
    def test_default_is_mock(self) -> None:
        config = MockConfig.default()
        assert config.mode == RunMode.MOCK

    def test_with_overrides(self) -> None:
        config = MockConfig.with_overrides(chunk_size=128)
        assert config.mode == RunMode.MOCK
        assert config.chunk_size == 128

    def test_mock_chroma_stays_in_memory(self) -> None:
        assert MockConfig.default().chroma_persist_dir is None
        assert MockConfig.with_overrides(chroma_persist_dir="/tmp/x").chroma_persist_dir == "/tmp/x"
        assert QuizConfig().chroma_persist_dir == ".chroma_data"
