"""Configuration management for the quiz generator.

Supports three modes:
- Production: Real LLM and embedding backends
- Mock: Deterministic fake responses for demos and testing
- Hybrid: Real embeddings with mock LLM (cost-effective testing)

The model catalog (the LLMs a subject may be assigned) is part of the
configuration and can be given inline or loaded from a JSON file.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from src.quiz.errors import ConfigurationError


class RunMode(str, Enum):
    """Pipeline execution mode."""

    PRODUCTION = "production"
    MOCK = "mock"
    HYBRID = "hybrid"


class EmbeddingBackend(str, Enum):
    """Available embedding backends outside mock mode."""

    SENTENCE_TRANSFORMERS = "sentence_transformers"
    OPENAI = "openai"


class VectorIndexKind(str, Enum):
    """Where chunk vectors are kept."""

    MEMORY = "memory"
    CHROMA = "chroma"


class ModelSpec(BaseModel):
    """One entry of the LLM model catalog."""

    name: str = Field(..., min_length=1, description="Catalog name, e.g. OpenAI_GPT_4o_Mini")
    provider: str = Field(default="openai", description="Backend family")
    model: str = Field(default="gpt-4o-mini", description="Backend model identifier")
    token_price: float = Field(default=0.0, ge=0.0, description="Price per token")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=4096, gt=0, description="Max tokens for the response")
    base_url: Optional[str] = Field(default=None, description="OpenAI-compatible endpoint")
    api_key_env: Optional[str] = Field(
        default=None, description="Environment variable holding the API key"
    )


DEFAULT_MODELS: list[ModelSpec] = [
    ModelSpec(name="OpenAI_GPT_4o_Mini", model="gpt-4o-mini", token_price=0.00000015),
    ModelSpec(name="OpenAI_GPT_4o", model="gpt-4o", token_price=0.0000025),
]


class QuizConfig(BaseSettings):
    """Main quiz generator configuration.

    All settings can be overridden via environment variables with the AIQUIZ_ prefix.
    Example: AIQUIZ_MODE=mock, AIQUIZ_OPENAI_API_KEY=sk-...
    """

    model_config = {"env_prefix": "AIQUIZ_"}

    # Core mode
    mode: RunMode = Field(default=RunMode.MOCK, description="Pipeline execution mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # LLM settings
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    llm_timeout_seconds: float = Field(default=60.0, gt=0, description="LLM call timeout")
    models: list[ModelSpec] = Field(
        default_factory=lambda: list(DEFAULT_MODELS), description="LLM model catalog"
    )
    models_file: Optional[str] = Field(
        default=None, description="JSON catalog file; replaces `models` when set"
    )
    default_model: str = Field(
        default="OpenAI_GPT_4o_Mini", description="Model used outside A/B testing"
    )
    manager_model: Optional[str] = Field(
        default=None, description="Model for manager requests; first catalog entry if unset"
    )

    # Embedding settings
    embedding_backend: EmbeddingBackend = Field(
        default=EmbeddingBackend.SENTENCE_TRANSFORMERS, description="Embedding backend"
    )
    embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2", description="Embedding model name"
    )
    embedding_dimensions: int = Field(default=384, gt=0, description="Embedding vector dimensions")
    embedding_batch_size: int = Field(default=16, gt=0, description="Texts per backend call")
    embedding_max_text_length: int = Field(
        default=512, gt=0, description="Characters kept per text before embedding"
    )

    # Vector index settings
    vector_index: VectorIndexKind = Field(
        default=VectorIndexKind.MEMORY, description="Vector index implementation"
    )
    chroma_persist_dir: Optional[str] = Field(
        default=".chroma_data", description="ChromaDB persistence dir; in-memory when unset"
    )
    chroma_collection: str = Field(default="course_chunks", description="ChromaDB collection name")

    # Chunking settings
    chunk_size: int = Field(default=512, gt=0, description="Maximum chunk size in characters")
    chunk_overlap: int = Field(default=50, ge=0, description="Overlap between chunks in characters")

    # Retrieval settings
    search_limit: int = Field(default=10, gt=0, description="Default number of results")
    search_max_limit: int = Field(default=50, gt=0, description="Upper bound for a request limit")
    search_threshold: float = Field(default=0.15, description="Default similarity threshold")
    student_search_threshold: float = Field(
        default=0.3, description="Similarity threshold for student question grounding"
    )
    rerank_results: bool = Field(default=True, description="Rerank retrieved chunks")
    reranker: str = Field(default="lexical", description="Reranker: lexical or cross_encoder")
    reranker_model: str = Field(
        default="cross-encoder/ms-marco-MiniLM-L-6-v2", description="Cross-encoder model name"
    )
    context_budget: int = Field(
        default=4000, gt=0, description="Characters of course content placed in a prompt"
    )
    context_max_chunks: int = Field(default=5, gt=0, description="Chunks joined into context")

    # A/B testing
    ab_testing_file: Optional[str] = Field(
        default=None, description="JSON file with per-subject A/B testing configuration"
    )

    # API settings
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    def model_catalog(self) -> dict[str, ModelSpec]:
        """Return the catalog keyed by model name, in declaration order."""
        specs = load_model_catalog(self.models_file) if self.models_file else self.models
        catalog: dict[str, ModelSpec] = {}
        for spec in specs:
            if spec.name in catalog:
                raise ConfigurationError(f"Duplicate model in catalog: {spec.name!r}")
            catalog[spec.name] = spec
        if not catalog:
            raise ConfigurationError("The model catalog is empty")
        return catalog


def load_model_catalog(path: str | Path) -> list[ModelSpec]:
    """Load a model catalog from a JSON file.

    The file holds either a list of entries or ``{"models": [...]}``.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read model catalog {path}: {exc}") from exc

    entries = raw.get("models") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise ConfigurationError(f"Model catalog {path} must contain a list of models")

    try:
        return [ModelSpec.model_validate(entry) for entry in entries]
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid model catalog {path}: {exc}") from exc


class MockConfig:
    """Configuration presets for mock/demo mode.

    Returns deterministic responses without requiring any API keys.
    Chroma, when selected, stays in memory unless a persist dir is given.
    """

    @staticmethod
    def default() -> QuizConfig:
        """Create a default mock configuration."""
        return QuizConfig(mode=RunMode.MOCK, chroma_persist_dir=None)

    @staticmethod
    def with_overrides(**kwargs: object) -> QuizConfig:
        """Create mock config with specific overrides."""
        defaults: dict[str, object] = {"mode": RunMode.MOCK, "chroma_persist_dir": None}
        defaults.update(kwargs)
        return QuizConfig(**defaults)  # type: ignore[arg-type]
