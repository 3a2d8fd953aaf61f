"""Embedding providers and the caching embedding service.

Supports:
- Sentence-transformers embeddings (production default, local model)
- OpenAI embeddings (production, API)
- Mock embeddings (demo/testing - deterministic, no model download)

``EmbeddingService`` wraps one provider with text normalization, a
content-addressed cache and fixed-size batching.
"""

from __future__ import annotations

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import numpy as np

from src.quiz.config import EmbeddingBackend, QuizConfig, RunMode
from src.quiz.errors import EmbeddingError, Err, InitializationError, Ok, Result
from src.quiz.models import Chunk, Embedding

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\w+")


class EmbeddingProvider(ABC):
    """Abstract embedding provider interface."""

    def load(self) -> None:
        """Load the model or client. Called once by the embedding service."""

    @abstractmethod
    def embed_texts(self, texts: list[str]) -> Result[list[list[float]], str]:
        """Generate embeddings for a list of texts."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the embedding dimensions."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...


class MockEmbeddingProvider(EmbeddingProvider):
    """Deterministic mock embeddings for testing and demos.

    Each word maps to a fixed pseudo-random direction, so texts sharing
    words have higher cosine similarity. A small text-specific component
    keeps distinct texts from colliding.
    """

    def __init__(self, dimensions: int = 384) -> None:
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return "mock-embeddings"

    def embed_texts(self, texts: list[str]) -> Result[list[list[float]], str]:
        try:
            return Ok([self._generate_embedding(text) for text in texts])
        except (ValueError, TypeError) as e:
            return Err(f"Mock embedding failed: {e}")

    def _generate_embedding(self, text: str) -> list[float]:
        text_hash = hashlib.sha256(text.encode()).hexdigest()
        rng = np.random.RandomState(int(text_hash[:8], 16))
        vector = rng.randn(self._dimensions) * 0.1

        for word in TOKEN_PATTERN.findall(text.lower()):
            word_seed = int(hashlib.md5(word.encode()).hexdigest()[:8], 16)
            vector += np.random.RandomState(word_seed).randn(self._dimensions)

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformers model, all-MiniLM-L6-v2 by default."""

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        dimensions: int = 384,
    ) -> None:
        self._model_name = model_name
        self._dimensions = dimensions
        self._model: Any = None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model_name

    def load(self) -> None:
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "sentence-transformers is required for local embeddings. "
                "Install it with: pip install 'sentence-transformers>=2.7.0'"
            ) from exc
        self._model = SentenceTransformer(self._model_name)

    def embed_texts(self, texts: list[str]) -> Result[list[list[float]], str]:
        if self._model is None:
            return Err("Model not loaded")
        try:
            vectors = self._model.encode(
                texts, batch_size=len(texts), normalize_embeddings=True
            )
            return Ok(vectors.tolist())
        except Exception as e:
            return Err(f"Sentence-transformers embedding failed: {e}")


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI API embedding provider."""

    def __init__(self, config: QuizConfig) -> None:
        self._config = config
        self._client: Any = None

    @property
    def dimensions(self) -> int:
        return self._config.embedding_dimensions

    @property
    def model_name(self) -> str:
        return self._config.embedding_model

    def load(self) -> None:
        from langchain_openai import OpenAIEmbeddings

        self._client = OpenAIEmbeddings(
            model=self._config.embedding_model,
            dimensions=self._config.embedding_dimensions,
            openai_api_key=self._config.openai_api_key,
        )

    def embed_texts(self, texts: list[str]) -> Result[list[list[float]], str]:
        if self._client is None:
            return Err("Client not loaded")
        try:
            return Ok(self._client.embed_documents(texts))
        except Exception as e:
            return Err(f"OpenAI embedding failed: {e}")


def create_embedding_provider(config: QuizConfig) -> EmbeddingProvider:
    """Factory function to create the appropriate embedding provider."""
    if config.mode == RunMode.MOCK:
        return MockEmbeddingProvider(dimensions=config.embedding_dimensions)
    if config.embedding_backend == EmbeddingBackend.OPENAI:
        return OpenAIEmbeddingProvider(config)
    return SentenceTransformerEmbeddingProvider(
        model_name=config.embedding_model, dimensions=config.embedding_dimensions
    )


class EmbeddingService:
    """Normalizes, caches and batches embedding requests for one provider.

    Call ``initialize()`` once before use; it is idempotent and a failed
    load is remembered rather than retried.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int = 16,
        max_text_length: int = 512,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._provider = provider
        self._batch_size = batch_size
        self._max_text_length = max_text_length
        self._cache: dict[str, tuple[float, ...]] = {}
        self._ready = False
        self._init_error: Optional[InitializationError] = None

    @classmethod
    def from_config(cls, config: QuizConfig) -> EmbeddingService:
        return cls(
            create_embedding_provider(config),
            batch_size=config.embedding_batch_size,
            max_text_length=config.embedding_max_text_length,
        )

    @property
    def model_name(self) -> str:
        return self._provider.model_name

    @property
    def dimensions(self) -> int:
        return self._provider.dimensions

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def initialize(self) -> None:
        if self._ready:
            return
        if self._init_error is not None:
            raise self._init_error
        try:
            self._provider.load()
        except Exception as exc:
            self._init_error = InitializationError(
                f"Failed to load embedding model {self._provider.model_name!r}: {exc}"
            )
            logger.error("%s", self._init_error)
            raise self._init_error from exc
        self._ready = True
        logger.info(
            "Embedding model %s ready (%d dimensions)",
            self._provider.model_name,
            self._provider.dimensions,
        )

    def normalize(self, text: str) -> str:
        """Collapse whitespace and truncate to the model's input length."""
        return " ".join(text.split())[: self._max_text_length].rstrip()

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in order, one backend call per batch of uncached texts."""
        self.initialize()
        normalized = [self.normalize(t) for t in texts]
        for position, text in enumerate(normalized):
            if not text:
                raise EmbeddingError(f"Cannot embed empty text (position {position})")

        keys = [hashlib.sha256(t.encode("utf-8")).hexdigest() for t in normalized]
        for start in range(0, len(normalized), self._batch_size):
            self._fill_cache(
                normalized[start : start + self._batch_size],
                keys[start : start + self._batch_size],
                batch_number=start // self._batch_size,
            )
        return [list(self._cache[key]) for key in keys]

    def embed_chunks(self, chunks: list[Chunk]) -> list[Embedding]:
        vectors = self.embed_batch([c.text for c in chunks])
        return [
            Embedding(chunk_id=c.id, vector=tuple(v), model_name=self.model_name)
            for c, v in zip(chunks, vectors, strict=True)
        ]

    def _fill_cache(self, texts: list[str], keys: list[str], batch_number: int) -> None:
        missing: dict[str, str] = {}
        for key, text in zip(keys, texts, strict=True):
            if key not in self._cache and key not in missing:
                missing[key] = text
        if not missing:
            return

        result = self._provider.embed_texts(list(missing.values()))
        if result.is_err():
            raise EmbeddingError(f"Embedding batch {batch_number} failed: {result.error}")  # type: ignore[union-attr]
        vectors = result.unwrap()
        if len(vectors) != len(missing):
            raise EmbeddingError(
                f"Embedding batch {batch_number} returned {len(vectors)} vectors "
                f"for {len(missing)} texts"
            )

        validated = [self._validate(v) for v in vectors]
        for key, vector in zip(missing, validated, strict=True):
            self._cache[key] = vector
        logger.debug("Embedded batch %d (%d new texts)", batch_number, len(missing))

    def _validate(self, vector: list[float]) -> tuple[float, ...]:
        arr = np.asarray(vector, dtype=np.float64)
        if arr.ndim != 1 or arr.shape[0] != self._provider.dimensions:
            raise EmbeddingError(
                f"Expected {self._provider.dimensions} dimensions, got {arr.size}"
            )
        if not np.all(np.isfinite(arr)):
            raise EmbeddingError("Embedding contains non-finite components")
        return tuple(float(x) for x in arr)

    @staticmethod
    def similarity(a: list[float], b: list[float]) -> float:
        """Cosine similarity in [-1, 1]; 0 when either vector has zero norm."""
        va = np.asarray(a, dtype=np.float64)
        vb = np.asarray(b, dtype=np.float64)
        if va.shape != vb.shape:
            raise ValueError(f"Dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
        norm_a = np.linalg.norm(va)
        norm_b = np.linalg.norm(vb)
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))

    def clear_cache(self) -> None:
        self._cache.clear()

    def info(self) -> dict[str, object]:
        return {
            "model_name": self._provider.model_name,
            "dimensions": self._provider.dimensions,
            "batch_size": self._batch_size,
            "max_text_length": self._max_text_length,
            "cache_size": len(self._cache),
            "initialized": self._ready,
        }
