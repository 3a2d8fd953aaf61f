"""Reranker layer between similarity search and truncation.

Two implementations are supported:

1. LexicalReranker (default): BM25 over the candidate texts combined
   with structural bonuses from chunk metadata (headings, matching
   section titles, very short chunks).
2. CrossEncoderReranker: uses a sentence-transformers CrossEncoder model
   (e.g., cross-encoder/ms-marco-MiniLM-L-6-v2) to score query-chunk pairs.

Both return results with ``reranked_score`` set, sorted by it (highest
first). Ties keep the incoming order.

Usage::

    from src.retrieval.reranker import create_reranker

    reranker = create_reranker("lexical")
    reranked = reranker.rerank(query, results, top_n=10)
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Literal, Optional

from rank_bm25 import BM25Okapi

from src.quiz.models import RetrievalResult

TOKEN_PATTERN = re.compile(r"\w+")

HEADING_BONUS = 0.1
SECTION_TITLE_BONUS = 0.15
SHORT_CHUNK_PENALTY = 0.1
SHORT_CHUNK_CHARS = 100


def _tokenize(text: str) -> list[str]:
    return TOKEN_PATTERN.findall(text.lower())


def _sorted_by_score(results: list[RetrievalResult], top_n: Optional[int]) -> list[RetrievalResult]:
    ordered = sorted(results, key=lambda r: r.score, reverse=True)
    return ordered[: top_n or len(ordered)]


class BaseReranker(ABC):
    """Abstract base class for reranker implementations."""

    @abstractmethod
    def rerank(
        self,
        query: str,
        results: list[RetrievalResult],
        top_n: Optional[int] = None,
    ) -> list[RetrievalResult]:
        """Rerank retrieval results by relevance to the query.

        Args:
            query: The search query.
            results: Results from similarity search, best first.
            top_n: If set, return only the top N results. Otherwise return all.

        Returns:
            Results with ``reranked_score`` set, sorted by it (highest first).
        """


class LexicalReranker(BaseReranker):
    """BM25 keyword evidence plus structural bonuses on top of similarity.

    The final score is ``similarity + lexical_weight * bm25`` with BM25
    normalized to [0, 1] over the candidates, adjusted by the structural
    bonuses and capped at 1.0.

    Args:
        lexical_weight: Weight of the normalized BM25 score.
    """

    def __init__(self, lexical_weight: float = 0.2) -> None:
        if lexical_weight < 0:
            raise ValueError(f"lexical_weight must be non-negative, got {lexical_weight}")
        self._lexical_weight = lexical_weight

    def rerank(
        self,
        query: str,
        results: list[RetrievalResult],
        top_n: Optional[int] = None,
    ) -> list[RetrievalResult]:
        if not results:
            return []

        lexical = self._bm25_scores(query, results)
        needle = query.strip().lower()
        rescored: list[RetrievalResult] = []
        for result, keyword_score in zip(results, lexical, strict=True):
            score = result.similarity + self._lexical_weight * keyword_score
            if result.metadata.get("is_heading"):
                score += HEADING_BONUS
            section_title = str(result.metadata.get("section_title") or "").lower()
            if needle and needle in section_title:
                score += SECTION_TITLE_BONUS
            if int(result.metadata.get("char_count", len(result.text))) < SHORT_CHUNK_CHARS:
                score -= SHORT_CHUNK_PENALTY
            rescored.append(replace(result, reranked_score=min(score, 1.0)))

        return _sorted_by_score(rescored, top_n)

    @staticmethod
    def _bm25_scores(query: str, results: list[RetrievalResult]) -> list[float]:
        corpus = [_tokenize(r.text) for r in results]
        query_tokens = _tokenize(query)
        if not query_tokens or not any(corpus):
            return [0.0] * len(results)

        scores = BM25Okapi(corpus).get_scores(query_tokens)
        max_score = float(max(scores))
        if max_score <= 0:
            return [0.0] * len(results)
        return [max(0.0, float(s) / max_score) for s in scores]


class CrossEncoderReranker(BaseReranker):
    """Scores each (query, chunk) pair jointly with a CrossEncoder.

    Raw logits go through a sigmoid so ``reranked_score`` stays in [0, 1].
    With ``mock_mode`` the model is never loaded and scores decay with the
    incoming position.
    """

    def __init__(
        self,
        model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2",
        mock_mode: bool = False,
    ) -> None:
        self._model_name = model_name
        self._mock_mode = mock_mode
        self._model: Any = None

        if not mock_mode:
            self._load_model()

    def _load_model(self) -> None:
        try:
            from sentence_transformers import CrossEncoder  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "CrossEncoderReranker needs sentence-transformers; "
                "install the ml extra: pip install 'ai-quiz-generator[ml]'"
            ) from exc
        self._model = CrossEncoder(self._model_name)

    def rerank(
        self,
        query: str,
        results: list[RetrievalResult],
        top_n: Optional[int] = None,
    ) -> list[RetrievalResult]:
        """Rerank results using cross-encoder scoring.

        In mock mode, scores are ``0.95 - 0.07 * i + 0.01 * (n - i)`` so the
        output is predictable in tests.
        """
        if not results:
            return []

        if self._mock_mode:
            n = len(results)
            scores = [max(0.0, min(1.0, 0.95 - i * 0.07 + (n - i) * 0.01)) for i in range(n)]
        else:
            pairs = [[query, r.text] for r in results]
            raw_scores: list[float] = self._model.predict(pairs).tolist()
            scores = [1.0 / (1.0 + math.exp(-s)) for s in raw_scores]

        rescored = [
            replace(r, reranked_score=s) for r, s in zip(results, scores, strict=True)
        ]
        return _sorted_by_score(rescored, top_n)


def create_reranker(
    reranker_type: Literal["lexical", "cross_encoder"] = "lexical",
    *,
    model_name: Optional[str] = None,
    mock_mode: bool = False,
) -> BaseReranker:
    """Build the reranker named by ``reranker_type``.

    Raises:
        ValueError: If ``reranker_type`` is not recognised.
    """
    if reranker_type == "lexical":
        return LexicalReranker()
    if reranker_type == "cross_encoder":
        return CrossEncoderReranker(
            model_name or "cross-encoder/ms-marco-MiniLM-L-6-v2", mock_mode=mock_mode
        )
    raise ValueError(
        f"Unknown reranker type: {reranker_type!r}. Expected 'lexical' or 'cross_encoder'."
    )
