"""Tests for the reranker layer.

Covers the lexical reranker and the CrossEncoderReranker in mock mode,
verifying that reranking:
- Returns the correct number of results
- Sets ``reranked_score`` and orders by it
- Applies the structural bonuses and penalties from chunk metadata
- Keeps the incoming order on ties
"""

from __future__ import annotations

import pytest

from src.quiz.models import RetrievalResult
from src.retrieval.reranker import (
    CrossEncoderReranker,
    LexicalReranker,
    create_reranker,
)

LONG_TAIL = " El contenido sigue con más detalle para superar el umbral de longitud mínima."


def make_result(
    text: str,
    similarity: float,
    index: int = 0,
    **metadata: object,
) -> RetrievalResult:
    """Helper to create a RetrievalResult for testing."""
    return RetrievalResult(
        chunk_id=f"doc_chunk_{index}",
        text=text,
        similarity=similarity,
        metadata={"char_count": len(text), **metadata},  # type: ignore[dict-item]
    )


SAMPLE_RESULTS = [
    make_result("El condicional if evalúa expresiones." + LONG_TAIL, 0.6, 0),
    make_result("Las variables guardan valores." + LONG_TAIL, 0.55, 1),
    make_result("Una función agrupa instrucciones." + LONG_TAIL, 0.5, 2),
    make_result("El bucle for recorre secuencias." + LONG_TAIL, 0.45, 3),
]

QUERY = "bucle"


class TestLexicalReranker:
    def test_returns_all_results(self) -> None:
        result = LexicalReranker().rerank(QUERY, SAMPLE_RESULTS)
        assert len(result) == len(SAMPLE_RESULTS)

    def test_respects_top_n(self) -> None:
        result = LexicalReranker().rerank(QUERY, SAMPLE_RESULTS, top_n=2)
        assert len(result) == 2

    def test_sets_reranked_score(self) -> None:
        result = LexicalReranker().rerank(QUERY, SAMPLE_RESULTS)
        assert all(r.reranked_score is not None for r in result)
        scores = [r.score for r in result]
        assert scores == sorted(scores, reverse=True)

    def test_keyword_match_promoted(self) -> None:
        result = LexicalReranker(lexical_weight=0.5).rerank(QUERY, SAMPLE_RESULTS)
        assert result[0].chunk_id == "doc_chunk_3"

    def test_similarity_preserved(self) -> None:
        result = LexicalReranker().rerank(QUERY, SAMPLE_RESULTS)
        by_id = {r.chunk_id: r.similarity for r in result}
        assert by_id == {r.chunk_id: r.similarity for r in SAMPLE_RESULTS}

    def test_heading_bonus(self) -> None:
        text = "Texto sin palabras de la consulta." + LONG_TAIL
        plain = make_result(text, 0.5, 0)
        heading = make_result(text, 0.5, 1, is_heading=True)
        result = LexicalReranker().rerank("xyz", [plain, heading])
        assert result[0].chunk_id == "doc_chunk_1"
        assert result[0].reranked_score == pytest.approx(0.6)

    def test_section_title_bonus(self) -> None:
        text = "Texto sin coincidencias." + LONG_TAIL
        titled = make_result(text, 0.5, 1, section_title="Bucles anidados")
        plain = make_result(text, 0.5, 0)
        result = LexicalReranker(lexical_weight=0.0).rerank("bucles", [plain, titled])
        assert result[0].chunk_id == "doc_chunk_1"
        assert result[0].reranked_score == pytest.approx(0.65)

    def test_short_chunk_penalty(self) -> None:
        short = make_result("Corto.", 0.5, 0)
        result = LexicalReranker(lexical_weight=0.0).rerank("xyz", [short])
        assert result[0].reranked_score == pytest.approx(0.4)

    def test_score_capped(self) -> None:
        strong = make_result("bucle bucle bucle" + LONG_TAIL, 0.99, 0, is_heading=True)
        result = LexicalReranker().rerank(QUERY, [strong])
        assert result[0].reranked_score == 1.0

    def test_ties_keep_order(self) -> None:
        text = "Texto idéntico." + LONG_TAIL
        results = [make_result(text, 0.5, i) for i in range(3)]
        reranked = LexicalReranker().rerank("xyz", results)
        assert [r.chunk_id for r in reranked] == ["doc_chunk_0", "doc_chunk_1", "doc_chunk_2"]

    def test_empty_input(self) -> None:
        assert LexicalReranker().rerank(QUERY, []) == []

    def test_negative_weight_rejected(self) -> None:
        with pytest.raises(ValueError, match="lexical_weight"):
            LexicalReranker(lexical_weight=-0.1)


class TestCrossEncoderReranker:
    """Tests for CrossEncoderReranker in mock mode."""

    def test_rerank_returns_same_count_as_input(self) -> None:
        reranker = CrossEncoderReranker(mock_mode=True)
        result = reranker.rerank(QUERY, SAMPLE_RESULTS)
        assert len(result) == len(SAMPLE_RESULTS)

    def test_rerank_respects_top_n(self) -> None:
        reranker = CrossEncoderReranker(mock_mode=True)
        result = reranker.rerank(QUERY, SAMPLE_RESULTS, top_n=2)
        assert len(result) == 2

    def test_scores_in_unit_range(self) -> None:
        reranker = CrossEncoderReranker(mock_mode=True)
        for r in reranker.rerank(QUERY, SAMPLE_RESULTS):
            assert r.reranked_score is not None
            assert 0.0 <= r.reranked_score <= 1.0

    def test_mock_scores_follow_position(self) -> None:
        reranker = CrossEncoderReranker(mock_mode=True)
        result = reranker.rerank(QUERY, SAMPLE_RESULTS)
        assert [r.chunk_id for r in result] == [r.chunk_id for r in SAMPLE_RESULTS]
        assert result[0].reranked_score == pytest.approx(0.95 + 0.04)

    def test_empty_input(self) -> None:
        assert CrossEncoderReranker(mock_mode=True).rerank(QUERY, []) == []


class TestCreateReranker:
    def test_lexical_default(self) -> None:
        assert isinstance(create_reranker(), LexicalReranker)

    def test_cross_encoder_mock(self) -> None:
        reranker = create_reranker("cross_encoder", mock_mode=True)
        assert isinstance(reranker, CrossEncoderReranker)

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown reranker type"):
            create_reranker("cohere")  # type: ignore[arg-type]
