"""Tests for the semantic text chunker."""

import pytest
from hypothesis import given, settings, strategies as st

from src.chunking.strategies import (
    SemanticTextChunker,
    chunking_stats,
    count_sentences,
    looks_like_heading,
    normalize_text,
    trailing_words,
)
from src.quiz.models import DocumentRef


WORDS = st.text(alphabet="abcdefghijklmnñopqrstuvwxyz", min_size=1, max_size=12)
SENTENCES = st.builds(
    lambda words, end: " ".join(words) + end,
    st.lists(WORDS, min_size=1, max_size=15),
    st.sampled_from([".", "!", "?"]),
)
PARAGRAPHS = st.lists(SENTENCES, min_size=1, max_size=6).map(" ".join)
DOCUMENTS = st.lists(PARAGRAPHS, min_size=1, max_size=8).map("\n\n".join)


def make_ref(document_id: str = "doc-1") -> DocumentRef:
    return DocumentRef(document_id=document_id, subject_id="PRG", topic_id="bucles")


def make_words(word_count: int = 100) -> str:
    """Create text with a specific number of distinct words."""
    return " ".join(f"palabra{i}" for i in range(word_count))


def make_course_text() -> str:
    """Create text with a heading and several paragraphs."""
    paragraphs = [
        "BUCLES EN PYTHON",
        "Un bucle repite un bloque de instrucciones mientras se cumple una condición. "
        "El bucle while evalúa la condición antes de cada iteración.",
        "El bucle for recorre los elementos de una secuencia. "
        "Se usa con listas, cadenas y rangos de números.",
        "La instrucción break termina el bucle. "
        "La instrucción continue salta a la siguiente iteración.",
    ]
    return "\n\n".join(paragraphs)


class TestSemanticTextChunker:
    def test_short_text_single_chunk(self) -> None:
        chunker = SemanticTextChunker(chunk_size=512, overlap=50)
        chunks = chunker.chunk("Un texto corto sobre bucles.", make_ref())
        assert len(chunks) == 1
        assert chunks[0].text == "Un texto corto sobre bucles."
        assert chunks[0].overlap_chars == 0
        assert chunks[0].index == 0

    def test_empty_text_no_chunks(self) -> None:
        chunker = SemanticTextChunker()
        assert chunker.chunk("", make_ref()) == []
        assert chunker.chunk("   \n\n  \t ", make_ref()) == []

    def test_long_text_respects_size(self) -> None:
        chunker = SemanticTextChunker(chunk_size=120, overlap=20)
        chunks = chunker.chunk(make_course_text(), make_ref())
        assert len(chunks) > 1
        assert all(len(c.text) <= 120 for c in chunks)

    def test_chunk_ids_and_indices(self) -> None:
        chunker = SemanticTextChunker(chunk_size=100, overlap=10)
        chunks = chunker.chunk(make_words(80), make_ref("apuntes"))
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert [c.id for c in chunks] == [f"apuntes_chunk_{i}" for i in range(len(chunks))]

    def test_overlap_repeats_previous_words(self) -> None:
        chunker = SemanticTextChunker(chunk_size=100, overlap=30)
        chunks = chunker.chunk(make_words(80), make_ref())
        assert len(chunks) >= 2
        for previous, current in zip(chunks, chunks[1:]):
            assert current.overlap_chars > 0
            prefix = current.text[: current.overlap_chars].strip()
            assert previous.body.endswith(prefix)
            assert len(prefix) <= 30

    def test_zero_overlap(self) -> None:
        chunker = SemanticTextChunker(chunk_size=100, overlap=0)
        chunks = chunker.chunk(make_words(80), make_ref())
        assert all(c.overlap_chars == 0 for c in chunks)
        assert all(c.text == c.body for c in chunks)

    def test_paragraphs_kept_together(self) -> None:
        chunker = SemanticTextChunker(chunk_size=200, overlap=20)
        chunks = chunker.chunk(make_course_text(), make_ref())
        bodies = [c.body for c in chunks]
        assert any("El bucle for recorre los elementos de una secuencia." in b for b in bodies)

    def test_document_ref_propagated(self) -> None:
        ref = make_ref("tema-3")
        chunks = SemanticTextChunker(chunk_size=100, overlap=10).chunk(make_words(60), ref)
        assert all(c.document_ref == ref for c in chunks)
        assert all(c.metadata()["document_id"] == "tema-3" for c in chunks)

    def test_heading_metadata(self) -> None:
        chunker = SemanticTextChunker(chunk_size=512, overlap=50)
        chunks = chunker.chunk("FUNCIONES RECURSIVAS", make_ref())
        assert chunks[0].is_heading
        assert chunks[0].section_title == "FUNCIONES RECURSIVAS"

    def test_list_metadata(self) -> None:
        chunker = SemanticTextChunker(chunk_size=512, overlap=50)
        chunks = chunker.chunk("- while\n- for\n- do while", make_ref())
        assert chunks[0].is_list

    def test_oversized_word_emitted_alone(self) -> None:
        chunker = SemanticTextChunker(chunk_size=20, overlap=5)
        long_word = "x" * 40
        chunks = chunker.chunk(f"corto {long_word} fin", make_ref())
        assert any(c.body == long_word for c in chunks)

    def test_invalid_chunk_size(self) -> None:
        with pytest.raises(ValueError, match="chunk_size must be positive"):
            SemanticTextChunker(chunk_size=0)

    def test_negative_overlap(self) -> None:
        with pytest.raises(ValueError, match="overlap must be non-negative"):
            SemanticTextChunker(chunk_size=100, overlap=-1)

    def test_overlap_not_less_than_size(self) -> None:
        with pytest.raises(ValueError, match="must be less than chunk_size"):
            SemanticTextChunker(chunk_size=50, overlap=50)

    @given(
        words=st.lists(
            st.text(alphabet="abcdefghijklmnñopqrstuvwxyz", min_size=1, max_size=12),
            min_size=1,
            max_size=200,
        ),
        chunk_size=st.integers(min_value=40, max_value=300),
    )
    @settings(max_examples=30)
    def test_chunks_cover_all_words_in_order(self, words: list[str], chunk_size: int) -> None:
        text = " ".join(words)
        chunker = SemanticTextChunker(chunk_size=chunk_size, overlap=chunk_size // 5)
        chunks = chunker.chunk(text, make_ref())
        covered = [w for c in chunks for w in c.body.split()]
        assert covered == text.split()

    @given(
        words=st.lists(
            st.text(alphabet="abcdefghij", min_size=1, max_size=10), min_size=1, max_size=150
        ),
        chunk_size=st.integers(min_value=30, max_value=200),
    )
    @settings(max_examples=30)
    def test_size_bound_property(self, words: list[str], chunk_size: int) -> None:
        chunker = SemanticTextChunker(chunk_size=chunk_size, overlap=chunk_size // 4)
        chunks = chunker.chunk(" ".join(words), make_ref())
        assert all(len(c.text) <= chunk_size for c in chunks)

    @given(document=DOCUMENTS, chunk_size=st.integers(min_value=40, max_value=300))
    @settings(max_examples=40)
    def test_structured_text_covers_all_words_in_order(self, document: str, chunk_size: int) -> None:
        chunker = SemanticTextChunker(chunk_size=chunk_size, overlap=chunk_size // 5)
        chunks = chunker.chunk(document, make_ref())
        covered = [w for c in chunks for w in c.body.split()]
        assert covered == document.split()
        assert all(len(c.text) <= chunk_size for c in chunks)

    @given(document=DOCUMENTS, chunk_size=st.integers(min_value=40, max_value=300))
    @settings(max_examples=40)
    def test_fitting_paragraphs_stay_whole(self, document: str, chunk_size: int) -> None:
        overlap = chunk_size // 4
        chunks = SemanticTextChunker(chunk_size=chunk_size, overlap=overlap).chunk(
            document, make_ref()
        )
        for paragraph in document.split("\n\n"):
            if len(paragraph) <= chunk_size - overlap:
                assert any(paragraph in c.body for c in chunks)


class TestHelpers:
    def test_normalize_text_keeps_paragraphs(self) -> None:
        text = "Hola   mundo\r\n\r\n\r\n\tsegundo  párrafo"
        assert normalize_text(text) == "Hola mundo\n\nsegundo párrafo"

    def test_trailing_words(self) -> None:
        assert trailing_words("uno dos tres cuatro", 11) == "tres cuatro"
        assert trailing_words("uno dos", 0) == ""
        assert trailing_words("palabralarga", 5) == ""

    def test_count_sentences(self) -> None:
        assert count_sentences("Una. Dos! Tres?") == 3
        assert count_sentences("sin puntuación") == 1

    def test_looks_like_heading(self) -> None:
        assert looks_like_heading("INTRODUCCIÓN")
        assert looks_like_heading("Estructuras de Control")
        assert not looks_like_heading("Esto es una frase normal.")
        assert not looks_like_heading("linea uno\nlinea dos")
        assert not looks_like_heading("x" * 150)


class TestChunkingStats:
    def test_stats(self) -> None:
        chunks = SemanticTextChunker(chunk_size=100, overlap=10).chunk(make_words(60), make_ref())
        stats = chunking_stats(chunks)
        assert stats.total_chunks == len(chunks)
        assert stats.min_size <= stats.average_size <= stats.max_size
        assert stats.overlapping_chunks == len(chunks) - 1

    def test_empty_stats(self) -> None:
        stats = chunking_stats([])
        assert stats.total_chunks == 0
        assert stats.average_size == 0.0
