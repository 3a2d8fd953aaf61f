"""Chunking strategies for splitting course documents into retrieval-sized pieces.

The semantic chunker keeps paragraphs together where they fit, falls back
to sentences and finally to words, and prefixes every chunk after the
first with the trailing words of its predecessor. Sizes are measured in
characters.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from src.quiz.models import Chunk, DocumentRef

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
SENTENCE_END = re.compile(r"[.!?]+")
LIST_ITEM = re.compile(r"^\s*(?:[-•·*]\s|\d+\.\s|[a-zA-Z]\)\s)")
INLINE_WHITESPACE = re.compile(r"[ \t\f\v]+")

HEADING_MAX_LENGTH = 100


class ChunkingStrategy(ABC):
    """Base class for all chunking strategies."""

    @abstractmethod
    def chunk(self, text: str, document_ref: DocumentRef) -> list[Chunk]:
        """Split document text into chunks."""
        ...

    def _make_chunk(
        self, body: str, document_ref: DocumentRef, index: int, prefix: str = ""
    ) -> Chunk:
        """Create a Chunk with structural metadata from its body."""
        text = f"{prefix} {body}" if prefix else body
        first_line = body.split("\n", 1)[0].strip()
        return Chunk(
            id=f"{document_ref.document_id}_chunk_{index}",
            text=text,
            index=index,
            document_ref=document_ref,
            char_count=len(text),
            word_count=len(text.split()),
            sentence_count=count_sentences(text),
            is_heading=looks_like_heading(body),
            is_list=bool(LIST_ITEM.match(first_line)),
            section_title=first_line if looks_like_heading(first_line) else None,
            overlap_chars=len(prefix) + 1 if prefix else 0,
        )


class SemanticTextChunker(ChunkingStrategy):
    """Split text at paragraph, then sentence, then word boundaries.

    Every chunk satisfies ``len(chunk.text) <= chunk_size`` unless its body
    is a single word longer than ``chunk_size``. Bodies are built within
    ``chunk_size - overlap`` characters so the overlap prefix always fits.
    """

    def __init__(self, chunk_size: int = 512, overlap: int = 50) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {overlap}")
        if overlap >= chunk_size:
            raise ValueError(f"overlap ({overlap}) must be less than chunk_size ({chunk_size})")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk(self, text: str, document_ref: DocumentRef) -> list[Chunk]:
        normalized = normalize_text(text)
        if not normalized:
            return []

        if len(normalized) <= self.chunk_size:
            return [self._make_chunk(normalized, document_ref, 0)]

        bodies = self._pack(self._units(normalized))
        chunks: list[Chunk] = []
        for index, body in enumerate(bodies):
            prefix = ""
            if index > 0 and self.overlap > 0:
                room = min(self.overlap, self.chunk_size - len(body) - 1)
                prefix = trailing_words(bodies[index - 1], room)
            chunks.append(self._make_chunk(body, document_ref, index, prefix))

        logger.debug(
            "Chunked document %s into %d chunks (size=%d, overlap=%d)",
            document_ref.document_id,
            len(chunks),
            self.chunk_size,
            self.overlap,
        )
        return chunks

    def _units(self, text: str) -> list[tuple[str, str]]:
        """Break text into (separator, unit) pairs no larger than the body budget.

        The separator is what joins the unit to a preceding unit in the
        same chunk: a blank line between paragraphs, a space otherwise.
        Only single words may exceed the budget.
        """
        budget = self.chunk_size - self.overlap
        units: list[tuple[str, str]] = []
        for paragraph in PARAGRAPH_BREAK.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) <= budget:
                units.append(("\n\n", paragraph))
                continue

            pieces: list[str] = []
            for sentence in SENTENCE_BREAK.split(paragraph):
                if len(sentence) <= budget:
                    pieces.append(sentence)
                else:
                    pieces.extend(sentence.split())
            units.extend(
                ("\n\n" if i == 0 else " ", piece) for i, piece in enumerate(pieces)
            )
        return units

    def _pack(self, units: list[tuple[str, str]]) -> list[str]:
        """Greedily accumulate units into bodies within the budget."""
        budget = self.chunk_size - self.overlap
        bodies: list[str] = []
        current = ""
        for separator, unit in units:
            if not current:
                current = unit
            elif len(current) + len(separator) + len(unit) <= budget:
                current = f"{current}{separator}{unit}"
            else:
                bodies.append(current)
                current = unit
        if current:
            bodies.append(current)
        return bodies


@dataclass(frozen=True, slots=True)
class ChunkingStats:
    total_chunks: int
    total_characters: int
    total_words: int
    average_size: float
    min_size: int
    max_size: int
    heading_chunks: int
    list_chunks: int
    overlapping_chunks: int


def chunking_stats(chunks: list[Chunk]) -> ChunkingStats:
    """Summarize a chunking run."""
    if not chunks:
        return ChunkingStats(0, 0, 0, 0.0, 0, 0, 0, 0, 0)
    sizes = [c.char_count for c in chunks]
    return ChunkingStats(
        total_chunks=len(chunks),
        total_characters=sum(sizes),
        total_words=sum(c.word_count for c in chunks),
        average_size=sum(sizes) / len(sizes),
        min_size=min(sizes),
        max_size=max(sizes),
        heading_chunks=sum(1 for c in chunks if c.is_heading),
        list_chunks=sum(1 for c in chunks if c.is_list),
        overlapping_chunks=sum(1 for c in chunks if c.overlap_chars > 0),
    )


def normalize_text(text: str) -> str:
    """Normalize line endings and inline whitespace, keeping paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [INLINE_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def trailing_words(text: str, max_chars: int) -> str:
    """Return the longest run of whole trailing words within ``max_chars``."""
    if max_chars <= 0:
        return ""
    taken: list[str] = []
    length = 0
    for word in reversed(text.split()):
        added = len(word) + (1 if taken else 0)
        if length + added > max_chars:
            break
        taken.append(word)
        length += added
    return " ".join(reversed(taken))


def count_sentences(text: str) -> int:
    return sum(1 for part in SENTENCE_END.split(text) if part.strip())


def looks_like_heading(text: str) -> bool:
    """Short line without a terminal period, mostly uppercase or title case."""
    stripped = text.strip()
    if not stripped or len(stripped) >= HEADING_MAX_LENGTH or "\n" in stripped:
        return False
    if stripped.endswith("."):
        return False
    letters = [c for c in stripped if c.isalpha()]
    if not letters:
        return False
    if sum(1 for c in letters if c.isupper()) / len(letters) >= 0.6:
        return True
    words = [w for w in stripped.split() if w[0].isalpha() and len(w) > 3]
    return bool(words) and len(stripped.split()) <= 10 and all(w[0].isupper() for w in words)
