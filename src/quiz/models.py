"""Domain models for the quiz generator.

Defines the records flowing through ingestion (documents, chunks,
embeddings), retrieval (filters, results, stats), assignment and
question generation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
from uuid import uuid4


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Ingestion ---


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """Ownership of an uploaded document within the course structure."""

    document_id: str
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    title: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.document_id.strip():
            raise ValueError("document_id cannot be empty")


@dataclass(frozen=True, slots=True)
class Chunk:
    """A contiguous span of document text with structural metadata.

    ``text`` starts with ``overlap_chars`` characters repeated from the
    end of the previous chunk; ``body`` is the text without that prefix.
    """

    id: str
    text: str
    index: int
    document_ref: DocumentRef
    char_count: int
    word_count: int
    sentence_count: int
    is_heading: bool = False
    is_list: bool = False
    section_title: Optional[str] = None
    overlap_chars: int = 0

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("Chunk text cannot be empty")
        if self.index < 0:
            raise ValueError(f"Chunk index must be non-negative, got {self.index}")
        if not 0 <= self.overlap_chars < len(self.text):
            raise ValueError(f"Invalid overlap length {self.overlap_chars}")

    @property
    def body(self) -> str:
        return self.text[self.overlap_chars :]

    def metadata(self) -> dict[str, str | int | bool]:
        """Flat metadata for vector index storage. None values are omitted."""
        ref = self.document_ref
        values: dict[str, str | int | bool | None] = {
            "document_id": ref.document_id,
            "subject_id": ref.subject_id,
            "topic_id": ref.topic_id,
            "subtopic_id": ref.subtopic_id,
            "title": ref.title,
            "chunk_index": self.index,
            "char_count": self.char_count,
            "word_count": self.word_count,
            "sentence_count": self.sentence_count,
            "is_heading": self.is_heading,
            "is_list": self.is_list,
            "section_title": self.section_title,
            "overlap_chars": self.overlap_chars,
        }
        return {k: v for k, v in values.items() if v is not None}

    @classmethod
    def from_metadata(
        cls, chunk_id: str, text: str, metadata: dict[str, str | int | float | bool]
    ) -> Chunk:
        """Rebuild a chunk from what ``metadata()`` stored."""

        def optional(key: str) -> Optional[str]:
            value = metadata.get(key)
            return None if value is None else str(value)

        return cls(
            id=chunk_id,
            text=text,
            index=int(metadata.get("chunk_index", 0)),
            document_ref=DocumentRef(
                document_id=str(metadata["document_id"]),
                subject_id=optional("subject_id"),
                topic_id=optional("topic_id"),
                subtopic_id=optional("subtopic_id"),
                title=optional("title"),
            ),
            char_count=int(metadata.get("char_count", len(text))),
            word_count=int(metadata.get("word_count", len(text.split()))),
            sentence_count=int(metadata.get("sentence_count", 0)),
            is_heading=bool(metadata.get("is_heading", False)),
            is_list=bool(metadata.get("is_list", False)),
            section_title=optional("section_title"),
            overlap_chars=int(metadata.get("overlap_chars", 0)),
        )


@dataclass(frozen=True, slots=True)
class Embedding:
    """A fixed-dimension vector for one chunk."""

    chunk_id: str
    vector: tuple[float, ...]
    model_name: str
    generated_at: str = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not self.vector:
            raise ValueError("Embedding vector cannot be empty")
        if not all(math.isfinite(x) for x in self.vector):
            raise ValueError(f"Embedding for {self.chunk_id!r} has non-finite components")

    @property
    def dims(self) -> int:
        return len(self.vector)


@dataclass(frozen=True, slots=True)
class IngestionReport:
    """Outcome of ingesting one document."""

    document_id: str
    chunks_indexed: int
    chunks_replaced: int = 0


# --- Retrieval ---


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """Equality filters on chunk ownership. Unset fields do not filter."""

    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    document_id: Optional[str] = None

    def as_dict(self) -> dict[str, str]:
        values = {
            "subject_id": self.subject_id,
            "topic_id": self.topic_id,
            "subtopic_id": self.subtopic_id,
            "document_id": self.document_id,
        }
        return {k: v for k, v in values.items() if v is not None}

    def matches(self, chunk: Chunk) -> bool:
        metadata = chunk.metadata()
        return all(metadata.get(k) == v for k, v in self.as_dict().items())


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Per-request retrieval options."""

    limit: int = 10
    threshold: float = 0.15
    rerank: bool = True
    include_metadata: bool = True

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if not -1.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [-1, 1], got {self.threshold}")


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    """A chunk returned from retrieval with its similarity to the query."""

    chunk_id: str
    text: str
    similarity: float
    reranked_score: Optional[float] = None
    metadata: dict[str, str | int | float | bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not -1.0 <= self.similarity <= 1.0:
            raise ValueError(f"Similarity must be between -1 and 1, got {self.similarity}")

    @property
    def score(self) -> float:
        """Score used for final ordering."""
        return self.similarity if self.reranked_score is None else self.reranked_score


@dataclass(frozen=True, slots=True)
class SearchStats:
    total_found: int = 0
    after_filtering: int = 0
    returned: int = 0
    search_time_ms: float = 0.0
    threshold: float = 0.0
    degraded: bool = False


@dataclass(frozen=True, slots=True)
class SearchResponse:
    query: str
    results: tuple[RetrievalResult, ...]
    stats: SearchStats
    filters: SearchFilters = field(default_factory=SearchFilters)

    @property
    def has_content(self) -> bool:
        return len(self.results) > 0

    @property
    def average_similarity(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.similarity for r in self.results) / len(self.results)

    def context_text(self, max_chunks: int) -> str:
        """Join the best ``max_chunks`` chunk texts into a grounding block."""
        return "\n\n".join(r.text for r in self.results[:max_chunks])

    @classmethod
    def empty(
        cls,
        query: str,
        filters: SearchFilters,
        threshold: float,
        degraded: bool = False,
    ) -> SearchResponse:
        return cls(
            query=query,
            results=(),
            stats=SearchStats(threshold=threshold, degraded=degraded),
            filters=filters,
        )


# --- Questions ---


class QuestionType(str, Enum):
    """Kind of generated question."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"

    @classmethod
    def parse(cls, value: str) -> QuestionType:
        """Accept canonical values and the labels used by the course UI."""
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        if key in _TRUE_FALSE_ALIASES:
            return cls.TRUE_FALSE
        if key in _MULTIPLE_CHOICE_ALIASES:
            return cls.MULTIPLE_CHOICE
        raise ValueError(f"Unknown question type: {value!r}")


_TRUE_FALSE_ALIASES = {"true_false", "truefalse", "verdadero/falso", "verdadero_falso", "tf"}
_MULTIPLE_CHOICE_ALIASES = {
    "multiple_choice",
    "multiplechoice",
    "opción_múltiple",
    "opcion_multiple",
    "mc",
}

TRUE_FALSE_LABELS = ("Verdadero", "Falso")


class RequestOrigin(str, Enum):
    """Who asked for the questions."""

    STUDENT = "student"
    MANAGER = "manager"


MANAGER_DIFFICULTIES = ("Fácil", "Medio", "Avanzado")
MAX_MANAGER_QUESTIONS = 20


@dataclass(frozen=True, slots=True)
class Choice:
    """Canonical answer option."""

    text: str
    is_correct: bool


@dataclass(frozen=True, slots=True)
class PlainTextChoice:
    """LLM choice given as a bare string."""

    text: str


@dataclass(frozen=True, slots=True)
class ScoredChoice:
    """LLM choice given as ``{"text": ..., "isCorrect": ...}``."""

    text: str
    is_correct: bool


RawChoice = Union[PlainTextChoice, ScoredChoice]


@dataclass(frozen=True, slots=True)
class GeneratedQuestion:
    """A validated question ready to be stored."""

    text: str
    question_type: QuestionType
    choices: tuple[Choice, ...]
    difficulty: str
    topic: str
    subject: str
    language: str
    source_model: str
    generation_prompt: str
    origin: RequestOrigin = RequestOrigin.STUDENT
    explanation: Optional[str] = None
    subtopic_id: Optional[str] = None
    generated: bool = True
    verified: bool = False
    question_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: str = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("Question text cannot be empty")
        if len(self.choices) < 2:
            raise ValueError("A question needs at least two choices")
        if sum(1 for c in self.choices if c.is_correct) != 1:
            raise ValueError("A question needs exactly one correct choice")

    @property
    def answer_index(self) -> int:
        return next(i for i, c in enumerate(self.choices) if c.is_correct)


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """A student's request for practice questions."""

    language: str
    difficulty: str
    topic: str
    num_questions: int
    student_email: str
    subject: str
    subtopic_id: Optional[str] = None
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE

    def __post_init__(self) -> None:
        if self.num_questions <= 0:
            raise ValueError(f"num_questions must be positive, got {self.num_questions}")
        if not self.student_email.strip():
            raise ValueError("student_email cannot be empty")
        if not self.subject.strip():
            raise ValueError("subject cannot be empty")
        if not self.topic.strip():
            raise ValueError("topic cannot be empty")


@dataclass(frozen=True, slots=True)
class ManagerGenerationRequest:
    """An instructor's request to generate questions for a topic."""

    subject_id: str
    topic_id: str
    topic: str
    difficulty: str
    count: int
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    subtopic_id: Optional[str] = None
    subtopic: Optional[str] = None
    include_explanations: bool = True
    language: str = "español"

    def __post_init__(self) -> None:
        if self.difficulty not in MANAGER_DIFFICULTIES:
            raise ValueError(
                f"difficulty must be one of {', '.join(MANAGER_DIFFICULTIES)}, "
                f"got {self.difficulty!r}"
            )
        if not 1 <= self.count <= MAX_MANAGER_QUESTIONS:
            raise ValueError(
                f"count must be between 1 and {MAX_MANAGER_QUESTIONS}, got {self.count}"
            )
        if not self.topic.strip():
            raise ValueError("topic cannot be empty")


@dataclass(frozen=True, slots=True)
class GenerationOutcome:
    """Validated questions plus how they were produced."""

    questions: tuple[GeneratedQuestion, ...]
    model_name: str
    abc_testing_active: bool
    grounded: bool
    search_stats: Optional[SearchStats] = None
    prompt_hash: Optional[str] = None


# --- Students ---


@dataclass(frozen=True, slots=True)
class StudentSubjectAssignment:
    """The LLM (and optional prompt variant) assigned to a student in a subject."""

    student_email: str
    subject_name: str
    assigned_model: str
    abc_testing_active: bool
    prompt_hash: Optional[str] = None
    prompt_text: Optional[str] = None
    updated_at: str = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not self.student_email.strip():
            raise ValueError("student_email cannot be empty")
        if not self.subject_name.strip():
            raise ValueError("subject_name cannot be empty")


@dataclass(frozen=True, slots=True)
class AnsweredQuestion:
    """A question a student has already answered."""

    question_id: str
    text: str
    choices: tuple[str, ...]
    answer: int
    student_answer: int
    topic: str
    language: str
    reported: bool = False
    answered_at: str = field(default_factory=_utc_now)

    @property
    def correct(self) -> bool:
        return self.answer == self.student_answer
