"""Question persistence and student answer history."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from src.quiz.errors import Err, Ok, Result
from src.quiz.models import AnsweredQuestion, GeneratedQuestion


class QuestionRepository(ABC):
    """Storage for generated questions and the answers students give."""

    @abstractmethod
    def save_all(self, questions: Sequence[GeneratedQuestion]) -> Result[int, str]:
        """Store a batch of questions. Either all are stored or none."""
        ...

    @abstractmethod
    def get(self, question_id: str) -> Optional[GeneratedQuestion]:
        ...

    @abstractmethod
    def record_answer(
        self,
        question_id: str,
        student_email: str,
        student_answer: int,
        reported: bool = False,
    ) -> Result[AnsweredQuestion, str]:
        ...

    @abstractmethod
    def history(
        self,
        student_email: str,
        language: str,
        topic: Optional[str] = None,
        limit: int = 20,
    ) -> list[AnsweredQuestion]:
        """Most recent answers, those on ``topic`` first."""
        ...

    @abstractmethod
    def count_reports(self, subject: str, model_name: str) -> int:
        """Answers flagged as reported on questions of ``model_name`` in ``subject``."""
        ...


@dataclass(frozen=True, slots=True)
class _AnswerRecord:
    student_email: str
    subject: str
    source_model: str
    answer: AnsweredQuestion


class InMemoryQuestionRepository(QuestionRepository):
    def __init__(self) -> None:
        self._questions: dict[str, GeneratedQuestion] = {}
        self._answers: list[_AnswerRecord] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._questions)

    def save_all(self, questions: Sequence[GeneratedQuestion]) -> Result[int, str]:
        with self._lock:
            ids = [q.question_id for q in questions]
            if len(set(ids)) != len(ids):
                return Err("Duplicate question ids in batch")
            clashes = [qid for qid in ids if qid in self._questions]
            if clashes:
                return Err(f"Questions already stored: {', '.join(clashes)}")
            for question in questions:
                self._questions[question.question_id] = question
        return Ok(len(questions))

    def get(self, question_id: str) -> Optional[GeneratedQuestion]:
        return self._questions.get(question_id)

    def record_answer(
        self,
        question_id: str,
        student_email: str,
        student_answer: int,
        reported: bool = False,
    ) -> Result[AnsweredQuestion, str]:
        question = self._questions.get(question_id)
        if question is None:
            return Err(f"Unknown question {question_id!r}")
        if not 0 <= student_answer < len(question.choices):
            return Err(f"Answer {student_answer} out of range for {question_id!r}")

        answered = AnsweredQuestion(
            question_id=question_id,
            text=question.text,
            choices=tuple(c.text for c in question.choices),
            answer=question.answer_index,
            student_answer=student_answer,
            topic=question.topic,
            language=question.language,
            reported=reported,
        )
        with self._lock:
            self._answers.append(
                _AnswerRecord(student_email, question.subject, question.source_model, answered)
            )
        return Ok(answered)

    def history(
        self,
        student_email: str,
        language: str,
        topic: Optional[str] = None,
        limit: int = 20,
    ) -> list[AnsweredQuestion]:
        mine = [
            r.answer
            for r in reversed(self._answers)
            if r.student_email == student_email and r.answer.language == language
        ]
        if topic is not None:
            mine = [a for a in mine if a.topic == topic] + [a for a in mine if a.topic != topic]
        return mine[:limit]

    def count_reports(self, subject: str, model_name: str) -> int:
        return sum(
            1
            for r in self._answers
            if r.answer.reported and r.subject == subject and r.source_model == model_name
        )
