"""Student record store: one assignment per (student, subject) pair."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import Counter
from typing import Optional

from src.quiz.errors import DuplicateAssignmentError
from src.quiz.models import StudentSubjectAssignment


class StudentRecordStore(ABC):
    """Persistence for student/subject assignments.

    ``create`` must be atomic with respect to the (student, subject) key:
    when a record already exists it raises ``DuplicateAssignmentError``
    instead of overwriting it.
    """

    @abstractmethod
    def get(self, student_email: str, subject_name: str) -> Optional[StudentSubjectAssignment]:
        ...

    @abstractmethod
    def create(self, record: StudentSubjectAssignment) -> None:
        ...

    @abstractmethod
    def update(self, record: StudentSubjectAssignment) -> None:
        """Replace an existing record. Raises KeyError if there is none."""
        ...

    @abstractmethod
    def count_by_model(
        self, subject_name: str, exclude_email: Optional[str] = None
    ) -> dict[str, int]:
        """Number of students assigned to each model in a subject."""
        ...

    @abstractmethod
    def count_by_prompt_hash(
        self, subject_name: str, exclude_email: Optional[str] = None
    ) -> dict[str, int]:
        """Number of students assigned to each prompt variant in a subject."""
        ...


class InMemoryStudentRecordStore(StudentRecordStore):
    """Thread-safe dictionary store keyed by (email, subject)."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], StudentSubjectAssignment] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, student_email: str, subject_name: str) -> Optional[StudentSubjectAssignment]:
        return self._records.get((student_email, subject_name))

    def create(self, record: StudentSubjectAssignment) -> None:
        key = (record.student_email, record.subject_name)
        with self._lock:
            if key in self._records:
                raise DuplicateAssignmentError(record.student_email, record.subject_name)
            self._records[key] = record

    def update(self, record: StudentSubjectAssignment) -> None:
        key = (record.student_email, record.subject_name)
        with self._lock:
            if key not in self._records:
                raise KeyError(key)
            self._records[key] = record

    def _subject_records(
        self, subject_name: str, exclude_email: Optional[str]
    ) -> list[StudentSubjectAssignment]:
        with self._lock:
            records = list(self._records.values())
        return [
            r
            for r in records
            if r.subject_name == subject_name and r.student_email != exclude_email
        ]

    def count_by_model(
        self, subject_name: str, exclude_email: Optional[str] = None
    ) -> dict[str, int]:
        return dict(Counter(r.assigned_model for r in self._subject_records(subject_name, exclude_email)))

    def count_by_prompt_hash(
        self, subject_name: str, exclude_email: Optional[str] = None
    ) -> dict[str, int]:
        return dict(
            Counter(
                r.prompt_hash
                for r in self._subject_records(subject_name, exclude_email)
                if r.prompt_hash
            )
        )
