"""Error taxonomy and the Result type used across the quiz generator.

Storage and backend seams return ``Result[T, E]`` so callers decide how
to react to a failure. Conditions that must reach the request boundary
(invalid LLM output, LLM failures, fatal configuration) are raised as
``QuizError`` subclasses instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


class QuizError(Exception):
    """Base class for all quiz generator errors."""


class ConfigurationError(QuizError):
    """Static configuration is invalid. Raised at start-up."""


class InitializationError(QuizError):
    """A backend (embedding model, vector index) could not be loaded."""


class EmbeddingError(QuizError):
    """The embedding backend produced no usable vector."""


class RetrievalDegradation(QuizError):
    """Retrieval is unavailable; the caller proceeds without grounding."""


class DuplicateAssignmentError(QuizError):
    """A (student, subject) assignment record already exists."""

    def __init__(self, student_email: str, subject_name: str) -> None:
        super().__init__(
            f"Assignment already exists for {student_email!r} in {subject_name!r}"
        )
        self.student_email = student_email
        self.subject_name = subject_name


class LLMInvocationError(QuizError):
    """The LLM backend call failed."""

    def __init__(
        self,
        model_name: str,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(f"LLM call to {model_name!r} failed: {message}")
        self.model_name = model_name
        self.message = message
        self.status_code = status_code
        self.code = code


class LLMTimeoutError(LLMInvocationError):
    """The LLM backend did not answer within the configured timeout."""

    def __init__(self, model_name: str, timeout_seconds: float) -> None:
        super().__init__(
            model_name,
            f"no response after {timeout_seconds:g}s",
            status_code=504,
            code="timeout",
        )
        self.timeout_seconds = timeout_seconds


class ValidationError(QuizError):
    """The LLM output does not satisfy the question schema.

    ``question_index`` is the 0-based position of the offending question,
    or None when the document as a whole is malformed.
    """

    def __init__(self, reason: str, question_index: Optional[int] = None) -> None:
        if question_index is None:
            message = reason
        else:
            message = f"Question {question_index + 1}: {reason}"
        super().__init__(message)
        self.reason = reason
        self.question_index = question_index


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:  # type: ignore[override]
        return self.value

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:  # type: ignore[type-var]
        return Ok(fn(self.value))

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:  # type: ignore[type-var]
        return fn(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Error result. ``unwrap`` re-raises the error when it is an exception."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:  # type: ignore[type-var]
        if isinstance(self.error, BaseException):
            raise self.error
        raise QuizError(str(self.error))

    def unwrap_or(self, default: T) -> T:  # type: ignore[type-var]
        return default

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:  # type: ignore[type-var]
        return self  # type: ignore[return-value]

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:  # type: ignore[type-var]
        return self  # type: ignore[return-value]


Result = Union[Ok[T], Err[E]]
