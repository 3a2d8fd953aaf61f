"""Tests for the error taxonomy and the Result type."""

import pytest
from hypothesis import given, strategies as st

from src.quiz.errors import (
    DuplicateAssignmentError,
    Err,
    LLMInvocationError,
    LLMTimeoutError,
    Ok,
    QuizError,
    ValidationError,
)


class TestOk:
    def test_is_ok(self) -> None:
        result = Ok(42)
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_unwrap_or(self) -> None:
        assert Ok(42).unwrap_or(0) == 42

    def test_map(self) -> None:
        assert Ok(5).map(lambda x: x * 2).unwrap() == 10

    def test_and_then(self) -> None:
        assert Ok(5).and_then(lambda x: Err(f"rejected {x}")).is_err()

    @given(st.integers())
    def test_ok_preserves_value(self, value: int) -> None:
        assert Ok(value).unwrap() == value


class TestErr:
    def test_is_err(self) -> None:
        result = Err("something failed")
        assert result.is_err() is True
        assert result.is_ok() is False

    def test_unwrap_string_raises_quiz_error(self) -> None:
        with pytest.raises(QuizError, match="fail"):
            Err("fail").unwrap()

    def test_unwrap_reraises_exception(self) -> None:
        error = LLMInvocationError("OpenAI_GPT_4o", "boom")
        with pytest.raises(LLMInvocationError) as info:
            Err(error).unwrap()
        assert info.value is error

    def test_unwrap_or(self) -> None:
        assert Err("fail").unwrap_or(7) == 7

    def test_map_is_noop(self) -> None:
        result = Err("fail").map(lambda x: x * 2)
        assert result.is_err()

    @given(st.text(min_size=1))
    def test_err_preserves_error(self, message: str) -> None:
        assert Err(message).error == message


class TestErrors:
    def test_validation_error_names_question(self) -> None:
        error = ValidationError("answer out of range", 2)
        assert str(error) == "Question 3: answer out of range"
        assert error.reason == "answer out of range"
        assert error.question_index == 2

    def test_validation_error_without_index(self) -> None:
        error = ValidationError("response is not valid JSON")
        assert str(error) == "response is not valid JSON"
        assert error.question_index is None

    def test_llm_invocation_error(self) -> None:
        error = LLMInvocationError("OpenAI_GPT_4o", "Rate limit exceeded", status_code=429)
        assert "OpenAI_GPT_4o" in str(error)
        assert error.message == "Rate limit exceeded"
        assert error.status_code == 429
        assert error.code is None

    def test_timeout_is_invocation_error(self) -> None:
        error = LLMTimeoutError("OpenAI_GPT_4o", 60.0)
        assert isinstance(error, LLMInvocationError)
        assert error.status_code == 504
        assert "60s" in error.message

    def test_duplicate_assignment(self) -> None:
        error = DuplicateAssignmentError("ana@example.com", "PRG")
        assert isinstance(error, QuizError)
        assert error.student_email == "ana@example.com"
        assert "PRG" in str(error)
