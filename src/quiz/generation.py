"""Generation orchestration: call the LLM, then validate and normalize its output.

A response is accepted only if every question in it is valid; the first
problem found raises ``ValidationError`` naming the question and nothing
from the batch is returned.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from src.quiz.config import ModelSpec
from src.quiz.errors import LLMInvocationError, ValidationError
from src.quiz.llm import LLMProvider
from src.quiz.models import (
    TRUE_FALSE_LABELS,
    Choice,
    GeneratedQuestion,
    PlainTextChoice,
    QuestionType,
    RawChoice,
    RequestOrigin,
    ScoredChoice,
)

logger = logging.getLogger(__name__)

PROMPT_PROVENANCE_CHARS = 500
CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


@dataclass(frozen=True, slots=True)
class GenerationMeta:
    """Request attributes copied onto every generated question."""

    difficulty: str
    topic: str
    subject: str
    language: str
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    origin: RequestOrigin = RequestOrigin.STUDENT
    subtopic_id: Optional[str] = None
    include_explanations: bool = True
    expected_count: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ParsedQuestion:
    text: str
    question_type: QuestionType
    choices: tuple[Choice, ...]
    explanation: Optional[str]


def clean_response(raw: str) -> str:
    """Strip code fences and any prose around the outermost JSON object."""
    text = CODE_FENCE.sub("", raw.strip())
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def to_raw_choice(value: Any, question_index: int) -> RawChoice:
    """Classify one LLM choice as plain text or scored."""
    if isinstance(value, str) and value.strip():
        return PlainTextChoice(value.strip())
    if isinstance(value, dict):
        text = value.get("text")
        if isinstance(text, str) and text.strip():
            return ScoredChoice(text.strip(), bool(value.get("isCorrect", False)))
    raise ValidationError(f"invalid choice {value!r}", question_index)


def normalize_choices(raw: list[RawChoice], answer: int) -> tuple[Choice, ...]:
    """Canonical choices; the answer index decides correctness."""
    return tuple(Choice(text=c.text, is_correct=(i == answer)) for i, c in enumerate(raw))


def _answer_index(value: Any, question_index: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"answer must be a number, got {value!r}", question_index)
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"answer must be an integer index, got {value}", question_index)
    return int(value)


def parse_question(
    item: Any, index: int, default_type: QuestionType
) -> ParsedQuestion:
    if not isinstance(item, dict):
        raise ValidationError("question must be an object", index)

    text = item.get("query") or item.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("missing question text", index)

    if "answer" not in item or item["answer"] is None:
        raise ValidationError("missing answer", index)
    answer = _answer_index(item["answer"], index)

    question_type = default_type
    if isinstance(item.get("type"), str):
        try:
            question_type = QuestionType.parse(item["type"])
        except ValueError as exc:
            raise ValidationError(str(exc), index) from exc

    if question_type == QuestionType.TRUE_FALSE:
        if answer not in (0, 1):
            raise ValidationError(f"true/false answer must be 0 or 1, got {answer}", index)
        choices = tuple(
            Choice(text=label, is_correct=(i == answer))
            for i, label in enumerate(TRUE_FALSE_LABELS)
        )
    else:
        raw_choices = item.get("choices")
        if not isinstance(raw_choices, list):
            raise ValidationError("choices must be an array", index)
        if len(raw_choices) < 2:
            raise ValidationError(f"needs at least 2 choices, got {len(raw_choices)}", index)
        if not 0 <= answer < len(raw_choices):
            raise ValidationError(
                f"answer {answer} out of range for {len(raw_choices)} choices", index
            )
        choices = normalize_choices([to_raw_choice(c, index) for c in raw_choices], answer)

    explanation = item.get("explanation")
    return ParsedQuestion(
        text=text.strip(),
        question_type=question_type,
        choices=choices,
        explanation=explanation.strip() if isinstance(explanation, str) and explanation.strip() else None,
    )


def parse_questions(raw: Any, default_type: QuestionType) -> list[ParsedQuestion]:
    """Parse and validate a raw LLM response into questions."""
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("empty response from the model")

    try:
        document = json.loads(clean_response(raw))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"response is not valid JSON: {exc.msg}") from exc

    if isinstance(document, list) and len(document) == 1:
        document = document[0]
    if not isinstance(document, dict) or not isinstance(document.get("questions"), list):
        raise ValidationError("response must be an object with a 'questions' array")
    if not document["questions"]:
        raise ValidationError("response contains no questions")

    return [
        parse_question(item, index, default_type)
        for index, item in enumerate(document["questions"])
    ]


class GenerationOrchestrator:
    """Invokes the assigned model and turns its answer into stored questions."""

    def __init__(self, llm: LLMProvider, catalog: Mapping[str, ModelSpec]) -> None:
        self._llm = llm
        self._catalog = catalog

    def generate(self, model_name: str, prompt: str, meta: GenerationMeta) -> list[GeneratedQuestion]:
        model = self._catalog.get(model_name)
        if model is None:
            raise LLMInvocationError(model_name, "model is not in the catalog")

        raw = self._llm.complete(model, prompt).unwrap()
        parsed = parse_questions(raw, meta.question_type)

        if meta.expected_count is not None and len(parsed) != meta.expected_count:
            logger.warning(
                "Model %s returned %d questions, %d requested",
                model_name,
                len(parsed),
                meta.expected_count,
            )

        provenance = prompt
        if len(prompt) > PROMPT_PROVENANCE_CHARS:
            provenance = prompt[:PROMPT_PROVENANCE_CHARS] + "..."

        questions = [
            GeneratedQuestion(
                text=p.text,
                question_type=p.question_type,
                choices=p.choices,
                difficulty=meta.difficulty,
                topic=meta.topic,
                subject=meta.subject,
                language=meta.language,
                source_model=model_name,
                generation_prompt=provenance,
                origin=meta.origin,
                explanation=p.explanation if meta.include_explanations else None,
                subtopic_id=meta.subtopic_id,
            )
            for p in parsed
        ]
        logger.info("Generated %d questions with %s", len(questions), model_name)
        return questions
