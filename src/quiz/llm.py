"""LLM providers with dependency injection for mock mode.

Supports:
- OpenAI-compatible chat models through langchain-openai (production)
- Mock LLM (demo/testing - returns well-formed question sets)

Providers return ``Result[str, LLMInvocationError]``; the generation
orchestrator unwraps it, which re-raises the typed error.
"""

from __future__ import annotations

import json
import logging
import os
import re
from abc import ABC, abstractmethod

from src.quiz.config import ModelSpec, QuizConfig, RunMode
from src.quiz.errors import Err, LLMInvocationError, LLMTimeoutError, Ok, Result
from src.quiz.prompts import CONTENT_END, CONTENT_START

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE_PROVIDERS = {"openai", "groq", "deepseek", "openrouter"}


class LLMProvider(ABC):
    """Abstract LLM provider interface."""

    @abstractmethod
    def complete(self, model: ModelSpec, prompt: str) -> Result[str, LLMInvocationError]:
        """Send the prompt to ``model`` and return the raw response text."""
        ...


class MockLLMProvider(LLMProvider):
    """Deterministic mock LLM for testing and demos.

    Reads the requested count, topic and question type from the prompt
    and answers with a fenced JSON question set, the way chat models
    usually do. Grounded prompts produce questions quoting the course
    content.
    """

    COUNT_PATTERNS = (
        re.compile(r"exactamente (\d+) preguntas"),
        re.compile(r"Dame (\d+) preguntas"),
    )
    TOPIC_PATTERN = re.compile(r'sobre (?:el tema )?"([^"]+)"')
    DEFAULT_COUNT = 3

    def complete(self, model: ModelSpec, prompt: str) -> Result[str, LLMInvocationError]:
        count = self._requested_count(prompt)
        topic_match = self.TOPIC_PATTERN.search(prompt)
        topic = topic_match.group(1) if topic_match else "el tema"
        facts = self._content_sentences(prompt)

        if "preguntas de tipo Verdadero/Falso" in prompt:
            questions = [
                {
                    "query": self._statement(topic, facts, i),
                    "type": "true_false",
                    "answer": i % 2,
                    "explanation": f"Afirmación {i + 1} sobre {topic}.",
                }
                for i in range(count)
            ]
        else:
            questions = [
                {
                    "query": f"Pregunta {i + 1} sobre {topic}: {self._statement(topic, facts, i)}",
                    "choices": [f"Opción {j + 1} de la pregunta {i + 1}" for j in range(4)],
                    "answer": i % 4,
                    "explanation": f"La opción {i % 4 + 1} es la correcta.",
                }
                for i in range(count)
            ]
        body = json.dumps({"questions": questions}, ensure_ascii=False, indent=2)
        return Ok(f"```json\n{body}\n```")

    def _requested_count(self, prompt: str) -> int:
        for pattern in self.COUNT_PATTERNS:
            match = pattern.search(prompt)
            if match:
                return max(1, int(match.group(1)))
        return self.DEFAULT_COUNT

    @staticmethod
    def _content_sentences(prompt: str) -> list[str]:
        start = prompt.find(CONTENT_START)
        end = prompt.find(CONTENT_END)
        if start == -1 or end <= start:
            return []
        content = prompt[start + len(CONTENT_START) : end]
        return [s.strip() for s in re.split(r"(?<=[.!?])\s+", content) if len(s.strip()) > 20]

    @staticmethod
    def _statement(topic: str, facts: list[str], index: int) -> str:
        if facts:
            return facts[index % len(facts)]
        return f"¿Qué afirmación describe mejor {topic}?"


class OpenAILLMProvider(LLMProvider):
    """Chat completion through langchain-openai for OpenAI-compatible endpoints."""

    def __init__(self, config: QuizConfig) -> None:
        self._config = config

    def _api_key(self, model: ModelSpec) -> str | None:
        if model.api_key_env:
            return os.environ.get(model.api_key_env)
        return self._config.openai_api_key

    def complete(self, model: ModelSpec, prompt: str) -> Result[str, LLMInvocationError]:
        if model.provider not in OPENAI_COMPATIBLE_PROVIDERS and not model.base_url:
            return Err(
                LLMInvocationError(model.name, f"Unsupported provider {model.provider!r}")
            )
        try:
            from langchain_openai import ChatOpenAI
        except ImportError:
            return Err(LLMInvocationError(model.name, "langchain-openai not installed"))

        timeout = self._config.llm_timeout_seconds
        try:
            llm = ChatOpenAI(
                model=model.model,
                temperature=model.temperature,
                max_tokens=model.max_tokens,
                timeout=timeout,
                max_retries=1,
                openai_api_key=self._api_key(model),
                base_url=model.base_url,
            )
            response = llm.invoke(prompt)
        except Exception as e:
            return Err(self._translate(model, e, timeout))

        logger.debug("Model %s answered with %d characters", model.name, len(str(response.content)))
        return Ok(str(response.content))

    @staticmethod
    def _translate(model: ModelSpec, exc: Exception, timeout: float) -> LLMInvocationError:
        if "timeout" in type(exc).__name__.lower() or "timed out" in str(exc).lower():
            return LLMTimeoutError(model.name, timeout)

        status = getattr(exc, "status_code", None)
        code = getattr(exc, "code", None)
        if status == 401 or code == "invalid_api_key":
            message = "Invalid or missing API key"
        elif status == 429:
            message = "Rate limit exceeded, try again later"
        else:
            message = str(exc)
        return LLMInvocationError(
            model.name,
            message,
            status_code=status if isinstance(status, int) else None,
            code=code if isinstance(code, str) else None,
        )


def create_llm_provider(config: QuizConfig) -> LLMProvider:
    """Factory function to create the appropriate LLM provider."""
    if config.mode in (RunMode.MOCK, RunMode.HYBRID):
        return MockLLMProvider()
    return OpenAILLMProvider(config)
