"""Prompt construction for question generation.

Student prompts either fill the A/B prompt variant assigned to the
student or use the default instruction, preceded by the student's track
record when there is enough of it. Manager prompts use a fixed
instruction. Retrieved course content, when present, is placed ahead of
the instruction between explicit delimiters and truncated to a
character budget. Output is deterministic for identical inputs.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional

from src.quiz.models import AnsweredQuestion, QuestionType, RequestOrigin

PLACEHOLDER = re.compile(r"\{(\w+)\}")

CONTENT_START = "--- CONTENIDO DEL TEMA ---"
CONTENT_END = "--- FIN DEL CONTENIDO ---"

GROUNDING_SECTION = f"""IMPORTANTE: Utiliza el siguiente contenido específico del tema para generar las preguntas:

{CONTENT_START}
{{content}}
{CONTENT_END}

Instrucciones adicionales:
- Las preguntas DEBEN basarse principalmente en el contenido proporcionado arriba
- Utiliza datos, conceptos y ejemplos específicos del material de clase
- Si necesitas complementar con conocimiento general, hazlo de manera coherente con el contenido
- Las preguntas deben demostrar comprensión del material específico del curso"""

GENERAL_KNOWLEDGE_SECTION = """Genera preguntas utilizando tu conocimiento general sobre el tema.

Las preguntas deben ser:
- Académicamente apropiadas para el nivel educativo
- Coherentes con conceptos fundamentales del tema
- Variadas en enfoque (conceptos, aplicación, análisis)"""

STUDENT_MULTIPLE_CHOICE = (
    'Dame {numQuestions} preguntas que tengan 4 o 5 opciones, siendo solo una de ellas '
    'la respuesta correcta, sobre "{topic}" enmarcadas en el tema {language}. '
    "Usa mis respuestas anteriores para conseguir hacer nuevas preguntas que me ayuden a "
    "aprender y profundizar sobre este tema. "
    "Las preguntas deben estar en un nivel {difficulty} de dificultad. "
    "Devuelve tu respuesta completamente en forma de objeto JSON. "
    'El objeto JSON debe tener una clave denominada "questions", que es un array de preguntas. '
    "Cada pregunta del quiz debe incluir las opciones, la respuesta y una breve explicación "
    "de por qué la respuesta es correcta. No incluya nada más que el JSON. "
    'Las propiedades JSON de cada pregunta deben ser "query" (que es la pregunta), '
    '"choices", "answer" y "explanation". '
    "Las opciones no deben tener ningún valor ordinal como A, B, C, D ó un número como 1, 2, 3, 4. "
    "La respuesta debe ser el número indexado a 0 de la opción correcta. "
    "Haz una doble verificación de que cada respuesta correcta corresponda de verdad a la "
    "pregunta correspondiente. Intenta no colocar siempre la respuesta correcta en la misma "
    "posición, vete intercalando entre las 4 o 5 opciones."
)

STUDENT_TRUE_FALSE = (
    'Dame {numQuestions} preguntas de tipo Verdadero/Falso sobre "{topic}" enmarcadas en el '
    "tema {language}. Usa mis respuestas anteriores para conseguir hacer nuevas preguntas que "
    "me ayuden a aprender y profundizar sobre este tema. "
    "Las preguntas deben estar en un nivel {difficulty} de dificultad. "
    "Devuelve tu respuesta completamente en forma de objeto JSON. "
    'El objeto JSON debe tener una clave denominada "questions", que es un array de preguntas. '
    'Las propiedades JSON de cada pregunta deben ser "query" (una afirmación), '
    '"type" con el valor "true_false", "answer" y "explanation". '
    "La respuesta debe ser 0 si la afirmación es verdadera y 1 si es falsa. "
    "No incluya nada más que el JSON."
)

MANAGER_MULTIPLE_CHOICE = """Genera exactamente {count} preguntas de opción múltiple sobre el tema "{topic}"{subtopic} con nivel de dificultad {difficulty}.

{content_source}

Requisitos:
- Cada pregunta debe tener 4 opciones de respuesta
- Solo una opción debe ser correcta
- Las preguntas deben ser claras y precisas
- {explanations}
- Nivel de dificultad: {difficulty}
- Tema principal: {topic}{subtopic_context}

Devuelve la respuesta ÚNICAMENTE en formato JSON con esta estructura exacta:
{
  "questions": [
    {
      "text": "Texto de la pregunta",
      "choices": ["Opción 1", "Opción 2", "Opción 3", "Opción 4"],
      "answer": 0,
      "explanation": "Explicación de por qué la respuesta es correcta"
    }
  ]
}

Asegúrate de que:
1. El campo "answer" contenga el índice (0-3) de la respuesta correcta
2. Las opciones no tengan letras (A, B, C, D) ni números
3. La respuesta correcta no esté siempre en la misma posición
4. Las explicaciones sean educativas y útiles"""

MANAGER_TRUE_FALSE = """Genera exactamente {count} preguntas de tipo Verdadero/Falso sobre el tema "{topic}"{subtopic} con nivel de dificultad {difficulty}.

{content_source}

Requisitos:
- Cada pregunta debe ser una afirmación que sea claramente verdadera o falsa
- Las afirmaciones deben ser claras y precisas
- {explanations}
- Nivel de dificultad: {difficulty}
- Tema principal: {topic}{subtopic_context}

Devuelve la respuesta ÚNICAMENTE en formato JSON con esta estructura exacta:
{
  "questions": [
    {
      "text": "Afirmación",
      "type": "true_false",
      "answer": 0,
      "explanation": "Explicación de por qué la afirmación es verdadera o falsa"
    }
  ]
}

Asegúrate de que el campo "answer" sea 0 si la afirmación es verdadera y 1 si es falsa."""


@dataclass(frozen=True, slots=True)
class PromptParams:
    """Generation parameters merged into a prompt."""

    language: str
    difficulty: str
    topic: str
    num_questions: int
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    include_explanations: bool = True
    subject: Optional[str] = None
    subtopic: Optional[str] = None


def fill_variables(template: str, variables: Mapping[str, object]) -> str:
    """Replace ``{name}`` placeholders; unknown placeholders are left as is."""

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return PLACEHOLDER.sub(substitute, template)


def truncate_context(text: str, budget: int) -> str:
    """Cut text to at most ``budget`` characters on a word boundary."""
    text = text.strip()
    if len(text) <= budget:
        return text
    cut = text[: max(budget - 3, 0)]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip() + "..."


def _choices_with_numbers(choices: Sequence[str]) -> str:
    return ", ".join(f"{i}. {choice}" for i, choice in enumerate(choices))


def describe_answer(answered: AnsweredQuestion) -> str:
    outcome = "correctamente" if answered.correct else "incorrectamente"
    return (
        f'A la pregunta "{answered.text}" con opciones "{_choices_with_numbers(answered.choices)}", '
        f"donde la correcta era la respuesta {answered.answer}, respondí {outcome} "
        f"con la opción {answered.student_answer}. "
    )


class PromptBuilder:
    """Builds the LLM prompt for a generation request.

    Args:
        context_budget: Maximum characters of course content in a prompt.
        min_history: A track record section is added only when the student
            has answered more than this many questions.
    """

    def __init__(self, context_budget: int = 4000, min_history: int = 3) -> None:
        if context_budget <= 0:
            raise ValueError(f"context_budget must be positive, got {context_budget}")
        self._context_budget = context_budget
        self._min_history = min_history

    def build(
        self,
        params: PromptParams,
        rag_context: Optional[str] = None,
        origin: RequestOrigin = RequestOrigin.STUDENT,
        template: Optional[str] = None,
        history: Sequence[AnsweredQuestion] = (),
    ) -> str:
        context = truncate_context(rag_context, self._context_budget) if rag_context else ""
        if origin == RequestOrigin.MANAGER:
            return self._manager_prompt(params, context)

        instruction = self._student_instruction(params, template, history)
        if not context:
            return instruction
        grounding = fill_variables(GROUNDING_SECTION, {"content": context})
        return f"{grounding}\n\nPROMPT ORIGINAL:\n{instruction}"

    def _student_instruction(
        self,
        params: PromptParams,
        template: Optional[str],
        history: Sequence[AnsweredQuestion],
    ) -> str:
        usable = [a for a in history if not a.reported]
        on_topic = [a for a in usable if a.topic == params.topic]
        variables = {
            "subject": params.subject or "",
            "language": params.language,
            "difficulty": params.difficulty,
            "topic": params.topic,
            "numQuestions": params.num_questions,
            "num_prev_questions": len(on_topic),
            "num_prev_questions_only_lang": len(usable),
            "previousQuestionsTopic": "".join(describe_answer(a) for a in on_topic),
            "previousQuestionsNotReported": "".join(describe_answer(a) for a in usable),
        }
        if template is not None:
            return fill_variables(template, variables)

        track_record = ""
        if len(on_topic) > self._min_history:
            track_record = (
                f"Anteriormente ya he respondido {len(on_topic)} preguntas sobre "
                f"{params.topic} en el lenguaje {params.language}. "
                + variables["previousQuestionsTopic"]
            )
        elif len(usable) > self._min_history:
            track_record = (
                f"Anteriormente ya he respondido {len(usable)} preguntas en el lenguaje "
                f"{params.language}. " + variables["previousQuestionsNotReported"]
            )

        base = (
            STUDENT_TRUE_FALSE
            if params.question_type == QuestionType.TRUE_FALSE
            else STUDENT_MULTIPLE_CHOICE
        )
        return track_record + fill_variables(base, variables)

    def _manager_prompt(self, params: PromptParams, context: str) -> str:
        if context:
            content_source = fill_variables(GROUNDING_SECTION, {"content": context})
        else:
            content_source = GENERAL_KNOWLEDGE_SECTION

        variables = {
            "count": params.num_questions,
            "topic": params.topic,
            "difficulty": params.difficulty,
            "subtopic": f' - Subtema: "{params.subtopic}"' if params.subtopic else "",
            "subtopic_context": (
                f"\n- Subtema específico: {params.subtopic}" if params.subtopic else ""
            ),
            "explanations": (
                "Incluye explicaciones detalladas para cada respuesta correcta"
                if params.include_explanations
                else "Las explicaciones son opcionales"
            ),
        }
        template = (
            MANAGER_TRUE_FALSE
            if params.question_type == QuestionType.TRUE_FALSE
            else MANAGER_MULTIPLE_CHOICE
        )
        # content goes in last so placeholders inside course text stay untouched
        return fill_variables(template, variables).replace("{content_source}", content_source)
