"""Basic quiz generation example.

Demonstrates the ingest-then-generate workflow using mock mode, with a
two-model A/B test on the subject. No API keys required.

Usage:
    python examples/basic_quiz.py
"""

from src.assignment.variants import load_ab_testing_config
from src.quiz.config import MockConfig
from src.quiz.models import DocumentRef, GenerationRequest, ManagerGenerationRequest
from src.quiz.pipeline import QuizPipeline


def main() -> None:
    # 1. Configure pipeline in mock mode (no API keys needed)
    config = MockConfig.with_overrides(chunk_size=200, chunk_overlap=30, student_search_threshold=0.1)
    ab_configs = load_ab_testing_config(
        {
            "PRG": {
                "fromDate": "2024-01-01",
                "toDate": "2030-12-31",
                "models": ["OpenAI_GPT_4o_Mini", "OpenAI_GPT_4o"],
            }
        },
        known_models=config.model_catalog(),
    )
    pipeline = QuizPipeline(config, ab_configs=ab_configs)

    # 2. Ingest course notes
    notes = {
        "bucles": (
            "Un bucle while repite instrucciones mientras la condición sea cierta. "
            "Un bucle for recorre los elementos de una lista."
        ),
        "funciones": (
            "Una función agrupa instrucciones bajo un nombre. "
            "La instrucción return devuelve un valor a quien llamó."
        ),
    }
    for topic, text in notes.items():
        ref = DocumentRef(document_id=f"prg-{topic}", subject_id="PRG", topic_id=topic)
        result = pipeline.ingest(text, ref)
        if result.is_err():
            print(f"Ingest failed: {result.error}")  # type: ignore[union-attr]
            return
        print(f"Ingested {result.unwrap().chunks_indexed} chunks for {topic}")

    # 3. Two students get different variants and keep them
    for email in ("ana@example.com", "luis@example.com", "ana@example.com"):
        outcome = pipeline.generate_for_student(
            GenerationRequest(
                language="Python",
                difficulty="Medio",
                topic="bucles",
                num_questions=3,
                student_email=email,
                subject="PRG",
            )
        )
        print(f"\n{email}: {outcome.model_name} (grounded: {outcome.grounded})")
        for question in outcome.questions:
            print(f"  - {question.text[:90]}")

    # 4. An instructor generates questions for a topic
    outcome = pipeline.generate_for_manager(
        ManagerGenerationRequest(
            subject_id="PRG",
            topic_id="funciones",
            topic="funciones",
            difficulty="Fácil",
            count=2,
        )
    )
    print(f"\nManager questions with {outcome.model_name}:")
    for question in outcome.questions:
        print(f"  - {question.text[:90]} -> {question.choices[question.answer_index].text}")


if __name__ == "__main__":
    main()
