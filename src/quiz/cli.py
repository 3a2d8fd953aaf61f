"""CLI interface for the quiz generator.

Provides command-line access to pipeline operations:
- demo: Ingest sample course notes and generate questions
- ingest: Index course documents from files
- search: Semantic search over the sample course
- generate: Generate questions for a topic
- serve: Start the FastAPI server
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from src.quiz.config import MockConfig, QuizConfig, VectorIndexKind
from src.quiz.errors import LLMInvocationError, ValidationError
from src.quiz.log import configure_logging
from src.quiz.models import (
    DocumentRef,
    GenerationOutcome,
    GenerationRequest,
    QuestionType,
    SearchFilters,
    SearchOptions,
)
from src.quiz.pipeline import QuizPipeline

SAMPLE_SUBJECT = "PRG"

SAMPLE_DOCUMENTS = [
    (
        DocumentRef(
            document_id="prg-bucles",
            subject_id=SAMPLE_SUBJECT,
            topic_id="bucles",
            title="Bucles",
        ),
        "BUCLES\n\n"
        "Un bucle repite un bloque de instrucciones mientras se cumple una condición. "
        "El bucle while evalúa la condición antes de cada iteración, por lo que puede "
        "no ejecutarse nunca. El bucle for recorre los elementos de una secuencia, "
        "como una lista o un rango de números.\n\n"
        "La instrucción break termina el bucle de inmediato. La instrucción continue "
        "salta al inicio de la siguiente iteración del bucle. Un bucle infinito aparece "
        "cuando la condición nunca deja de cumplirse.",
    ),
    (
        DocumentRef(
            document_id="prg-variables",
            subject_id=SAMPLE_SUBJECT,
            topic_id="variables",
            title="Variables y tipos",
        ),
        "VARIABLES Y TIPOS\n\n"
        "Una variable es un nombre que referencia un valor almacenado en memoria. "
        "Los tipos básicos son enteros, números de coma flotante, cadenas y booleanos. "
        "La asignación enlaza un nombre con un valor y puede repetirse para cambiarlo.\n\n"
        "Las conversiones de tipo transforman un valor, por ejemplo de cadena a entero. "
        "Una conversión inválida produce un error en tiempo de ejecución.",
    ),
    (
        DocumentRef(
            document_id="prg-funciones",
            subject_id=SAMPLE_SUBJECT,
            topic_id="funciones",
            title="Funciones",
        ),
        "FUNCIONES\n\n"
        "Una función agrupa instrucciones bajo un nombre y puede recibir parámetros. "
        "La instrucción return devuelve un valor a quien llamó a la función. "
        "Las variables definidas dentro de una función son locales a ella.\n\n"
        "Una función recursiva se llama a sí misma y necesita un caso base para terminar. "
        "Dividir un programa en funciones facilita su lectura y sus pruebas.",
    ),
]


def demo_config() -> QuizConfig:
    """Mock configuration tuned so the short sample notes ground the questions."""
    return MockConfig.with_overrides(chunk_size=300, chunk_overlap=40, student_search_threshold=0.1)


def load_sample_course(pipeline: QuizPipeline) -> int:
    """Ingest the sample course notes. Returns the number of chunks indexed."""
    total = 0
    for ref, text in SAMPLE_DOCUMENTS:
        report = pipeline.ingest(text, ref).unwrap()
        total += report.chunks_indexed
    return total


def outcome_json(outcome: GenerationOutcome) -> dict[str, object]:
    return {
        "model": outcome.model_name,
        "abTesting": outcome.abc_testing_active,
        "grounded": outcome.grounded,
        "questions": [
            {
                "text": q.text,
                "type": q.question_type.value,
                "choices": [c.text for c in q.choices],
                "answer": q.answer_index,
                "explanation": q.explanation,
            }
            for q in outcome.questions
        ],
    }


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="AI Quiz Generator - course-grounded practice questions"
    )
    parser.add_argument("--log-level", default="WARNING", help="Root log level")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run a complete demo")
    demo_parser.add_argument("--topic", default="bucles", help="Topic to generate questions for")
    demo_parser.add_argument("--difficulty", default="Medio", help="Difficulty level")
    demo_parser.add_argument("--num", type=int, default=5, help="Number of questions")

    # Ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Ingest course documents")
    ingest_parser.add_argument("files", nargs="+", help="Text files to ingest")
    ingest_parser.add_argument("--subject", default=SAMPLE_SUBJECT, help="Subject identifier")
    ingest_parser.add_argument("--topic-id", default=None, help="Topic identifier")

    # Search command
    search_parser = subparsers.add_parser("search", help="Search the sample course")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument("--limit", type=int, default=5, help="Maximum results")
    search_parser.add_argument("--subject", default=None, help="Only this subject")

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Generate questions for a topic")
    generate_parser.add_argument("topic", help="Topic of the questions")
    generate_parser.add_argument("--email", default="estudiante@example.com", help="Student")
    generate_parser.add_argument("--subject", default=SAMPLE_SUBJECT, help="Subject")
    generate_parser.add_argument("--language", default="Python", help="Programming language")
    generate_parser.add_argument("--difficulty", default="Medio", help="Difficulty level")
    generate_parser.add_argument("--num", type=int, default=5, help="Number of questions")
    generate_parser.add_argument(
        "--type",
        dest="question_type",
        default=QuestionType.MULTIPLE_CHOICE.value,
        choices=[t.value for t in QuestionType],
        help="Question type",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start API server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")

    args = parser.parse_args()
    configure_logging(args.log_level)

    if args.command == "demo":
        run_demo(args.topic, args.difficulty, args.num)
    elif args.command == "ingest":
        run_ingest(args.files, args.subject, args.topic_id)
    elif args.command == "search":
        run_search(args.query, args.limit, args.subject)
    elif args.command == "generate":
        run_generate(
            args.topic,
            email=args.email,
            subject=args.subject,
            language=args.language,
            difficulty=args.difficulty,
            num=args.num,
            question_type=QuestionType(args.question_type),
        )
    elif args.command == "serve":
        run_serve(args.host, args.port)
    else:
        parser.print_help()
        sys.exit(1)


def run_demo(topic: str, difficulty: str, num: int) -> None:
    """Run a complete demo with the sample course."""
    print("=" * 60)
    print("AI Quiz Generator - Demo Mode")
    print("=" * 60)
    print()

    pipeline = QuizPipeline(demo_config())

    print(f"[1/3] Ingesting {len(SAMPLE_DOCUMENTS)} sample course documents...")
    print(f"      Indexed {load_sample_course(pipeline)} chunks")
    print()

    print(f'[2/3] Generating {num} questions about "{topic}" ({difficulty})')
    print()
    request = GenerationRequest(
        language="Python",
        difficulty=difficulty,
        topic=topic,
        num_questions=num,
        student_email="estudiante@example.com",
        subject=SAMPLE_SUBJECT,
    )
    try:
        outcome = pipeline.generate_for_student(request)
    except (LLMInvocationError, ValidationError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print("[3/3] Results:")
    print("-" * 60)
    print(f"Model: {outcome.model_name} (A/B test active: {outcome.abc_testing_active})")
    print(f"Grounded in course content: {outcome.grounded}")
    if outcome.search_stats is not None:
        print(f"Chunks used: {outcome.search_stats.returned}")
    print()
    for i, question in enumerate(outcome.questions, 1):
        print(f"  [{i}] {question.text[:100]}")
        for j, choice in enumerate(question.choices):
            marker = "*" if choice.is_correct else " "
            print(f"      {marker} {j}. {choice.text}")
        print()
    print("=" * 60)

    # JSON output for programmatic use
    print("JSON output:")
    print(json.dumps(outcome_json(outcome), indent=2, ensure_ascii=False))


def run_ingest(
    files: list[str],
    subject: str,
    topic_id: str | None,
    config: QuizConfig | None = None,
) -> None:
    """Ingest course documents from files into the configured vector index.

    Uses the environment-driven ``QuizConfig`` unless one is given; set
    ``AIQUIZ_VECTOR_INDEX=chroma`` to keep the chunks after the command exits.
    """
    config = config or QuizConfig()
    pipeline = QuizPipeline(config)
    if config.vector_index == VectorIndexKind.MEMORY:
        print("WARNING: In-memory index, chunks are lost on exit (set AIQUIZ_VECTOR_INDEX=chroma)")

    total = 0
    ingested = 0
    for file_path in files:
        path = Path(file_path)
        if not path.exists():
            print(f"WARNING: File not found: {file_path}")
            continue
        ref = DocumentRef(
            document_id=path.stem,
            subject_id=subject,
            topic_id=topic_id,
            title=path.name,
        )
        result = pipeline.ingest(path.read_text(encoding="utf-8"), ref)
        if result.is_err():
            print(f"ERROR: {result.error}")  # type: ignore[union-attr]
            sys.exit(1)
        total += result.unwrap().chunks_indexed
        ingested += 1

    if not ingested:
        print("No valid documents to ingest")
        sys.exit(1)
    print(f"Indexed {total} chunks from {ingested} documents")
    if config.vector_index == VectorIndexKind.CHROMA:
        print(
            f"Collection {config.chroma_collection!r} now holds {pipeline.document_count} chunks"
            f" ({config.chroma_persist_dir or 'in memory'})"
        )


def run_search(query: str, limit: int, subject: str | None) -> None:
    """Search the sample course."""
    config = demo_config()
    pipeline = QuizPipeline(config)
    load_sample_course(pipeline)

    response = pipeline.search(
        query,
        SearchFilters(subject_id=subject),
        SearchOptions(limit=limit, threshold=config.student_search_threshold),
    )
    print(json.dumps({
        "query": response.query,
        "returned": response.stats.returned,
        "degraded": response.stats.degraded,
        "results": [
            {"chunkId": r.chunk_id, "similarity": round(r.similarity, 4), "text": r.text[:120]}
            for r in response.results
        ],
    }, indent=2, ensure_ascii=False))


def run_generate(
    topic: str,
    *,
    email: str,
    subject: str,
    language: str,
    difficulty: str,
    num: int,
    question_type: QuestionType,
) -> None:
    """Generate questions for a topic against the sample course."""
    pipeline = QuizPipeline(demo_config())
    load_sample_course(pipeline)

    try:
        outcome = pipeline.generate_for_student(
            GenerationRequest(
                language=language,
                difficulty=difficulty,
                topic=topic,
                num_questions=num,
                student_email=email,
                subject=subject,
                question_type=question_type,
            )
        )
    except (LLMInvocationError, ValidationError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    print(json.dumps(outcome_json(outcome), indent=2, ensure_ascii=False))


def run_serve(host: str, port: int) -> None:
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("src.api.app:app", host=host, port=port, reload=True)


if __name__ == "__main__":
    main()
