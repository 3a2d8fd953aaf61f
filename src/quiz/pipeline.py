"""Quiz pipeline orchestrating ingestion, retrieval, assignment and generation.

The pipeline is the primary entry point for the quiz generator. It:
1. Ingests course documents by chunking, embedding and indexing them
2. Retrieves course content relevant to a generation request
3. Assigns each student a model variant per subject
4. Builds the prompt, calls the model and stores the validated questions

All external dependencies are injected, enabling mock mode
for demos and testing without API keys.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from src.assignment.engine import AssignmentDecision, AssignmentEngine
from src.assignment.store import InMemoryStudentRecordStore, StudentRecordStore
from src.assignment.variants import ABTestConfig, load_ab_testing_config
from src.chunking.strategies import SemanticTextChunker
from src.quiz.config import ModelSpec, QuizConfig, RunMode
from src.quiz.embeddings import EmbeddingService
from src.quiz.errors import Err, Ok, QuizError, Result
from src.quiz.generation import GenerationMeta, GenerationOrchestrator
from src.quiz.llm import LLMProvider, create_llm_provider
from src.quiz.models import (
    AnsweredQuestion,
    DocumentRef,
    GenerationOutcome,
    GenerationRequest,
    IngestionReport,
    ManagerGenerationRequest,
    RequestOrigin,
    SearchFilters,
    SearchOptions,
    SearchResponse,
)
from src.quiz.prompts import PromptBuilder, PromptParams
from src.quiz.repository import InMemoryQuestionRepository, QuestionRepository
from src.retrieval.backends import FallbackRetrievalBackend, RetrievalBackend
from src.retrieval.reranker import create_reranker
from src.retrieval.semantic import SemanticRetriever
from src.retrieval.store import VectorIndex, create_vector_index

logger = logging.getLogger(__name__)


class QuizPipeline:
    """Quiz generation pipeline with pluggable components.

    Usage:
        config = QuizConfig(mode=RunMode.MOCK)
        pipeline = QuizPipeline(config)

        # Ingest course material
        pipeline.ingest(text, DocumentRef(document_id="doc-1", subject_id="PRG"))

        # Generate questions for a student
        outcome = pipeline.generate_for_student(request)
    """

    def __init__(
        self,
        config: Optional[QuizConfig] = None,
        embedding_service: Optional[EmbeddingService] = None,
        vector_index: Optional[VectorIndex] = None,
        llm_provider: Optional[LLMProvider] = None,
        student_store: Optional[StudentRecordStore] = None,
        question_repository: Optional[QuestionRepository] = None,
        ab_configs: Optional[dict[str, ABTestConfig]] = None,
        retrieval_backend: Optional[RetrievalBackend] = None,
    ) -> None:
        self._config = config or QuizConfig()
        self._catalog: dict[str, ModelSpec] = self._config.model_catalog()

        # Dependency injection with sensible defaults
        self._embeddings = embedding_service or EmbeddingService.from_config(self._config)
        self._index = vector_index or create_vector_index(self._config)
        self._llm = llm_provider or create_llm_provider(self._config)
        self._students = student_store or InMemoryStudentRecordStore()
        self._questions = question_repository or InMemoryQuestionRepository()

        if ab_configs is None:
            ab_configs = (
                load_ab_testing_config(self._config.ab_testing_file, self._catalog)
                if self._config.ab_testing_file
                else {}
            )

        self._chunker = SemanticTextChunker(
            chunk_size=self._config.chunk_size,
            overlap=min(self._config.chunk_overlap, self._config.chunk_size - 1),
        )
        reranker = create_reranker(
            self._config.reranker,  # type: ignore[arg-type]
            model_name=self._config.reranker_model,
            mock_mode=self._config.mode == RunMode.MOCK,
        )
        self._retriever = SemanticRetriever(self._embeddings, self._index, reranker)
        self._retrieval = FallbackRetrievalBackend(retrieval_backend or self._retriever)
        self._assignments = AssignmentEngine(
            self._students,
            ab_configs,
            known_models=self._catalog,
            default_model=self._config.default_model,
            reports=self._questions,
        )
        self._prompts = PromptBuilder(context_budget=self._config.context_budget)
        self._generator = GenerationOrchestrator(self._llm, self._catalog)

    def initialize(self) -> None:
        """Prepare retrieval. A backend that cannot start degrades to no grounding."""
        self._retrieval.initialize()

    # --- Ingestion ---

    def ingest(self, text: str, document_ref: DocumentRef) -> Result[IngestionReport, str]:
        """Chunk and index one document, replacing any earlier version of it.

        Returns:
            Result with the ingestion report, or error message.
        """
        chunks = self._chunker.chunk(text, document_ref)
        if not chunks:
            return Err(f"Document {document_ref.document_id!r} has no text to index")
        try:
            report = self._retriever.index_chunks(document_ref.document_id, chunks)
        except QuizError as e:
            return Err(f"Indexing failed: {e}")
        if report.is_ok():
            logger.info(
                "Indexed %d chunks for document %s",
                report.unwrap().chunks_indexed,
                document_ref.document_id,
            )
        return report

    def delete_document(self, document_id: str) -> Result[int, str]:
        return self._index.delete_document(document_id)

    # --- Retrieval ---

    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        """Semantic search over course content. Never raises on backend failure."""
        options = options or SearchOptions(
            limit=self._config.search_limit,
            threshold=self._config.search_threshold,
            rerank=self._config.rerank_results,
        )
        return self._retrieval.search(query, filters, options)

    # --- Generation ---

    def generate_for_student(
        self, request: GenerationRequest, now: Optional[datetime] = None
    ) -> GenerationOutcome:
        """Generate practice questions with the student's assigned model.

        Raises:
            LLMInvocationError: The model call failed or timed out.
            ValidationError: The model answered with an invalid question set.
        """
        decision = self._assign(request.student_email, request.subject, now)

        filters = (
            SearchFilters(subtopic_id=request.subtopic_id)
            if request.subtopic_id
            else SearchFilters(subject_id=request.subject)
        )
        search = self.search(
            request.topic,
            filters,
            SearchOptions(
                limit=self._config.context_max_chunks,
                threshold=self._config.student_search_threshold,
                rerank=self._config.rerank_results,
            ),
        )
        context = search.context_text(self._config.context_max_chunks) if search.has_content else None

        history = self._questions.history(
            request.student_email, request.language, topic=request.topic
        )
        prompt = self._prompts.build(
            PromptParams(
                language=request.language,
                difficulty=request.difficulty,
                topic=request.topic,
                num_questions=request.num_questions,
                question_type=request.question_type,
                subject=request.subject,
            ),
            rag_context=context,
            origin=RequestOrigin.STUDENT,
            template=decision.prompt_template,
            history=history,
        )
        if decision.prompt_template is not None:
            self._assignments.record_prompt(request.student_email, request.subject, prompt)

        questions = self._generator.generate(
            decision.assigned_model,
            prompt,
            GenerationMeta(
                difficulty=request.difficulty,
                topic=request.topic,
                subject=request.subject,
                language=request.language,
                question_type=request.question_type,
                origin=RequestOrigin.STUDENT,
                subtopic_id=request.subtopic_id,
                expected_count=request.num_questions,
            ),
        )
        self._questions.save_all(questions).unwrap()

        return GenerationOutcome(
            questions=tuple(questions),
            model_name=decision.assigned_model,
            abc_testing_active=decision.abc_testing_active,
            grounded=context is not None,
            search_stats=search.stats,
            prompt_hash=decision.prompt_hash,
        )

    def generate_for_manager(self, request: ManagerGenerationRequest) -> GenerationOutcome:
        """Generate questions for a topic on behalf of an instructor."""
        model_name = self.manager_model

        filters = SearchFilters(
            subject_id=request.subject_id,
            topic_id=request.topic_id,
            subtopic_id=request.subtopic_id,
        )
        query = f"{request.topic} {request.subtopic}" if request.subtopic else request.topic
        search = self.search(
            query,
            filters,
            SearchOptions(
                limit=self._config.context_max_chunks,
                threshold=self._config.search_threshold,
                rerank=self._config.rerank_results,
            ),
        )
        context = search.context_text(self._config.context_max_chunks) if search.has_content else None

        prompt = self._prompts.build(
            PromptParams(
                language=request.language,
                difficulty=request.difficulty,
                topic=request.topic,
                num_questions=request.count,
                question_type=request.question_type,
                include_explanations=request.include_explanations,
                subtopic=request.subtopic,
            ),
            rag_context=context,
            origin=RequestOrigin.MANAGER,
        )
        questions = self._generator.generate(
            model_name,
            prompt,
            GenerationMeta(
                difficulty=request.difficulty,
                topic=request.topic,
                subject=request.subject_id,
                language=request.language,
                question_type=request.question_type,
                origin=RequestOrigin.MANAGER,
                subtopic_id=request.subtopic_id,
                include_explanations=request.include_explanations,
                expected_count=request.count,
            ),
        )
        self._questions.save_all(questions).unwrap()

        return GenerationOutcome(
            questions=tuple(questions),
            model_name=model_name,
            abc_testing_active=False,
            grounded=context is not None,
            search_stats=search.stats,
        )

    def _assign(
        self, student_email: str, subject: str, now: Optional[datetime]
    ) -> AssignmentDecision:
        try:
            return self._assignments.assign(student_email, subject, now)
        except QuizError as e:
            logger.warning(
                "Assignment failed for %s in %s, using default model: %s",
                student_email,
                subject,
                e,
            )
            return AssignmentDecision(
                assigned_model=self._config.default_model,
                abc_testing_active=False,
                changed=False,
                reason="assignment unavailable",
            )

    # --- Answers ---

    def record_answer(
        self,
        question_id: str,
        student_email: str,
        student_answer: int,
        reported: bool = False,
    ) -> Result[AnsweredQuestion, str]:
        """Store a student's answer, or a report that the question is wrong.

        Answers feed the student's history in later prompts; reports count
        against the question's model under the fewer-reported priority.
        """
        result = self._questions.record_answer(question_id, student_email, student_answer, reported)
        if result.is_ok() and reported:
            question = self._questions.get(question_id)
            logger.info(
                "Question %s reported by %s (model %s)",
                question_id,
                student_email,
                question.source_model if question else "unknown",
            )
        return result

    # --- Accessors ---

    @property
    def config(self) -> QuizConfig:
        return self._config

    @property
    def catalog(self) -> dict[str, ModelSpec]:
        return dict(self._catalog)

    @property
    def manager_model(self) -> str:
        """Model used for manager requests: configured, else first in the catalog."""
        if self._config.manager_model and self._config.manager_model in self._catalog:
            return self._config.manager_model
        return next(iter(self._catalog))

    @property
    def assignments(self) -> AssignmentEngine:
        return self._assignments

    @property
    def questions(self) -> QuestionRepository:
        return self._questions

    @property
    def retrieval_degraded(self) -> bool:
        return self._retrieval.degraded

    @property
    def document_count(self) -> int:
        """Return the number of indexed chunks."""
        return self._index.count

    def clear(self) -> Result[None, str]:
        """Clear all indexed documents."""
        result = self._index.clear()
        if result.is_ok():
            self._embeddings.clear_cache()
            return Ok(None)
        return result
