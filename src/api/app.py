"""FastAPI REST API for the quiz generator.

Provides endpoints for course document ingestion, semantic search over
course content, student and manager question generation, answer and
report recording, and health checks. Supports both production and mock modes.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from src.quiz.config import QuizConfig
from src.quiz.errors import LLMInvocationError, ValidationError
from src.quiz.log import configure_logging
from src.quiz.models import (
    DocumentRef,
    GeneratedQuestion,
    GenerationOutcome,
    GenerationRequest,
    ManagerGenerationRequest,
    QuestionType,
    SearchFilters,
    SearchOptions,
    SearchResponse,
)
from src.quiz.pipeline import QuizPipeline

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


class CamelModel(BaseModel):
    """Accepts both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


# --- Request/Response Models ---


class DocumentInput(BaseModel):
    """Extracted text of an uploaded course document."""

    text: str = Field(..., min_length=1, description="Document text content")
    document_id: Optional[str] = Field(default=None, description="Identifier; generated if absent")
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    title: Optional[str] = None


class IngestResponse(BaseModel):
    """Response from document ingestion."""

    document_id: str
    chunks_indexed: int
    chunks_replaced: int
    status: str = "success"


class DeleteResponse(BaseModel):
    document_id: str
    chunks_deleted: int
    status: str = "success"


class SearchFiltersInput(CamelModel):
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    topic_id: Optional[str] = Field(default=None, alias="topicId")
    subtopic_id: Optional[str] = Field(default=None, alias="subtopicId")
    document_id: Optional[str] = Field(default=None, alias="documentId")


class SearchOptionsInput(CamelModel):
    limit: Optional[int] = Field(default=None, ge=1, description="Maximum results")
    threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    include_metadata: bool = Field(default=True, alias="includeMetadata")
    rerank_results: Optional[bool] = Field(default=None, alias="rerankResults")


class SearchRequest(BaseModel):
    """Request body for semantic search."""

    query: str = Field(..., min_length=1, description="Search text")
    filters: SearchFiltersInput = Field(default_factory=SearchFiltersInput)
    options: SearchOptionsInput = Field(default_factory=SearchOptionsInput)


class SearchResultInfo(CamelModel):
    chunk_id: str = Field(alias="chunkId")
    text: str
    similarity: float
    reranked_score: Optional[float] = Field(default=None, alias="rerankedScore")
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchStatsInfo(CamelModel):
    total_found: int = Field(alias="totalFound")
    after_filtering: int = Field(alias="afterFiltering")
    returned: int
    search_time_ms: float = Field(alias="searchTimeMs")
    threshold: float
    degraded: bool


class SearchResponseBody(BaseModel):
    success: bool = True
    query: str
    results: list[SearchResultInfo]
    stats: SearchStatsInfo
    filters: dict[str, str]


class QuestionRequest(CamelModel):
    """A student's request for practice questions."""

    language: str = Field(..., min_length=1)
    difficulty: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    num_questions: int = Field(..., ge=1, alias="numQuestions")
    student_email: str = Field(..., min_length=1, alias="studentEmail")
    subject: str = Field(..., min_length=1)
    subtopic_id: Optional[str] = Field(default=None, alias="subtopicId")
    question_type: str = Field(default=QuestionType.MULTIPLE_CHOICE.value, alias="type")


class ManagerQuestionRequest(CamelModel):
    """An instructor's request to generate questions for a topic."""

    topic: str = Field(..., min_length=1)
    difficulty: str
    count: int = Field(..., ge=1, le=20)
    subtopic_id: Optional[str] = Field(default=None, alias="subtopicId")
    subtopic: Optional[str] = None
    question_type: str = Field(default=QuestionType.MULTIPLE_CHOICE.value, alias="type")
    include_explanations: bool = Field(default=True, alias="includeExplanations")


class ChoiceInfo(CamelModel):
    text: str
    is_correct: bool = Field(alias="isCorrect")


class QuestionInfo(CamelModel):
    id: str
    text: str
    question_type: str = Field(alias="type")
    choices: list[ChoiceInfo]
    answer: int
    explanation: Optional[str] = None
    difficulty: str
    topic: str
    subject: str
    language: str
    source_model: str = Field(alias="sourceModel")


class GenerationResponse(CamelModel):
    questions: list[QuestionInfo]
    model: str
    ab_testing: bool = Field(alias="abTesting")
    grounded: bool


class AnswerRequest(CamelModel):
    question_id: str = Field(..., min_length=1, alias="questionId")
    student_email: str = Field(..., min_length=1, alias="studentEmail")
    student_answer: int = Field(..., ge=0, alias="studentAnswer")
    reported: bool = False


class AnswerResponse(CamelModel):
    question_id: str = Field(alias="questionId")
    correct: bool
    reported: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    mode: str
    document_count: int
    retrieval_degraded: bool
    version: str = API_VERSION


# --- Conversions ---


def _question_info(question: GeneratedQuestion) -> QuestionInfo:
    return QuestionInfo(
        id=question.question_id,
        text=question.text,
        question_type=question.question_type.value,
        choices=[ChoiceInfo(text=c.text, is_correct=c.is_correct) for c in question.choices],
        answer=question.answer_index,
        explanation=question.explanation,
        difficulty=question.difficulty,
        topic=question.topic,
        subject=question.subject,
        language=question.language,
        source_model=question.source_model,
    )


def _generation_response(outcome: GenerationOutcome) -> GenerationResponse:
    return GenerationResponse(
        questions=[_question_info(q) for q in outcome.questions],
        model=outcome.model_name,
        ab_testing=outcome.abc_testing_active,
        grounded=outcome.grounded,
    )


def _search_response(response: SearchResponse) -> SearchResponseBody:
    stats = response.stats
    return SearchResponseBody(
        query=response.query,
        results=[
            SearchResultInfo(
                chunk_id=r.chunk_id,
                text=r.text,
                similarity=r.similarity,
                reranked_score=r.reranked_score,
                metadata=dict(r.metadata),
            )
            for r in response.results
        ],
        stats=SearchStatsInfo(
            total_found=stats.total_found,
            after_filtering=stats.after_filtering,
            returned=stats.returned,
            search_time_ms=stats.search_time_ms,
            threshold=stats.threshold,
            degraded=stats.degraded,
        ),
        filters=response.filters.as_dict(),
    )


def _parse_question_type(value: str) -> QuestionType:
    try:
        return QuestionType.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


# --- Application ---

_pipeline: Optional[QuizPipeline] = None


def get_pipeline() -> QuizPipeline:
    """Get or create the global pipeline instance."""
    global _pipeline
    if _pipeline is None:
        config = QuizConfig()
        _pipeline = QuizPipeline(config)
    return _pipeline


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    pipeline = get_pipeline()
    configure_logging(pipeline.config.log_level)
    pipeline.initialize()
    logger.info("Quiz API started in %s mode", pipeline.config.mode.value)
    yield


def create_app(config: Optional[QuizConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Optional QuizConfig. Defaults to environment-based config.
    """
    app = FastAPI(
        title="AI Quiz Generator",
        description="Course-grounded question generation with per-student model A/B testing",
        version=API_VERSION,
        lifespan=lifespan,
    )

    if config is not None:
        global _pipeline
        _pipeline = QuizPipeline(config)

    @app.exception_handler(LLMInvocationError)
    async def llm_error_handler(request: Request, exc: LLMInvocationError) -> JSONResponse:
        status = exc.status_code or 502
        logger.error("LLM call failed for %s: %s", exc.model_name, exc)
        return JSONResponse(
            status_code=status,
            content={
                "error": "llm_invocation_failed",
                "message": str(exc),
                "code": exc.code,
                "status": status,
                "model": exc.model_name,
            },
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.error("Rejected model response: %s", exc)
        return JSONResponse(
            status_code=502,
            content={
                "error": "invalid_llm_response",
                "message": str(exc),
                "reason": exc.reason,
                "questionIndex": exc.question_index,
            },
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Health check endpoint."""
        pipeline = get_pipeline()
        return HealthResponse(
            status="healthy",
            mode=pipeline.config.mode.value,
            document_count=pipeline.document_count,
            retrieval_degraded=pipeline.retrieval_degraded,
        )

    @app.post("/documents", response_model=IngestResponse)
    def ingest_document(request: DocumentInput) -> IngestResponse:
        """Chunk and index a course document."""
        pipeline = get_pipeline()
        ref = DocumentRef(
            document_id=request.document_id or uuid.uuid4().hex,
            subject_id=request.subject_id,
            topic_id=request.topic_id,
            subtopic_id=request.subtopic_id,
            title=request.title,
        )
        result = pipeline.ingest(request.text, ref)
        if result.is_err():
            raise HTTPException(status_code=500, detail=str(result.error))  # type: ignore[union-attr]

        report = result.unwrap()
        return IngestResponse(
            document_id=report.document_id,
            chunks_indexed=report.chunks_indexed,
            chunks_replaced=report.chunks_replaced,
        )

    @app.delete("/documents/{document_id}", response_model=DeleteResponse)
    def delete_document(document_id: str) -> DeleteResponse:
        """Remove all chunks of a document."""
        result = get_pipeline().delete_document(document_id)
        if result.is_err():
            raise HTTPException(status_code=500, detail=str(result.error))  # type: ignore[union-attr]
        return DeleteResponse(document_id=document_id, chunks_deleted=result.unwrap())

    @app.post("/rag/search", response_model=SearchResponseBody)
    def search(request: SearchRequest) -> SearchResponseBody:
        """Semantic search over indexed course content."""
        pipeline = get_pipeline()
        config = pipeline.config
        options = request.options
        limit = min(options.limit or config.search_limit, config.search_max_limit)
        response = pipeline.search(
            request.query,
            SearchFilters(
                subject_id=request.filters.subject_id,
                topic_id=request.filters.topic_id,
                subtopic_id=request.filters.subtopic_id,
                document_id=request.filters.document_id,
            ),
            SearchOptions(
                limit=limit,
                threshold=(
                    options.threshold if options.threshold is not None else config.search_threshold
                ),
                rerank=(
                    options.rerank_results
                    if options.rerank_results is not None
                    else config.rerank_results
                ),
                include_metadata=options.include_metadata,
            ),
        )
        return _search_response(response)

    @app.post("/questions", response_model=GenerationResponse, response_model_by_alias=True)
    def generate_questions(request: QuestionRequest) -> GenerationResponse:
        """Generate practice questions for a student."""
        try:
            generation_request = GenerationRequest(
                language=request.language,
                difficulty=request.difficulty,
                topic=request.topic,
                num_questions=request.num_questions,
                student_email=request.student_email,
                subject=request.subject,
                subtopic_id=request.subtopic_id,
                question_type=_parse_question_type(request.question_type),
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

        outcome = get_pipeline().generate_for_student(generation_request)
        return _generation_response(outcome)

    @app.post(
        "/manager/subjects/{subject_id}/topics/{topic_id}/generate-questions",
        response_model=GenerationResponse,
        response_model_by_alias=True,
    )
    def generate_manager_questions(
        subject_id: str, topic_id: str, request: ManagerQuestionRequest
    ) -> GenerationResponse:
        """Generate questions for a topic on behalf of an instructor."""
        try:
            manager_request = ManagerGenerationRequest(
                subject_id=subject_id,
                topic_id=topic_id,
                topic=request.topic,
                difficulty=request.difficulty,
                count=request.count,
                question_type=_parse_question_type(request.question_type),
                subtopic_id=request.subtopic_id,
                subtopic=request.subtopic,
                include_explanations=request.include_explanations,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

        outcome = get_pipeline().generate_for_manager(manager_request)
        return _generation_response(outcome)

    @app.post("/answers", response_model=AnswerResponse, response_model_by_alias=True)
    def record_answer(request: AnswerRequest) -> AnswerResponse:
        """Save a student's answer or a report that the question is wrong."""
        student_email = request.student_email.strip()
        if not student_email:
            raise HTTPException(status_code=422, detail="studentEmail cannot be empty")
        pipeline = get_pipeline()
        if pipeline.questions.get(request.question_id) is None:
            raise HTTPException(
                status_code=404, detail=f"Unknown question {request.question_id!r}"
            )
        result = pipeline.record_answer(
            request.question_id,
            student_email,
            request.student_answer,
            reported=request.reported,
        )
        if result.is_err():
            raise HTTPException(status_code=422, detail=str(result.error))  # type: ignore[union-attr]

        answered = result.unwrap()
        return AnswerResponse(
            question_id=answered.question_id,
            correct=answered.correct,
            reported=answered.reported,
        )

    return app


# Default app instance for uvicorn
app = create_app()
