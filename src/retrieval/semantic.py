"""Semantic retrieval over indexed course chunks.

Scores every chunk matching the ownership filters against the query
embedding, drops those under the similarity threshold, optionally
reranks the best ``2 * limit`` and truncates to ``limit``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Optional

import numpy as np

from src.quiz.embeddings import EmbeddingService
from src.quiz.errors import Err, Ok, Result, RetrievalDegradation
from src.quiz.models import (
    Chunk,
    IngestionReport,
    RetrievalResult,
    SearchFilters,
    SearchOptions,
    SearchResponse,
    SearchStats,
)
from src.retrieval.backends import RetrievalBackend
from src.retrieval.reranker import BaseReranker
from src.retrieval.store import IndexedChunk, VectorIndex

logger = logging.getLogger(__name__)


class SemanticRetriever(RetrievalBackend):
    """Retrieves chunks using embedding-based cosine similarity."""

    def __init__(
        self,
        embeddings: EmbeddingService,
        index: VectorIndex,
        reranker: Optional[BaseReranker] = None,
    ) -> None:
        self._embeddings = embeddings
        self._index = index
        self._reranker = reranker

    @property
    def index(self) -> VectorIndex:
        return self._index

    def initialize(self) -> None:
        self._embeddings.initialize()

    def index_chunks(self, document_id: str, chunks: list[Chunk]) -> Result[IngestionReport, str]:
        """Embed and store a document's chunks, replacing any previous version."""
        embeddings = self._embeddings.embed_chunks(chunks)

        removed = self._index.delete_document(document_id)
        if removed.is_err():
            return Err(f"Could not remove previous chunks: {removed.error}")  # type: ignore[union-attr]

        added = self._index.add(chunks, embeddings)
        if added.is_err():
            return Err(f"Vector index add failed: {added.error}")  # type: ignore[union-attr]

        return Ok(
            IngestionReport(
                document_id=document_id,
                chunks_indexed=added.unwrap(),
                chunks_replaced=removed.unwrap(),
            )
        )

    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        filters = filters or SearchFilters()
        options = options or SearchOptions()
        start_time = time.monotonic()

        query_vector = self._embeddings.embed(query)
        candidates = self._index.candidates(filters)
        similarities = self._score(query_vector, candidates)

        kept = [i for i, s in enumerate(similarities) if s >= options.threshold]
        # sorted() is stable, so equal similarities keep insertion order
        kept.sort(key=lambda i: similarities[i], reverse=True)

        results = [
            RetrievalResult(
                chunk_id=candidates[i].chunk.id,
                text=candidates[i].chunk.text,
                similarity=similarities[i],
                metadata=dict(candidates[i].chunk.metadata()),
            )
            for i in kept[: options.limit * 2]
        ]
        if options.rerank and self._reranker is not None:
            results = self._reranker.rerank(query, results)
        results = results[: options.limit]
        if not options.include_metadata:
            results = [replace(r, metadata={}) for r in results]

        stats = SearchStats(
            total_found=len(candidates),
            after_filtering=len(kept),
            returned=len(results),
            search_time_ms=(time.monotonic() - start_time) * 1000,
            threshold=options.threshold,
        )
        logger.info(
            "Search %r: %d candidates, %d above %.2f, %d returned",
            query,
            stats.total_found,
            stats.after_filtering,
            options.threshold,
            stats.returned,
        )
        return SearchResponse(query=query, results=tuple(results), stats=stats, filters=filters)

    @staticmethod
    def _score(query_vector: list[float], candidates: list[IndexedChunk]) -> list[float]:
        """Cosine similarity of every candidate, clipped to [-1, 1]."""
        if not candidates:
            return []
        query = np.asarray(query_vector, dtype=np.float64)
        dims = {len(c.vector) for c in candidates}
        if dims != {query.shape[0]}:
            raise RetrievalDegradation(
                f"Indexed vectors have {sorted(dims)} dimensions, query has {query.shape[0]}"
            )
        matrix = np.asarray([c.vector for c in candidates], dtype=np.float64)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        safe = np.where(norms > 0, norms, 1.0)
        scores = np.where(norms > 0, dots / safe, 0.0)
        return [float(s) for s in np.clip(scores, -1.0, 1.0)]
