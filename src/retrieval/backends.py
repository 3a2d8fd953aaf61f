"""Retrieval backends and the degrade-to-empty fallback.

Question generation never fails because retrieval is unavailable: the
``FallbackRetrievalBackend`` swaps in a stub when the primary cannot be
initialized and turns runtime retrieval errors into an empty,
``degraded`` response.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

from src.quiz.errors import InitializationError, QuizError
from src.quiz.models import SearchFilters, SearchOptions, SearchResponse

logger = logging.getLogger(__name__)


class RetrievalBackend(ABC):
    """Anything that can answer a filtered semantic search."""

    def initialize(self) -> None:
        """Prepare the backend. Idempotent."""

    @abstractmethod
    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        ...


class StubRetrievalBackend(RetrievalBackend):
    """Always finds nothing."""

    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        options = options or SearchOptions()
        return SearchResponse.empty(query, filters or SearchFilters(), options.threshold)


class FallbackRetrievalBackend(RetrievalBackend):
    """Use ``primary`` while it works, ``fallback`` when it cannot start."""

    def __init__(
        self,
        primary: RetrievalBackend,
        fallback: Optional[RetrievalBackend] = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback or StubRetrievalBackend()
        self._active: Optional[RetrievalBackend] = None

    @property
    def degraded(self) -> bool:
        return self._active is self._fallback

    def initialize(self) -> None:
        if self._active is not None:
            return
        try:
            self._primary.initialize()
            self._active = self._primary
        except InitializationError as exc:
            logger.warning("Retrieval unavailable, continuing without grounding: %s", exc)
            self._fallback.initialize()
            self._active = self._fallback

    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        self.initialize()
        backend = self._active if self._active is not None else self._fallback
        filters = filters or SearchFilters()
        options = options or SearchOptions()
        try:
            response = backend.search(query, filters, options)
        except QuizError as exc:
            logger.warning("Retrieval failed for %r, returning no content: %s", query, exc)
            return SearchResponse.empty(query, filters, options.threshold, degraded=True)

        if self.degraded:
            return replace(response, stats=replace(response.stats, degraded=True))
        return response
