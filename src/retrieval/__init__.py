"""Retrieval over indexed course chunks: vector indexes, reranking and degradation."""

from src.retrieval.backends import FallbackRetrievalBackend, RetrievalBackend, StubRetrievalBackend
from src.retrieval.semantic import SemanticRetriever
from src.retrieval.store import ChromaVectorIndex, InMemoryVectorIndex, VectorIndex

__all__ = [
    "ChromaVectorIndex",
    "FallbackRetrievalBackend",
    "InMemoryVectorIndex",
    "RetrievalBackend",
    "SemanticRetriever",
    "StubRetrievalBackend",
    "VectorIndex",
]
