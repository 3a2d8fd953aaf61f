"""Document chunking for course material ingestion."""

from src.chunking.strategies import (
    ChunkingStats,
    ChunkingStrategy,
    SemanticTextChunker,
    chunking_stats,
)

__all__ = [
    "ChunkingStats",
    "ChunkingStrategy",
    "SemanticTextChunker",
    "chunking_stats",
]
