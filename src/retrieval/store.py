"""Vector index abstraction over course chunks.

Two implementations share one interface:
- InMemoryVectorIndex: process-local, used by tests and mock mode
- ChromaVectorIndex: ChromaDB collection with cosine space

Indexes only store and filter; similarity scoring happens in the
retriever so ordering is identical across backends.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import chromadb
from chromadb.config import Settings

from src.quiz.config import QuizConfig, VectorIndexKind
from src.quiz.errors import Err, Ok, Result, RetrievalDegradation
from src.quiz.models import Chunk, Embedding, SearchFilters

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexedChunk:
    """A stored chunk with its vector."""

    chunk: Chunk
    vector: tuple[float, ...]


class VectorIndex(ABC):
    """Storage for chunk vectors with metadata filtering."""

    @abstractmethod
    def add(self, chunks: list[Chunk], embeddings: list[Embedding]) -> Result[int, str]:
        """Store chunks with their embeddings."""
        ...

    @abstractmethod
    def candidates(self, filters: SearchFilters) -> list[IndexedChunk]:
        """Return every chunk matching all filters, in insertion order."""
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> Result[int, str]:
        """Remove all chunks of a document. Returns the number removed."""
        ...

    @property
    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def clear(self) -> Result[None, str]:
        ...


def _check_pairs(chunks: list[Chunk], embeddings: list[Embedding]) -> Optional[str]:
    if len(chunks) != len(embeddings):
        return f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
    for chunk, embedding in zip(chunks, embeddings):
        if chunk.id != embedding.chunk_id:
            return f"Embedding {embedding.chunk_id!r} does not belong to chunk {chunk.id!r}"
    return None


class InMemoryVectorIndex(VectorIndex):
    """Dictionary-backed index. Insertion order is the dict order."""

    def __init__(self) -> None:
        self._entries: dict[str, IndexedChunk] = {}

    @property
    def count(self) -> int:
        return len(self._entries)

    def add(self, chunks: list[Chunk], embeddings: list[Embedding]) -> Result[int, str]:
        problem = _check_pairs(chunks, embeddings)
        if problem:
            return Err(problem)
        for chunk, embedding in zip(chunks, embeddings):
            self._entries.pop(chunk.id, None)
            self._entries[chunk.id] = IndexedChunk(chunk=chunk, vector=embedding.vector)
        return Ok(len(chunks))

    def candidates(self, filters: SearchFilters) -> list[IndexedChunk]:
        return [e for e in self._entries.values() if filters.matches(e.chunk)]

    def delete_document(self, document_id: str) -> Result[int, str]:
        doomed = [
            cid
            for cid, e in self._entries.items()
            if e.chunk.document_ref.document_id == document_id
        ]
        for cid in doomed:
            del self._entries[cid]
        return Ok(len(doomed))

    def clear(self) -> Result[None, str]:
        self._entries.clear()
        return Ok(None)


class ChromaVectorIndex(VectorIndex):
    """ChromaDB-backed index for course chunks.

    Each record carries a ``seq`` metadata field so candidates come back
    in insertion order regardless of Chroma's internal ordering.
    """

    def __init__(
        self,
        config: QuizConfig,
        client: Optional[chromadb.ClientAPI] = None,
    ) -> None:
        self._config = config

        if client is not None:
            self._client = client
        else:
            settings = Settings(anonymized_telemetry=False)
            if config.chroma_persist_dir:
                self._client = chromadb.PersistentClient(
                    path=config.chroma_persist_dir, settings=settings
                )
            else:
                self._client = chromadb.EphemeralClient(settings=settings)

        self._collection = self._open_collection()
        self._next_seq = self._max_seq() + 1

    def _open_collection(self) -> Any:
        return self._client.get_or_create_collection(
            name=self._config.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    def _max_seq(self) -> int:
        existing = self._collection.get(include=["metadatas"])
        seqs = [int(m.get("seq", 0)) for m in existing.get("metadatas") or [] if m]
        return max(seqs, default=-1)

    @property
    def count(self) -> int:
        return self._collection.count()

    def add(self, chunks: list[Chunk], embeddings: list[Embedding]) -> Result[int, str]:
        if not chunks:
            return Ok(0)
        problem = _check_pairs(chunks, embeddings)
        if problem:
            return Err(problem)

        metadatas = []
        for offset, chunk in enumerate(chunks):
            metadatas.append({**chunk.metadata(), "seq": self._next_seq + offset})

        try:
            self._collection.upsert(
                ids=[c.id for c in chunks],
                embeddings=[list(e.vector) for e in embeddings],  # type: ignore[arg-type]
                documents=[c.text for c in chunks],
                metadatas=metadatas,  # type: ignore[arg-type]
            )
        except Exception as e:
            return Err(f"ChromaDB add failed: {e}")

        self._next_seq += len(chunks)
        logger.debug("Indexed %d chunks in %s", len(chunks), self._config.chroma_collection)
        return Ok(len(chunks))

    def candidates(self, filters: SearchFilters) -> list[IndexedChunk]:
        """Matching chunks in insertion order.

        Raises:
            RetrievalDegradation: The ChromaDB backend could not be queried.
        """
        try:
            results = self._collection.get(
                where=self._where(filters),
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as e:
            raise RetrievalDegradation(f"ChromaDB query failed: {e}") from e
        ids = results.get("ids") or []
        documents = results.get("documents") or []
        metadatas = results.get("metadatas") or []
        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = []

        entries: list[tuple[int, IndexedChunk]] = []
        for cid, text, metadata, vector in zip(ids, documents, metadatas, embeddings):
            chunk = Chunk.from_metadata(cid, text, dict(metadata))  # type: ignore[arg-type]
            entries.append(
                (
                    int(metadata.get("seq", 0)),  # type: ignore[union-attr]
                    IndexedChunk(chunk=chunk, vector=tuple(float(x) for x in vector)),
                )
            )
        entries.sort(key=lambda pair: pair[0])
        return [entry for _, entry in entries]

    @staticmethod
    def _where(filters: SearchFilters) -> Optional[dict[str, Any]]:
        clauses = [{k: v} for k, v in filters.as_dict().items()]
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def delete_document(self, document_id: str) -> Result[int, str]:
        try:
            ids = self._collection.get(where={"document_id": document_id})["ids"]
            if ids:
                self._collection.delete(ids=ids)
            return Ok(len(ids))
        except Exception as e:
            return Err(f"ChromaDB delete failed: {e}")

    def clear(self) -> Result[None, str]:
        try:
            self._client.delete_collection(self._config.chroma_collection)
            self._collection = self._open_collection()
            self._next_seq = 0
            return Ok(None)
        except Exception as e:
            return Err(f"Clear failed: {e}")


def create_vector_index(config: QuizConfig) -> VectorIndex:
    """Factory function to create the configured vector index."""
    if config.vector_index == VectorIndexKind.CHROMA:
        return ChromaVectorIndex(config)
    return InMemoryVectorIndex()
