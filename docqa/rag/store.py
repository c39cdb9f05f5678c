"""Knowledge store: SQLite records plus the FAISS index for one dimension.

Exposes the operations the pipelines need (documents, chunks,
nearest-neighbour search, queries, tickets) and converts storage failures
into the docqa error taxonomy.
"""
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import structlog

from docqa import db
from docqa.errors import ConfigurationError, PersistenceError, RetrievalError
from docqa.rag.store_faiss import FAISSVectorStore
from docqa.schemas import Citation

logger = structlog.get_logger()


@dataclass
class DocumentRef:
    """Display information for a stored document."""

    id: int
    name: str
    source_url: Optional[str] = None


@dataclass
class ChunkRow:
    """A chunk ready to be persisted."""

    document_id: int
    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NeighborMatch:
    """A stored chunk returned by nearest-neighbour search."""

    chunk_id: int
    document_id: int
    content: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class KnowledgeStore:
    """Document, chunk, query and ticket storage for one embedding dimension."""

    def __init__(
        self,
        dimension: int,
        index_dir: Path = None,
        vector_store: FAISSVectorStore = None,
    ):
        self.dimension = dimension
        self.vectors = vector_store or FAISSVectorStore(dimension, index_dir=index_dir)
        db.init_database()

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise ConfigurationError(
                f"Embedding has dimension {len(vector)} but this store holds "
                f"{self.dimension}-dimensional vectors; ingestion and queries "
                "must use the same embedding backend"
            )

    async def insert_document(
        self, name: str, source_url: Optional[str], uploaded_by: str
    ) -> int:
        try:
            return db.insert_document(name, source_url, uploaded_by)
        except sqlite3.Error as e:
            raise PersistenceError(f"Insert into documents failed: {e}") from e

    async def insert_chunks(self, rows: Sequence[ChunkRow]) -> List[int]:
        """Persist a batch of chunks and their vectors.

        Raises:
            ConfigurationError: If a vector does not match the store dimension
            PersistenceError: If either the rows or the vectors cannot be written
        """
        if not rows:
            return []

        for row in rows:
            self._check_dimension(row.embedding)

        try:
            chunk_ids = db.insert_chunks([
                {
                    "document_id": row.document_id,
                    "content": row.content,
                    "embedding_dim": self.dimension,
                    "metadata": row.metadata,
                }
                for row in rows
            ])
        except sqlite3.Error as e:
            raise PersistenceError(f"Insert into chunks failed: {e}") from e

        try:
            await self.vectors.add_vectors([row.embedding for row in rows], chunk_ids)
        except (RuntimeError, ValueError) as e:
            logger.error("vector_insert_failed", error=str(e), batch_size=len(rows))
            try:
                db.delete_chunks(chunk_ids)
            except sqlite3.Error as rollback_error:
                logger.error(
                    "chunk_rollback_failed",
                    error=str(rollback_error),
                    chunk_ids=chunk_ids,
                )
            raise PersistenceError(f"Writing vectors failed: {e}") from e

        return chunk_ids

    async def nearest_neighbors(
        self, query_vector: Sequence[float], k: int
    ) -> List[NeighborMatch]:
        """Return up to k stored chunks most similar to the query, best first.

        Raises:
            ConfigurationError: If the query vector has the wrong dimension
            RetrievalError: If the index or database cannot be read
        """
        self._check_dimension(query_vector)

        try:
            vector_ids, similarities = await self.vectors.search(query_vector, top_k=k)
            rows = db.get_chunks_by_ids(vector_ids)
        except (RuntimeError, ValueError, sqlite3.Error) as e:
            logger.error("nearest_neighbors_failed", error=str(e))
            raise RetrievalError(f"Vector search failed: {e}") from e

        matches = []
        for vector_id, similarity in zip(vector_ids, similarities):
            row = rows.get(vector_id)
            if row is None:
                logger.warning("vector_id_without_chunk", vector_id=vector_id)
                continue
            matches.append(
                NeighborMatch(
                    chunk_id=vector_id,
                    document_id=row["document_id"],
                    content=row["content"],
                    similarity=similarity,
                    metadata=row["metadata"],
                )
            )
        return matches

    async def get_documents_by_ids(self, document_ids: Sequence[int]) -> List[DocumentRef]:
        try:
            rows = db.get_documents_by_ids(list(document_ids))
        except sqlite3.Error as e:
            raise RetrievalError(f"Document lookup failed: {e}") from e
        return [DocumentRef(id=r["id"], name=r["name"], source_url=r["source_url"]) for r in rows]

    async def insert_query(
        self,
        question: str,
        answer: str,
        confidence: float,
        citations: Sequence[Citation],
    ) -> int:
        try:
            return db.insert_query(
                question,
                answer,
                confidence,
                [c.model_dump(by_alias=True) for c in citations],
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Insert into queries failed: {e}") from e

    async def insert_ticket(self, query_id: int, status: str = "open") -> int:
        try:
            return db.insert_ticket(query_id, status)
        except sqlite3.Error as e:
            raise PersistenceError(f"Insert into tickets failed: {e}") from e

    async def close_ticket(self, ticket_id: int) -> bool:
        try:
            return db.close_ticket(ticket_id)
        except sqlite3.Error as e:
            raise PersistenceError(f"Closing ticket failed: {e}") from e

    async def list_tickets(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            return db.list_tickets(status)
        except sqlite3.Error as e:
            raise RetrievalError(f"Ticket lookup failed: {e}") from e

    def get_stats(self) -> Dict[str, Any]:
        return {
            "dimension": self.dimension,
            "chunk_count": db.get_chunk_count(),
            "vectors": self.vectors.get_stats(),
        }
