"""Retriever for semantic search over ingested documents.

Handles:
- Question embedding with the ingestion backend
- Nearest-neighbour search in the knowledge store
- Batched document lookup for display names and links
- Confidence scoring
- Context assembly under a character budget
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from docqa import config
from docqa.rag.embedder import Embedder
from docqa.rag.store import KnowledgeStore
from docqa.schemas import Citation

logger = structlog.get_logger()

BLOCK_SEPARATOR = "\n\n---\n\n"
SNIPPET_LENGTH = 240
UNKNOWN_DOCUMENT = "unknown"


@dataclass
class RankedChunk:
    """A retrieved chunk with its rank and owning document."""

    rank: int
    chunk_id: int
    document_id: int
    document_name: str
    content: str
    similarity: float
    source_url: Optional[str] = None

    @property
    def block(self) -> str:
        """Context block with a numbered header."""
        return f"# [{self.rank}] {self.document_name}\n{self.content}"


@dataclass
class RetrievalResult:
    """Ranked chunks, confidence and the assembled context for a question."""

    chunks: List[RankedChunk] = field(default_factory=list)
    confidence: float = 0.0
    context: str = ""

    @classmethod
    def empty(cls) -> "RetrievalResult":
        """Sentinel for questions with no matching chunks."""
        return cls()

    @property
    def has_matches(self) -> bool:
        return bool(self.chunks)


def clamp_confidence(similarity: float) -> float:
    return max(0.0, min(1.0, float(similarity)))


def compute_confidence(similarities: Sequence[float], mode: str = None) -> float:
    """Score how well the matches ground an answer, in [0, 1].

    "top1" uses the best match's similarity alone. "mean" averages the
    clamped similarities of every match.
    """
    if not similarities:
        return 0.0

    mode = (mode or config.CONFIDENCE_MODE).lower()
    if mode == "mean":
        clamped = [clamp_confidence(s) for s in similarities]
        return sum(clamped) / len(clamped)
    return clamp_confidence(similarities[0])


def build_context(chunks: Sequence[RankedChunk], budget: int = None) -> str:
    """Join context blocks in rank order without exceeding the budget.

    Stops at the first block that would overflow; blocks are never cut.
    """
    budget = config.CONTEXT_CHAR_BUDGET if budget is None else budget
    context = ""

    for chunk in chunks:
        candidate = f"{context}{BLOCK_SEPARATOR}{chunk.block}" if context else chunk.block
        if len(candidate) > budget:
            break
        context = candidate

    return context


def make_snippet(content: str, length: int = SNIPPET_LENGTH) -> str:
    if len(content) > length:
        return content[:length] + "..."
    return content


def build_citations(chunks: Sequence[RankedChunk]) -> List[Citation]:
    """Citation per ranked chunk, in rank order."""
    return [
        Citation(
            doc_name=chunk.document_name,
            source_url=chunk.source_url,
            snippet=make_snippet(chunk.content),
            similarity=round(chunk.similarity, 3),
        )
        for chunk in chunks
    ]


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: Embedder,
        top_k: int = None,
        context_budget: int = None,
        confidence_mode: str = None,
    ):
        """Initialize the retriever.

        Args:
            store: Knowledge store holding vectors of the embedder's dimension
            embedder: The same embedding backend used at ingestion time
            top_k: Number of results to retrieve (default from config)
            context_budget: Maximum context length in characters (default from config)
            confidence_mode: "top1" or "mean" (default from config)
        """
        self.store = store
        self.embedder = embedder
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.context_budget = context_budget or config.CONTEXT_CHAR_BUDGET
        self.confidence_mode = confidence_mode or config.CONFIDENCE_MODE

        logger.info(
            "retriever_initialized",
            embedder=embedder.name,
            top_k=self.top_k,
            context_budget=self.context_budget,
        )

    async def retrieve(self, question: str, top_k: Optional[int] = None) -> RetrievalResult:
        """Retrieve ranked chunks for a question.

        Args:
            question: User question text
            top_k: Number of results to return (overrides default)

        Returns:
            RetrievalResult; RetrievalResult.empty() when nothing matched

        Raises:
            EmbeddingError: If the question cannot be embedded
            ConfigurationError: If the embedder and store dimensions differ
            RetrievalError: If the store query fails
        """
        top_k = top_k or self.top_k

        logger.info("retrieval_started", query_length=len(question), top_k=top_k)

        query_embedding = await self.embedder.embed(question)
        matches = await self.store.nearest_neighbors(query_embedding, top_k)

        if not matches:
            logger.info("no_results_found")
            return RetrievalResult.empty()

        document_ids = sorted({m.document_id for m in matches})
        documents = {
            doc.id: doc for doc in await self.store.get_documents_by_ids(document_ids)
        }

        ranked = []
        for rank, match in enumerate(matches, 1):
            doc = documents.get(match.document_id)
            ranked.append(
                RankedChunk(
                    rank=rank,
                    chunk_id=match.chunk_id,
                    document_id=match.document_id,
                    document_name=doc.name if doc else UNKNOWN_DOCUMENT,
                    source_url=doc.source_url if doc else None,
                    content=match.content,
                    similarity=match.similarity,
                )
            )

        confidence = compute_confidence([c.similarity for c in ranked], self.confidence_mode)
        context = build_context(ranked, self.context_budget)

        logger.info(
            "retrieval_completed",
            results_returned=len(ranked),
            top_similarity=ranked[0].similarity,
            confidence=confidence,
            context_length=len(context),
        )

        return RetrievalResult(chunks=ranked, confidence=confidence, context=context)
