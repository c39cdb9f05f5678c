"""Question answering service: the read path of the RAG pipeline.

retrieve -> compose -> save query -> escalate
"""
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from docqa import config
from docqa.errors import InputError, PersistenceError
from docqa.rag.composer import NO_INFORMATION_ANSWER, AnswerComposer
from docqa.rag.escalation import EscalationPolicy
from docqa.rag.retriever import Retriever, build_citations
from docqa.rag.store import KnowledgeStore
from docqa.schemas import AskResponse, Citation

logger = structlog.get_logger()


@dataclass
class AskResult:
    """Answer to one question plus the records it produced."""

    answer: str
    confidence: float
    citations: List[Citation] = field(default_factory=list)
    query_id: Optional[int] = None
    ticket_id: Optional[int] = None

    def to_response(self) -> AskResponse:
        return AskResponse(
            answer=self.answer,
            citations=self.citations,
            confidence=self.confidence,
        )


class QAService:
    """Answers questions from the knowledge store."""

    def __init__(
        self,
        store: KnowledgeStore,
        retriever: Retriever,
        composer: AnswerComposer,
        escalation: EscalationPolicy,
        max_question_length: int = None,
    ):
        self.store = store
        self.retriever = retriever
        self.composer = composer
        self.escalation = escalation
        self.max_question_length = max_question_length or config.MAX_QUESTION_LENGTH

    def validate_question(self, question) -> str:
        """Return the stripped question.

        Raises:
            InputError: If the question is missing, not a string, empty or too long
        """
        if not isinstance(question, str):
            raise InputError("Invalid question")

        question = question.strip()
        if not question:
            raise InputError("Question cannot be empty")
        if len(question) > self.max_question_length:
            raise InputError(
                f"Question too long (max {self.max_question_length} characters)"
            )
        return question

    async def ask(self, question) -> AskResult:
        """Answer a question.

        Raises:
            InputError: If the question is invalid
            EmbeddingError, ConfigurationError, RetrievalError: If retrieval fails
        """
        question = self.validate_question(question)

        retrieval = await self.retriever.retrieve(question)

        if retrieval.has_matches:
            answer = await self.composer.compose(question, retrieval.context)
            citations = build_citations(retrieval.chunks)
        else:
            # Nothing to ground an answer in, so the generator is not called
            answer = NO_INFORMATION_ANSWER
            citations = []

        result = AskResult(
            answer=answer,
            confidence=retrieval.confidence,
            citations=citations,
        )

        try:
            result.query_id = await self.store.insert_query(
                question, answer, result.confidence, citations
            )
        except PersistenceError as e:
            logger.error("query_save_failed", error=str(e))

        result.ticket_id = await self.escalation.record(result.query_id, result.confidence)

        logger.info(
            "question_answered",
            query_id=result.query_id,
            confidence=result.confidence,
            citations=len(citations),
            escalated=result.ticket_id is not None,
        )

        return result
