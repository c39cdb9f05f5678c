"""Escalation of low-confidence answers to human review."""
from typing import Optional

import structlog

from docqa import config
from docqa.errors import PersistenceError
from docqa.rag.store import KnowledgeStore

logger = structlog.get_logger()


def should_escalate(confidence: float, threshold: float) -> bool:
    """True iff the answer's confidence is strictly below the threshold."""
    return confidence < threshold


class EscalationPolicy:
    """Opens a ticket for saved queries whose confidence is below threshold."""

    def __init__(self, store: KnowledgeStore, threshold: float = None):
        self.store = store
        self.threshold = config.CONFIDENCE_THRESHOLD if threshold is None else threshold

    async def record(self, query_id: Optional[int], confidence: float) -> Optional[int]:
        """Open a ticket for the query when needed.

        Runs after the answer is determined and never changes it: a query
        that was not saved gets no ticket, and ticket write failures are
        logged rather than raised.

        Returns:
            ID of the new ticket, or None
        """
        if not should_escalate(confidence, self.threshold):
            return None

        if query_id is None:
            logger.warning("escalation_skipped_query_not_saved", confidence=confidence)
            return None

        try:
            ticket_id = await self.store.insert_ticket(query_id, status="open")
        except PersistenceError as e:
            logger.error("ticket_creation_failed", query_id=query_id, error=str(e))
            return None

        logger.info(
            "query_escalated",
            query_id=query_id,
            ticket_id=ticket_id,
            confidence=confidence,
            threshold=self.threshold,
        )
        return ticket_id
