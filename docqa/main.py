"""Quart application exposing the question-answering API."""
import asyncio
from typing import Optional

import structlog
from pydantic import ValidationError
from quart import Quart, jsonify, request

from docqa import config
from docqa.db import TICKET_STATUSES
from docqa.errors import (
    ConfigurationError,
    EmbeddingError,
    InputError,
    PersistenceError,
    RetrievalError,
)
from docqa.llm_client import get_generation_backend
from docqa.rag.composer import AnswerComposer
from docqa.rag.embedder import get_embedder
from docqa.rag.escalation import EscalationPolicy
from docqa.rag.qa import QAService
from docqa.rag.retriever import Retriever
from docqa.rag.store import KnowledgeStore
from docqa.schemas import AskRequest

config.configure_logging()

logger = structlog.get_logger()

app = Quart(__name__)

_qa_service: Optional[QAService] = None
_qa_service_lock = asyncio.Lock()


async def build_qa_service() -> QAService:
    """Wire the configured embedder, store and generation backend together."""
    embedder = get_embedder()
    dimension = await embedder.get_dimension()
    store = KnowledgeStore(dimension)
    return QAService(
        store=store,
        retriever=Retriever(store, embedder),
        composer=AnswerComposer(backend=get_generation_backend()),
        escalation=EscalationPolicy(store),
    )


async def get_qa_service() -> QAService:
    """Get or create the singleton QA service."""
    global _qa_service
    if _qa_service is not None:
        return _qa_service

    async with _qa_service_lock:
        if _qa_service is None:
            _qa_service = await build_qa_service()
            logger.info(
                "qa_service_ready",
                embedding_backend=config.EMBEDDING_BACKEND,
                generation_backend=config.GENERATION_BACKEND,
                dimension=_qa_service.store.dimension,
            )
    return _qa_service


def set_qa_service(service: Optional[QAService]) -> None:
    """Replace the singleton QA service (None resets it)."""
    global _qa_service
    _qa_service = service


@app.route("/api/ask", methods=["POST"])
async def ask():
    """Answer a question from the document collection.

    Expects JSON body:
    {
        "question": "question text"
    }

    Returns JSON:
    {
        "answer": "answer text",
        "citations": [{"docName", "sourceUrl", "snippet", "similarity"}, ...],
        "confidence": 0.0-1.0
    }
    """
    data = await request.get_json(silent=True)

    try:
        body = AskRequest.model_validate(data or {})
    except ValidationError:
        logger.warning("invalid_ask_request", data_preview=str(data)[:100])
        return jsonify({"error": "Invalid question"}), 400

    try:
        service = await get_qa_service()
        result = await service.ask(body.question)

    except InputError as e:
        return jsonify({"error": e.message}), 400

    except RetrievalError as e:
        logger.error("ask_retrieval_failed", error=str(e))
        return jsonify({"error": "Vector search failed"}), 500

    except (EmbeddingError, ConfigurationError) as e:
        logger.error("ask_embedding_failed", error=str(e), error_type=type(e).__name__)
        return jsonify({"error": "Could not process the question"}), 500

    except Exception as e:
        logger.exception("ask_endpoint_error", error=str(e), error_type=type(e).__name__)
        return jsonify({"error": "Error in /api/ask"}), 500

    return jsonify(result.to_response().model_dump(by_alias=True))


@app.route("/api/tickets", methods=["GET"])
async def list_tickets():
    """List escalation tickets, optionally filtered by ?status=open|closed."""
    status = request.args.get("status")
    if status and status not in TICKET_STATUSES:
        return jsonify({"error": f"Invalid status: {status}"}), 400

    try:
        service = await get_qa_service()
        tickets = await service.store.list_tickets(status)
    except RetrievalError as e:
        logger.error("tickets_list_error", error=str(e))
        return jsonify({"error": "Failed to list tickets"}), 500

    return jsonify({"tickets": tickets})


@app.route("/api/tickets/<int:ticket_id>/close", methods=["POST"])
async def close_ticket(ticket_id: int):
    """Close an open ticket after human review."""
    try:
        service = await get_qa_service()
        closed = await service.store.close_ticket(ticket_id)
    except PersistenceError as e:
        logger.error("ticket_close_error", error=str(e), ticket_id=ticket_id)
        return jsonify({"error": "Failed to close ticket"}), 500

    if not closed:
        return jsonify({"error": "Open ticket not found"}), 404

    logger.info("ticket_closed", ticket_id=ticket_id)
    return jsonify({"id": ticket_id, "status": "closed"})


@app.route("/health/ready")
async def health_ready():
    """Readiness probe - store reachable and embedder dimension matches."""
    checks = {"status": "healthy"}

    try:
        service = await get_qa_service()
        checks["store"] = service.store.get_stats()
        dimension = await service.retriever.embedder.get_dimension()
        if dimension != service.store.dimension:
            checks["status"] = "unhealthy"
            checks["error"] = (
                f"Embedder dimension {dimension} does not match store dimension "
                f"{service.store.dimension}"
            )
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)

    status_code = 200 if checks["status"] == "healthy" else 503
    return jsonify(checks), status_code


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    # For development - use hypercorn docqa.main:app in production
    app.run(host="0.0.0.0", port=5000, debug=True)
