"""Answer composition from retrieved context.

The generative backend answers from the context only. When it is disabled,
unreachable or fails, a deterministic extractive summary of the top context
blocks is returned instead.
"""
import re

import structlog

from docqa import config
from docqa.errors import GenerationError
from docqa.rag.retriever import BLOCK_SEPARATOR

logger = structlog.get_logger()

NO_INFORMATION_ANSWER = (
    "I don't have enough information in the knowledge base to answer that question. "
    "Try rephrasing it or upload more documents."
)

FALLBACK_BLOCKS = 3
FALLBACK_SNIPPET_LENGTH = 300

_BLOCK_HEADER = re.compile(r"^#\s*\[\d+\]\s*")

PROMPT_TEMPLATE = """You are an assistant that answers questions about an internal document collection.
Answer ONLY with information from the context below.
Cite the documents you use inline as [doc:<document name>].
If the context does not contain enough evidence, reply "I don't have enough information" instead of guessing.

Question: {question}

Context:
{context}"""


def build_prompt(question: str, context: str) -> str:
    return PROMPT_TEMPLATE.format(question=question, context=context)


def build_local_answer(context: str) -> str:
    """Summarize the first context blocks as a bulleted list.

    Always returns a non-empty string.
    """
    blocks = [b for b in (context or "").split(BLOCK_SEPARATOR) if b.strip()]
    if not blocks:
        return NO_INFORMATION_ANSWER

    bullets = []
    for i, block in enumerate(blocks[:FALLBACK_BLOCKS], 1):
        lines = block.strip().split("\n")
        title = _BLOCK_HEADER.sub("", lines[0]).strip() or f"Source {i}"
        body = " ".join(line.strip() for line in lines[1:] if line.strip())
        snippet = body[:FALLBACK_SNIPPET_LENGTH]
        ellipsis = "..." if len(body) > FALLBACK_SNIPPET_LENGTH else ""
        bullets.append(f"• {title}: {snippet}{ellipsis}".rstrip())

    return "\n".join([
        "Based on what I found in the documents:",
        "",
        *bullets,
        "",
        "If you need more detail, tell me which specific section you want me to explore.",
    ])


class AnswerComposer:
    """Composes grounded answers with a generative backend and a local fallback."""

    def __init__(
        self,
        backend=None,
        context_limit: int = None,
        temperature: float = None,
        max_tokens: int = None,
    ):
        """Initialize the composer.

        Args:
            backend: Object with async generate(prompt, temperature, max_tokens),
                or None to always use the extractive fallback
            context_limit: Hard cap on context characters sent to the backend
            temperature: Sampling temperature
            max_tokens: Maximum generated tokens
        """
        self.backend = backend
        self.context_limit = context_limit or config.GENERATION_CONTEXT_LIMIT
        self.temperature = (
            config.GENERATION_TEMPERATURE if temperature is None else temperature
        )
        self.max_tokens = max_tokens or config.GENERATION_MAX_TOKENS

    async def compose(self, question: str, context: str) -> str:
        """Answer a question from context; never raises for backend failures."""
        safe_context = (context or "")[: self.context_limit]

        if self.backend is None:
            logger.info("generation_disabled_using_local_answer")
            return build_local_answer(safe_context)

        try:
            answer = await self.backend.generate(
                build_prompt(question, safe_context),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except GenerationError as e:
            logger.warning("generation_failed_using_local_answer", error=str(e))
            return build_local_answer(safe_context)
        except Exception as e:
            logger.exception("generation_crashed_using_local_answer", error=str(e))
            return build_local_answer(safe_context)

        if not answer or not answer.strip():
            logger.warning("empty_generation_using_local_answer")
            return build_local_answer(safe_context)

        return answer.strip()
