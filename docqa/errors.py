"""Exception hierarchy for docqa.

    DocQAError
    +-- InputError          missing or invalid CLI / request arguments
    +-- SourceFormatError   unsupported, unreadable or empty source document
    +-- EmbeddingError      embedding backend unavailable or malformed vector
    +-- RetrievalError      vector store query failure
    +-- GenerationError     generative backend failure (recovered by fallback)
    +-- PersistenceError    write failure for documents, chunks, queries, tickets
    +-- ConfigurationError  inconsistent deployment (e.g. embedding dimension)
"""
from typing import Optional


class DocQAError(Exception):
    """Base exception carrying an optional provider name."""

    def __init__(self, message: str, provider_name: Optional[str] = None):
        self.message = message
        self.provider_name = provider_name
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider_name:
            return f"[{self.provider_name}] {self.message}"
        return self.message


class InputError(DocQAError):
    pass


class SourceFormatError(DocQAError):
    pass


class EmbeddingError(DocQAError):
    pass


class RetrievalError(DocQAError):
    pass


class GenerationError(DocQAError):
    pass


class PersistenceError(DocQAError):
    pass


class ConfigurationError(DocQAError):
    pass
