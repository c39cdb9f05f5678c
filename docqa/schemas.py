"""Pydantic models for data crossing process boundaries.

External API payloads (Ollama, Gemini) are validated here before anything
reaches the core, and the query API request/response shapes are declared
with their camelCase wire names.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Query API


class AskRequest(BaseModel):
    """Body of POST /api/ask."""
    question: str


class Citation(BaseModel):
    """A source fragment supporting an answer."""
    model_config = ConfigDict(populate_by_name=True)

    doc_name: str = Field(alias="docName")
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    snippet: str
    similarity: float


class AskResponse(BaseModel):
    """Successful answer returned by POST /api/ask."""
    answer: str
    citations: List[Citation]
    confidence: float = Field(ge=0.0, le=1.0)


# Ollama


class OllamaEmbeddingResponse(BaseModel):
    embedding: List[float]


class OllamaMessage(BaseModel):
    role: str = "assistant"
    content: str = ""


class OllamaChatResponse(BaseModel):
    model: Optional[str] = None
    message: OllamaMessage


# Gemini


class GeminiValues(BaseModel):
    values: List[float]


class GeminiBatchEmbeddingResponse(BaseModel):
    embeddings: List[GeminiValues]


class GeminiPart(BaseModel):
    text: str = ""


class GeminiContent(BaseModel):
    parts: List[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(BaseModel):
    content: Optional[GeminiContent] = None


class GeminiGenerateResponse(BaseModel):
    candidates: List[GeminiCandidate] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """Text of the first candidate's first part, or empty string."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        parts = self.candidates[0].content.parts
        return parts[0].text.strip() if parts else ""
