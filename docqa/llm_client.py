"""HTTP clients for the generative and embedding model services.

Both clients expose the same `generate(prompt, temperature, max_tokens)`
coroutine so the answer composer can switch backends by configuration.
"""
from typing import List, Optional

import httpx
import structlog
from pydantic import ValidationError

from docqa import config
from docqa.errors import ConfigurationError, EmbeddingError, GenerationError
from docqa.schemas import (
    GeminiBatchEmbeddingResponse,
    GeminiGenerateResponse,
    OllamaChatResponse,
    OllamaEmbeddingResponse,
)

logger = structlog.get_logger()


class OllamaClient:
    """Async client for interacting with the Ollama API."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            model: Chat model used by generate (defaults to config.CHAT_MODEL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.model = model or config.CHAT_MODEL
        self.timeout = timeout or config.HTTP_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout, transport=self._transport
        )

    async def generate(
        self,
        prompt: str,
        temperature: float = None,
        max_tokens: int = None,
    ) -> str:
        """Send a single-turn chat request and return the reply text.

        Raises:
            GenerationError: On transport errors, non-success status or malformed reply
        """
        temperature = config.GENERATION_TEMPERATURE if temperature is None else temperature
        max_tokens = max_tokens or config.GENERATION_MAX_TOKENS

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }

        try:
            async with self._client() as client:
                logger.info(
                    "ollama_chat_request",
                    model=self.model,
                    prompt_length=len(prompt),
                )

                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()
                data = OllamaChatResponse.model_validate(response.json())

        except httpx.HTTPStatusError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=e.response.status_code,
            )
            raise GenerationError(
                f"Chat request failed with status {e.response.status_code}",
                provider_name=self.name,
            ) from e
        except httpx.HTTPError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise GenerationError(f"Chat request failed: {e}", provider_name=self.name) from e
        except (ValidationError, ValueError) as e:
            logger.error("ollama_malformed_response", error=str(e))
            raise GenerationError("Malformed chat response", provider_name=self.name) from e

        text = data.message.content.strip()
        logger.info("ollama_chat_response", model=self.model, response_length=len(text))
        return text

    async def embeddings(self, prompt: str, model: str = None) -> List[float]:
        """Generate an embedding for a text prompt.

        Raises:
            EmbeddingError: On transport errors, non-success status or malformed vector
        """
        model = model or config.OLLAMA_EMBEDDING_MODEL

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json={"model": model, "prompt": prompt},
                )
                response.raise_for_status()
                data = OllamaEmbeddingResponse.model_validate(response.json())

        except httpx.HTTPStatusError as e:
            logger.error("ollama_embedding_error", status_code=e.response.status_code)
            raise EmbeddingError(
                f"Embedding request failed with status {e.response.status_code}",
                provider_name=self.name,
            ) from e
        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise EmbeddingError(
                f"Embedding request failed: {e}", provider_name=self.name
            ) from e
        except (ValidationError, ValueError) as e:
            raise EmbeddingError("Malformed embedding response", provider_name=self.name) from e

        return data.embedding


class GeminiClient:
    """Async client for the Gemini generative language API."""

    name = "gemini"

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = config.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or config.GEMINI_CHAT_MODEL
        self.base_url = base_url or config.GEMINI_BASE_URL
        self.timeout = timeout or config.HTTP_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"x-goog-api-key": self.api_key},
        )

    async def generate(
        self,
        prompt: str,
        temperature: float = None,
        max_tokens: int = None,
    ) -> str:
        """Generate a completion for a single user prompt.

        Raises:
            GenerationError: On missing key, transport errors or non-success status
        """
        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY is not set", provider_name=self.name)

        temperature = config.GENERATION_TEMPERATURE if temperature is None else temperature
        max_tokens = max_tokens or config.GENERATION_MAX_TOKENS

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            },
        }

        try:
            async with self._client() as client:
                logger.info("gemini_generate_request", model=self.model, prompt_length=len(prompt))
                response = await client.post(
                    f"{self.base_url}/models/{self.model}:generateContent",
                    json=payload,
                )
                response.raise_for_status()
                data = GeminiGenerateResponse.model_validate(response.json())

        except httpx.HTTPStatusError as e:
            logger.warning(
                "gemini_generate_error",
                status_code=e.response.status_code,
                body_preview=e.response.text[:200],
            )
            raise GenerationError(
                f"Generation failed with status {e.response.status_code}",
                provider_name=self.name,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("gemini_generate_error", error=str(e))
            raise GenerationError(f"Generation failed: {e}", provider_name=self.name) from e
        except (ValidationError, ValueError) as e:
            raise GenerationError("Malformed generation response", provider_name=self.name) from e

        logger.info("gemini_generate_response", model=self.model, response_length=len(data.text))
        return data.text

    async def batch_embed(self, texts: List[str], model: str = None) -> List[List[float]]:
        """Embed several texts with one batchEmbedContents call.

        Raises:
            EmbeddingError: On missing key, transport errors, non-success status
                or a response whose vector count does not match the input
        """
        if not self.api_key:
            raise EmbeddingError("GEMINI_API_KEY is not set", provider_name=self.name)

        model = model or config.GEMINI_EMBEDDING_MODEL
        payload = {
            "requests": [
                {"model": f"models/{model}", "content": {"parts": [{"text": text}]}}
                for text in texts
            ]
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/models/{model}:batchEmbedContents",
                    json=payload,
                )
                response.raise_for_status()
                data = GeminiBatchEmbeddingResponse.model_validate(response.json())

        except httpx.HTTPStatusError as e:
            logger.error(
                "gemini_embedding_error",
                status_code=e.response.status_code,
                body_preview=e.response.text[:200],
            )
            raise EmbeddingError(
                f"Embedding request failed with status {e.response.status_code}",
                provider_name=self.name,
            ) from e
        except httpx.HTTPError as e:
            logger.error("gemini_embedding_error", error=str(e))
            raise EmbeddingError(f"Embedding request failed: {e}", provider_name=self.name) from e
        except (ValidationError, ValueError) as e:
            raise EmbeddingError("Malformed embedding response", provider_name=self.name) from e

        if len(data.embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(data.embeddings)}",
                provider_name=self.name,
            )

        return [item.values for item in data.embeddings]


def get_generation_backend(backend: str = None):
    """Build the configured generation client.

    Returns:
        OllamaClient, GeminiClient, or None when generation is disabled
    """
    backend = (backend or config.GENERATION_BACKEND).lower()

    if backend == "ollama":
        return OllamaClient()
    if backend == "gemini":
        return GeminiClient()
    if backend == "none":
        return None
    raise ConfigurationError(f"Unknown generation backend: {backend}")
