"""Embedding backends behind one interface.

Backends:
- local: sentence-transformers model loaded once per process
- ollama: Ollama /api/embeddings, one request per text
- gemini: Gemini batchEmbedContents

Every backend validates its vectors before returning them; a failed or
malformed embedding raises EmbeddingError and is never replaced by a
placeholder vector.
"""
import asyncio
import math
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from docqa import config
from docqa.errors import ConfigurationError, EmbeddingError
from docqa.llm_client import GeminiClient, OllamaClient

logger = structlog.get_logger()

# Known model dimensions, so the store can be chosen without loading a model.
_MODEL_DIMENSIONS: Dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "text-embedding-004": 768,
}

_LOCAL_BATCH_LIMIT = 64  # Conservative batch size for CPU inference
_GEMINI_BATCH_LIMIT = 100  # batchEmbedContents request limit


class LazyModel:
    """Lock-guarded cell that runs its loader exactly once.

    The first caller loads the value while concurrent callers block on the
    lock; every later call returns the cached instance.
    """

    def __init__(self, loader: Callable[[], object]):
        self._loader = loader
        self._lock = threading.Lock()
        self._value = None

    @property
    def loaded(self) -> bool:
        return self._value is not None

    def get(self):
        if self._value is None:
            with self._lock:
                if self._value is None:
                    self._value = self._loader()
        return self._value


_model_cells: Dict[str, LazyModel] = {}
_model_cells_lock = threading.Lock()


def _load_sentence_transformer(model_name: str):
    """Load a sentence-transformers model (imported on first use, it pulls in torch)."""
    from sentence_transformers import SentenceTransformer

    logger.info("loading_sentence_transformer", model=model_name)
    model = SentenceTransformer(model_name)
    logger.info(
        "sentence_transformer_loaded",
        model=model_name,
        dimension=model.get_sentence_embedding_dimension(),
    )
    return model


def get_model_cell(model_name: str, loader: Callable[[str], object] = None) -> LazyModel:
    """Return the process-wide lazy cell for a local model."""
    loader = loader or _load_sentence_transformer
    with _model_cells_lock:
        cell = _model_cells.get(model_name)
        if cell is None:
            cell = LazyModel(lambda: loader(model_name))
            _model_cells[model_name] = cell
        return cell


class Embedder(ABC):
    """Maps text to fixed-dimension vectors."""

    def __init__(self, model_name: str, dimension: Optional[int] = None):
        self.model_name = model_name
        self._dimension = dimension or _MODEL_DIMENSIONS.get(model_name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier used in logs and errors."""

    @property
    def dimension(self) -> Optional[int]:
        """Vector dimension, or None until the first embedding is produced."""
        return self._dimension

    @abstractmethod
    async def _embed_many(self, texts: List[str]) -> List[List[float]]:
        """Produce raw vectors for texts, in input order."""

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts, preserving input order.

        Raises:
            EmbeddingError: If the backend fails or returns a malformed vector
        """
        texts = list(texts)
        if not texts:
            return []

        vectors = await self._embed_many(texts)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} vectors, got {len(vectors)}",
                provider_name=self.name,
            )

        validated = [self._validate(vector) for vector in vectors]
        logger.debug(
            "embeddings_generated",
            backend=self.name,
            count=len(validated),
            dimension=self._dimension,
        )
        return validated

    async def get_dimension(self) -> int:
        """Return the vector dimension, probing the backend when unknown."""
        if self._dimension is None:
            logger.info("detecting_embedding_dimension", backend=self.name, model=self.model_name)
            await self.embed("dimension probe")
        return self._dimension

    def _validate(self, vector) -> List[float]:
        if not vector:
            raise EmbeddingError("Empty embedding returned", provider_name=self.name)

        try:
            values = [float(v) for v in vector]
        except (TypeError, ValueError) as e:
            raise EmbeddingError("Non-numeric embedding returned", provider_name=self.name) from e

        if not all(math.isfinite(v) for v in values):
            raise EmbeddingError("Embedding contains NaN or infinity", provider_name=self.name)

        if self._dimension is None:
            self._dimension = len(values)
        elif len(values) != self._dimension:
            raise EmbeddingError(
                f"Embedding dimension mismatch: expected {self._dimension}, got {len(values)}",
                provider_name=self.name,
            )
        return values


class LocalEmbedder(Embedder):
    """Embedder backed by a locally hosted sentence-transformers model."""

    def __init__(self, model_name: str = None, cell: LazyModel = None):
        model_name = model_name or config.LOCAL_EMBEDDING_MODEL
        super().__init__(model_name)
        self._cell = cell or get_model_cell(model_name)

    @property
    def name(self) -> str:
        return f"local:{self.model_name.split('/')[-1]}"

    def _encode(self, texts: List[str]) -> List[List[float]]:
        try:
            model = self._cell.get()
        except Exception as e:
            raise EmbeddingError(
                f"Failed to load model '{self.model_name}': {e}", provider_name=self.name
            ) from e

        vectors: List[List[float]] = []
        try:
            for start in range(0, len(texts), _LOCAL_BATCH_LIMIT):
                batch = texts[start:start + _LOCAL_BATCH_LIMIT]
                encoded = model.encode(
                    batch,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
                vectors.extend(encoded.tolist())
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}", provider_name=self.name) from e
        return vectors

    async def _embed_many(self, texts: List[str]) -> List[List[float]]:
        return await asyncio.to_thread(self._encode, texts)


class OllamaEmbedder(Embedder):
    """Embedder calling the Ollama embeddings endpoint."""

    def __init__(
        self,
        model_name: str = None,
        client: OllamaClient = None,
        concurrency: int = None,
    ):
        super().__init__(model_name or config.OLLAMA_EMBEDDING_MODEL)
        self.client = client or OllamaClient()
        self.concurrency = max(1, concurrency or config.EMBED_CONCURRENCY)

    @property
    def name(self) -> str:
        return f"ollama:{self.model_name}"

    async def _embed_many(self, texts: List[str]) -> List[List[float]]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_one(text: str) -> List[float]:
            async with semaphore:
                return await self.client.embeddings(text, model=self.model_name)

        tasks = [asyncio.create_task(embed_one(t)) for t in texts]
        try:
            # gather keeps results in input order
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


class GeminiEmbedder(Embedder):
    """Embedder calling Gemini batchEmbedContents."""

    def __init__(self, model_name: str = None, client: GeminiClient = None):
        super().__init__(model_name or config.GEMINI_EMBEDDING_MODEL)
        self.client = client or GeminiClient()

    @property
    def name(self) -> str:
        return f"gemini:{self.model_name}"

    async def _embed_many(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for start in range(0, len(texts), _GEMINI_BATCH_LIMIT):
            batch = texts[start:start + _GEMINI_BATCH_LIMIT]
            vectors.extend(await self.client.batch_embed(batch, model=self.model_name))
        return vectors


def get_embedder(backend: str = None) -> Embedder:
    """Build the configured embedding backend.

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    backend = (backend or config.EMBEDDING_BACKEND).lower()

    if backend == "local":
        return LocalEmbedder()
    if backend == "ollama":
        return OllamaEmbedder()
    if backend == "gemini":
        return GeminiEmbedder()
    raise ConfigurationError(f"Unknown embedding backend: {backend}")
