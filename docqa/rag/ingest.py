"""Ingest pipeline for indexing one source document.

Orchestrates:
- Text normalization
- Paragraph-aware chunking
- Batched embedding generation
- Document, chunk and vector storage
"""
import asyncio
from pathlib import Path
from typing import Callable, Optional

import structlog

from docqa import config
from docqa.errors import (
    ConfigurationError,
    EmbeddingError,
    InputError,
    PersistenceError,
    SourceFormatError,
)
from docqa.rag.chunker import TextChunker
from docqa.rag.embedder import Embedder
from docqa.rag.extract import read_source
from docqa.rag.normalizer import normalize_text
from docqa.rag.store import ChunkRow, KnowledgeStore

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int], None]


class IngestPipeline:
    """Pipeline for ingesting source documents into the knowledge store."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: Embedder,
        chunk_size: int = None,
        chunk_overlap: int = None,
        batch_size: int = None,
        batch_pause: float = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: Knowledge store for the embedder's dimension
            embedder: Embedding backend
            chunk_size: Default chunk size in characters (default from config)
            chunk_overlap: Default chunk overlap in characters (default from config)
            batch_size: Chunks embedded and written per batch
            batch_pause: Seconds to wait between batches (rate limiting)
        """
        self.store = store
        self.embedder = embedder
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.batch_size = max(1, batch_size or config.INGEST_BATCH_SIZE)
        self.batch_pause = config.INGEST_BATCH_PAUSE if batch_pause is None else batch_pause

        self.stats = {
            "documents_ingested": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
        }
        self.chunk_stats: dict = {}

    async def ingest(
        self,
        source_text: str,
        display_name: str,
        source_url: Optional[str] = None,
        chunk_size: int = None,
        chunk_overlap: int = None,
        file_name: Optional[str] = None,
        uploaded_by: str = "ingest-script",
        progress_callback: Optional[ProgressCallback] = None,
    ) -> int:
        """Ingest one document's text.

        Args:
            source_text: Raw extracted text
            display_name: Name shown in citations
            source_url: Optional link to the original document
            chunk_size: Chunk size override
            chunk_overlap: Chunk overlap override
            file_name: Value recorded as metadata.file (defaults to display_name)
            uploaded_by: Who ingested the document
            progress_callback: Optional callback(stored, total) after each batch

        Returns:
            ID of the new document

        Raises:
            InputError: If the name or chunking parameters are invalid
            SourceFormatError: If no chunks could be produced
            ConfigurationError: If the embedder and store dimensions differ
            EmbeddingError: If a batch could not be embedded
            PersistenceError: If a write failed
        """
        if not display_name or not display_name.strip():
            raise InputError("A display name is required")

        chunker = TextChunker(
            chunk_size=self.chunk_size if chunk_size is None else chunk_size,
            chunk_overlap=self.chunk_overlap if chunk_overlap is None else chunk_overlap,
        )

        text = normalize_text(source_text or "")
        pieces = chunker.chunk_text(text)

        if not pieces:
            raise SourceFormatError(
                "No chunks were produced. Adjust the chunk size/overlap or check the file."
            )

        dimension = await self.embedder.get_dimension()
        if dimension != self.store.dimension:
            raise ConfigurationError(
                f"Embedder {self.embedder.name} produces {dimension}-d vectors, "
                f"store expects {self.store.dimension}-d"
            )

        logger.info(
            "ingest_started",
            name=display_name,
            chunk_count=len(pieces),
            chunk_size=chunker.chunk_size,
            chunk_overlap=chunker.chunk_overlap,
        )

        self.chunk_stats = chunker.get_chunk_stats(pieces)

        document_id = await self.store.insert_document(display_name, source_url, uploaded_by)
        metadata_file = file_name or display_name
        total = len(pieces)
        stored = 0

        for start in range(0, total, self.batch_size):
            if start and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

            batch = pieces[start:start + self.batch_size]

            try:
                vectors = await self.embedder.embed_batch(batch)
                self.stats["embeddings_generated"] += len(vectors)

                await self.store.insert_chunks([
                    ChunkRow(
                        document_id=document_id,
                        content=content,
                        embedding=vector,
                        metadata={"file": metadata_file, "index": start + offset},
                    )
                    for offset, (content, vector) in enumerate(zip(batch, vectors))
                ])
            except (EmbeddingError, PersistenceError, ConfigurationError) as e:
                logger.error(
                    "ingest_aborted",
                    document_id=document_id,
                    stored=stored,
                    total=total,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise type(e)(
                    f"Ingestion of document {document_id} aborted after "
                    f"{stored}/{total} chunks: {e.message}",
                    provider_name=e.provider_name,
                ) from e

            stored += len(batch)
            if progress_callback:
                progress_callback(stored, total)

        self.stats["documents_ingested"] += 1
        self.stats["chunks_created"] += stored

        logger.info("ingest_completed", document_id=document_id, chunks_created=stored)

        return document_id

    async def ingest_file(
        self,
        file_path: Path,
        display_name: str,
        source_url: Optional[str] = None,
        **kwargs,
    ) -> int:
        """Read a .pdf/.txt/.md file and ingest it.

        Raises:
            SourceFormatError: If the file is unsupported or unreadable
            ConfigurationError, EmbeddingError, PersistenceError: As raised by ingest()
        """
        source = read_source(Path(file_path))
        kwargs.setdefault("file_name", source.file_name)
        return await self.ingest(source.text, display_name, source_url, **kwargs)

