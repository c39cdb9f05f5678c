"""Paragraph-aware text chunking with overlap for the RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies.
Paragraphs are packed greedily up to the target size; anything longer than
the target is cut with a sliding window so no character is skipped.
"""
import re
from typing import List, Optional

import structlog

from docqa import config
from docqa.errors import InputError

logger = structlog.get_logger()

PARAGRAPH_SEPARATOR = "\n\n"
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def sliding_windows(text: str, size: int, overlap: int) -> List[str]:
    """Cut text into fixed-size windows that overlap by `overlap` characters.

    Windows start at 0, step, 2*step, ... and the last one ends exactly at
    the end of the text.
    """
    windows = []
    step = max(1, size - overlap)
    start = 0
    while start < len(text):
        end = min(len(text), start + size)
        windows.append(text[start:end])
        if end == len(text):
            break
        start += step
    return windows


def min_chunk_length(chunk_size: int) -> int:
    """Shortest stripped chunk worth indexing for a given chunk size."""
    return min(80, int(chunk_size * 0.15))


class TextChunker:
    """Character-based paragraph chunker with overlap support."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Target size of each chunk in characters (default from config)
            chunk_overlap: Overlap between sliding windows in characters (default from config)

        Raises:
            InputError: If the size/overlap combination is invalid
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )

        # Validate parameters
        if self.chunk_size <= 0:
            raise InputError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise InputError(
                f"Overlap ({self.chunk_overlap}) must be between 0 and "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[str]:
        """Split normalized text into overlapping chunks.

        Args:
            text: Normalized text to chunk

        Returns:
            List of non-empty, stripped chunk strings (possibly empty)
        """
        if not text or not text.strip():
            return []

        pieces: List[str] = []
        buffer = ""

        for paragraph in _PARAGRAPH_BREAK.split(text):
            candidate = f"{buffer}{PARAGRAPH_SEPARATOR}{paragraph}" if buffer else paragraph
            if len(candidate) <= self.chunk_size:
                buffer = candidate
                continue
            pieces.extend(self._flush(buffer))
            buffer = paragraph

        pieces.extend(self._flush(buffer))

        # Drop fragments too short to carry retrievable meaning
        minimum = min_chunk_length(self.chunk_size)
        stripped = (piece.strip() for piece in pieces)
        chunks = [piece for piece in stripped if piece and len(piece) >= minimum]

        logger.info(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            dropped=len(pieces) - len(chunks),
        )

        return chunks

    def _flush(self, buffer: str) -> List[str]:
        """Emit a buffer whole, or as sliding windows when it is oversized."""
        if not buffer:
            return []
        if len(buffer) <= self.chunk_size:
            return [buffer]
        return sliding_windows(buffer, self.chunk_size, self.chunk_overlap)

    def get_chunk_stats(self, chunks: List[str]) -> dict:
        """Summarize chunk sizes for progress output."""
        sizes = [len(c) for c in chunks]
        return {
            "chunk_count": len(sizes),
            "total_chars": sum(sizes),
            "avg_chunk_size": sum(sizes) // len(sizes) if sizes else 0,
            "min_chunk_size": min(sizes, default=0),
            "max_chunk_size": max(sizes, default=0),
        }


def chunk_text(text: str, target_size: int, overlap: int) -> List[str]:
    """Chunk text with an explicit size and overlap (convenience function)."""
    return TextChunker(chunk_size=target_size, chunk_overlap=overlap).chunk_text(text)
