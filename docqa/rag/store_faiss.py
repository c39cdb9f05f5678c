"""FAISS vector store for semantic search.

Handles:
- One index file per embedding dimension
- Cosine similarity via inner product over L2-normalized vectors
- Vector IDs equal to chunk row IDs
- Reloading when another process rewrites the index file
"""
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np
import structlog

from docqa import config

logger = structlog.get_logger()


class FAISSVectorStore:
    """FAISS-backed nearest-neighbour index for a single vector dimension."""

    def __init__(self, dimension: int, index_dir: Path = None):
        """Initialize the FAISS vector store.

        Args:
            dimension: Embedding dimension served by this index
            index_dir: Directory holding index files (default: config.INDEX_DIR)
        """
        if dimension <= 0:
            raise ValueError(f"Invalid embedding dimension: {dimension}")

        self.dimension = dimension
        self.index_dir = Path(index_dir or config.INDEX_DIR)
        self.index_path = self.index_dir / f"vectors_{dimension}.index"

        self.index: Optional[faiss.Index] = None
        self._loaded_mtime: Optional[float] = None

    def _new_index(self) -> faiss.Index:
        return faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))

    def _disk_mtime(self) -> Optional[float]:
        try:
            return self.index_path.stat().st_mtime
        except FileNotFoundError:
            return None

    async def init_or_load(self) -> None:
        """Load the index from disk, or start an empty one.

        Raises:
            RuntimeError: If the index file is unreadable or has another dimension
        """
        mtime = self._disk_mtime()
        if mtime is None:
            self.index = self._new_index()
            self._loaded_mtime = None
            logger.info("faiss_index_initialized", dimension=self.dimension)
            return

        try:
            index = faiss.read_index(str(self.index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to load FAISS index: {e}") from e

        if index.d != self.dimension:
            raise RuntimeError(
                f"Dimension mismatch: {self.index_path.name} has dim={index.d}, "
                f"expected {self.dimension}"
            )

        self.index = index
        self._loaded_mtime = mtime
        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=index.ntotal,
        )

    async def refresh_if_stale(self) -> None:
        """Reload when the index file changed since it was loaded."""
        if self.index is None or self._disk_mtime() != self._loaded_mtime:
            await self.init_or_load()

    async def save_index(self) -> None:
        """Atomically write the index to disk.

        Raises:
            RuntimeError: If save fails
        """
        if self.index is None:
            raise RuntimeError("No index to save. Initialize or load an index first.")

        self.index_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.index_path.with_suffix(".index.tmp")

        try:
            faiss.write_index(self.index, str(tmp_path))
            os.replace(tmp_path, self.index_path)
        except Exception as e:
            tmp_path.unlink(missing_ok=True)
            raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        self._loaded_mtime = self._disk_mtime()
        logger.debug(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=self.index.ntotal,
        )

    def _as_matrix(self, embeddings: Sequence[Sequence[float]]) -> np.ndarray:
        vectors = np.array(embeddings, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[1] != self.dimension:
            got = vectors.shape[1] if vectors.ndim == 2 else vectors.shape
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {got}"
            )
        faiss.normalize_L2(vectors)
        return vectors

    async def add_vectors(
        self, embeddings: Sequence[Sequence[float]], vector_ids: Sequence[int]
    ) -> None:
        """Add vectors under the given IDs and persist the index.

        Raises:
            ValueError: On dimension or ID count mismatch
            RuntimeError: If saving fails
        """
        if len(embeddings) != len(vector_ids):
            raise ValueError("Each embedding needs exactly one vector id")
        if not embeddings:
            return

        await self.refresh_if_stale()

        vectors = self._as_matrix(embeddings)
        ids = np.array(vector_ids, dtype=np.int64)
        self.index.add_with_ids(vectors, ids)

        try:
            await self.save_index()
        except RuntimeError:
            # Keep memory in step with disk so a later save cannot persist orphans
            self.index.remove_ids(ids)
            logger.error("vectors_add_rolled_back", count=len(vector_ids))
            raise

        logger.info(
            "vectors_added",
            count=len(vector_ids),
            total_vectors=self.index.ntotal,
        )

    async def search(
        self, query_embedding: Sequence[float], top_k: int = None
    ) -> Tuple[List[int], List[float]]:
        """Search for the most similar vectors.

        Args:
            query_embedding: Query vector
            top_k: Number of results to return (default from config)

        Returns:
            Tuple of (vector_ids, cosine similarities), best first
        """
        if top_k is None:
            top_k = config.RETRIEVAL_TOP_K

        await self.refresh_if_stale()

        query_vector = self._as_matrix([query_embedding])

        # Ensure we don't request more results than we have
        top_k = min(top_k, self.index.ntotal)
        if top_k <= 0:
            return [], []

        scores, indices = self.index.search(query_vector, top_k)

        vector_ids = []
        similarities = []
        for vector_id, score in zip(indices[0].tolist(), scores[0].tolist()):
            if vector_id == -1:
                continue
            vector_ids.append(vector_id)
            similarities.append(score)

        logger.debug(
            "vector_search_completed",
            top_k=top_k,
            results_found=len(vector_ids),
        )

        return vector_ids, similarities

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        return {
            "initialized": self.index is not None,
            "vector_count": self.index.ntotal if self.index is not None else 0,
            "dimension": self.dimension,
            "index_exists_on_disk": self.index_path.exists(),
        }
