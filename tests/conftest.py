"""Shared pytest fixtures and fakes for the docqa test suite."""
import os
import re
import tempfile
import zlib
from pathlib import Path
from typing import Dict, List, Optional

# Keep the data directory out of the source tree before docqa.config is imported
os.environ.setdefault("DOCQA_DATA_DIR", tempfile.mkdtemp(prefix="docqa-tests-"))

import pytest

from docqa import config, db
from docqa.errors import EmbeddingError, GenerationError
from docqa.rag.embedder import Embedder
from docqa.rag.store import KnowledgeStore


def bag_of_words(text: str, dimension: int) -> List[float]:
    """Deterministic word-hash vector, never all zeros."""
    vector = [0.0] * dimension
    for word in re.findall(r"\w+", text.lower()):
        vector[zlib.crc32(word.encode()) % dimension] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector


class FakeEmbedder(Embedder):
    """In-process embedder with optional fixed vectors and failure switch."""

    def __init__(
        self,
        dimension: int = 8,
        fixed: Optional[Dict[str, List[float]]] = None,
        fail: bool = False,
    ):
        super().__init__("fake-model", dimension=dimension)
        self.fixed = fixed or {}
        self.fail = fail
        self.calls: List[List[str]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def _embed_many(self, texts):
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("backend unavailable", provider_name=self.name)
        return [self.fixed.get(t) or bag_of_words(t, self._dimension) for t in texts]


class FakeGenerator:
    """Generation backend that records prompts."""

    def __init__(self, reply: str = "Grounded answer [doc:Handbook]", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.prompts: List[str] = []

    async def generate(self, prompt, temperature=None, max_tokens=None):
        self.prompts.append(prompt)
        if self.fail:
            raise GenerationError("service unavailable", provider_name="fake")
        return self.reply


@pytest.fixture
def tmp_db(tmp_path: Path, monkeypatch) -> Path:
    """Point the database at a fresh file and create the schema."""
    db_path = tmp_path / "docqa.sqlite"
    monkeypatch.setattr(db, "DB_PATH", db_path)
    monkeypatch.setattr(config, "INDEX_DIR", tmp_path / "indexes")
    db.init_database()
    return db_path


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(dimension=8)


@pytest.fixture
def store(tmp_db: Path, tmp_path: Path) -> KnowledgeStore:
    return KnowledgeStore(8, index_dir=tmp_path / "indexes")


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def handbook_text() -> str:
    """Three-paragraph document used by ingestion and retrieval tests."""
    return (
        "Library opening hours\n\n"
        "The central library opens at eight in the morning and closes at ten at night "
        "on weekdays. During exam weeks the reading rooms stay open until midnight.\n\n"
        "Parking permits\n\n"
        "Students can request a parking permit from the campus services office. Permits "
        "are valid for one semester and must be displayed on the dashboard at all times.\n\n"
        "Scholarships\n\n"
        "Merit scholarships cover up to half of the tuition fee. Applications open in "
        "March and require a transcript, two references and a motivation letter."
    )
