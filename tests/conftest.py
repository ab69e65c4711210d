"""Pytest configuration and fixtures for unit tests."""
import asyncio
import re
import zlib
from typing import List, Optional

import pytest

from knowhub import db
from knowhub.errors import ProviderError
from knowhub.memory import HistoryRecorder
from knowhub.models import Document
from knowhub.rag.chunker import TextChunker
from knowhub.rag.ingest import IngestionCoordinator
from knowhub.rag.store import VectorStore

# Test configuration
EMBEDDING_DIMENSION = 16


class FakeEmbedder:
    """Deterministic bag-of-words embedder that records every call."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION, fail_on_call: Optional[int] = None):
        self.dimension = dimension
        self.fail_on_call = fail_on_call
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise ProviderError("embedding backend unavailable")

        vector = [0.0] * self.dimension
        for word in re.findall(r"[a-z]+", text.lower()):
            vector[zlib.crc32(word.encode()) % self.dimension] += 1.0
        return vector


class FakeGenerator:
    """Generation provider returning a fixed answer and recording prompts."""

    def __init__(self, answer: str = "The sky is blue.", error: Exception = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """Point the database module at a fresh SQLite file for every test."""
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "test.sqlite")
    db.init_database()
    return db.DB_PATH


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def store() -> VectorStore:
    return VectorStore(EMBEDDING_DIMENSION)


@pytest.fixture
def history() -> HistoryRecorder:
    return HistoryRecorder(default_limit=20)


@pytest.fixture
def coordinator(store: VectorStore, embedder: FakeEmbedder) -> IngestionCoordinator:
    return IngestionCoordinator(
        store,
        embedder,
        chunker=TextChunker(chunk_size=1000, chunk_overlap=200),
        max_workers=2,
    )


@pytest.fixture
def make_document(tmp_path):
    """Insert a document row and return it as a Document."""

    def _make(name: str = "a.txt", text: str = "The sky is blue. Grass is green.") -> Document:
        row = db.insert_document(
            filename=f"stored_{name}",
            original_filename=name,
            content_type="text/plain",
            file_size=len(text),
            file_path=str(tmp_path / f"stored_{name}"),
            extracted_text=text,
        )
        return Document.from_row(row)

    return _make
