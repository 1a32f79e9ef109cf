"""Shared fixtures for NoteSearch tests."""

from __future__ import annotations

import re
from typing import Dict, Sequence

import numpy as np
import pytest

from notesearch.index.storage import NotesDatabase


class FakeEmbedding:
    """Deterministic bag-of-words embedding: one dimension per distinct word."""

    def __init__(self, dims: int = 64) -> None:
        self.dims = dims
        self._vocab: Dict[str, int] = {}
        self.query_calls: list[str] = []
        self.source_calls: list[list[str]] = []

    def ndims(self) -> int:
        return self.dims

    def embedding_data_type(self) -> np.dtype:
        return np.dtype("float32")

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        vectors = np.zeros((len(texts), self.dims), dtype="float32")
        for row, text in enumerate(texts):
            for word in re.findall(r"\w+", text.lower()):
                column = self._vocab.setdefault(word, len(self._vocab) % self.dims)
                vectors[row, column] += 1.0
            norm = np.linalg.norm(vectors[row])
            if norm > 0:
                vectors[row] /= norm
        return vectors

    async def compute_query_embedding(self, text: str) -> np.ndarray:
        self.query_calls.append(text)
        return self.embed([text])[0]

    async def compute_source_embeddings(self, texts: Sequence[str]) -> np.ndarray:
        self.source_calls.append(list(texts))
        return self.embed(texts)


@pytest.fixture
def fake_embedder() -> FakeEmbedding:
    return FakeEmbedding()


@pytest.fixture
def database(tmp_path, fake_embedder):
    """Create a temporary notes database for testing."""
    db = NotesDatabase(tmp_path / "notes.db", fake_embedder)
    yield db
    db.close()


@pytest.fixture
def make_record():
    """Build a notes table record with fixed dates."""

    def _make(id_: str, title: str, content: str) -> dict:
        return {
            "id": id_,
            "title": title,
            "content": content,
            "creation_date": "1/1/2024, 10:00:00 AM",
            "modification_date": "2/1/2024, 11:30:00 AM",
        }

    return _make
