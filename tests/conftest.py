"""Test configuration and fixtures for the PKB index."""

import os
from pathlib import Path
from typing import Optional

import numpy as np
import pytest

from pkb.config import PKBConfig
from pkb.index import PKB


class FakeEmbedder:
    """Deterministic bag-of-characters embedder that records every call."""

    def __init__(self, dimension: int = 8, model_name: str = "fake-embedder"):
        self._dimension = dimension
        self._model_name = model_name
        self.calls: list[list[str]] = []
        self.query_calls: list[str] = []
        self.fail_on: Optional[str] = None

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def embedded_texts(self) -> list[str]:
        return [text for call in self.calls for text in call]

    def _vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dimension, dtype=np.float32)
        for ch in text:
            vec[ord(ch) % self._dimension] += 1.0
        norm = np.linalg.norm(vec)
        return vec / norm if norm else vec

    def embed_chunk(self, chunk: str) -> np.ndarray:
        return self.embed_chunks([chunk])[0]

    def embed_query(self, query: str) -> np.ndarray:
        self.query_calls.append(query)
        return self._vector(query)

    def embed_chunks(self, chunks: list[str]) -> np.ndarray:
        self.calls.append(list(chunks))
        if self.fail_on is not None and any(self.fail_on in c for c in chunks):
            raise RuntimeError("embedding backend unavailable")
        return np.stack([self._vector(c) for c in chunks])


class ScriptedContextGenerator:
    """Returns a fixed context; raises for chunks containing `fail_on`."""

    def __init__(self, context: str = "Situating context.", fail_on: Optional[str] = None):
        self.context = context
        self.fail_on = fail_on
        self.calls: list[str] = []

    def generate_context(self, document: str, chunk: str) -> str:
        self.calls.append(chunk)
        if self.fail_on is not None and self.fail_on in chunk:
            raise RuntimeError("context backend unavailable")
        return self.context


class NotesDir:
    """A PKB directory whose writes get strictly increasing mtimes."""

    def __init__(self, root: Path):
        self.root = root
        self._clock = 1_700_000_000_000_000_000

    def _tick(self) -> int:
        self._clock += 1_000_000_000
        return self._clock

    def write(self, name: str, text: str) -> Path:
        path = self.root / name
        path.write_text(text, encoding="utf-8")
        self.touch(name)
        return path

    def touch(self, name: str) -> int:
        mtime_ns = self._tick()
        os.utime(self.root / name, ns=(mtime_ns, mtime_ns))
        return mtime_ns

    def remove(self, name: str) -> None:
        (self.root / name).unlink()


@pytest.fixture
def notes(tmp_path: Path) -> NotesDir:
    """An empty notes directory."""
    root = tmp_path / "notes"
    root.mkdir()
    return NotesDir(root)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def make_pkb(notes: NotesDir, embedder: FakeEmbedder):
    """Factory for PKB instances over the `notes` directory."""

    def _make(context_generator=None, model=None, **overrides) -> PKB:
        config = PKBConfig.from_path(notes.root, **overrides)
        return PKB(config, model or embedder, context_generator=context_generator)

    return _make


@pytest.fixture
def pkb(make_pkb) -> PKB:
    return make_pkb()
