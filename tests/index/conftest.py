"""Shared fixtures for index tests."""

from __future__ import annotations

import asyncio
import tempfile
import time
from collections.abc import Generator, Iterator, Sequence
from pathlib import Path

import numpy as np
import pytest

from semindex.core.errors import EmbeddingError
from semindex.index._internal.db import VectorDatabase
from semindex.index.models import SourceFile


class FakeEmbeddingProvider:
    """Letter-frequency embeddings: one dimension per ASCII letter.

    Every dimension starts at 1.0 and gains 1.0 per occurrence of its
    letter (case-insensitive), then the vector is L2-normalized. Similar
    spellings give similar vectors, which is enough to test ranking.
    """

    def __init__(self) -> None:
        self.embedded_spans = 0
        self.calls = 0
        self.fail_next = 0

    @property
    def dimensions(self) -> int:
        return 26

    @staticmethod
    def vector_for(text: str) -> list[float]:
        vector = np.ones(26, dtype=np.float32)
        for ch in text.lower():
            if "a" <= ch <= "z":
                vector[ord(ch) - ord("a")] += 1.0
        return (vector / np.linalg.norm(vector)).tolist()

    async def embed_batch(self, spans: Sequence[str]) -> list[list[float]]:
        self.calls += 1
        if self.fail_next:
            self.fail_next -= 1
            raise EmbeddingError.batch_failed(len(spans), "provider offline", retryable=False)
        self.embedded_spans += len(spans)
        return [self.vector_for(span) for span in spans]


class GatedEmbeddingProvider(FakeEmbeddingProvider):
    """Holds document batches until the test lets them through.

    Query embeddings (spans without a code fence) are never held.
    """

    def __init__(self) -> None:
        super().__init__()
        self.gated = True
        self.waiting = 0
        self._permits = asyncio.Semaphore(0)

    def allow(self, calls: int = 1) -> None:
        for _ in range(calls):
            self._permits.release()

    def open(self) -> None:
        self.gated = False
        self.allow(self.waiting)

    def close(self) -> None:
        self.gated = True

    async def embed_batch(self, spans: Sequence[str]) -> list[list[float]]:
        if self.gated and any("```" in span for span in spans):
            self.waiting += 1
            try:
                await self._permits.acquire()
            finally:
                self.waiting -= 1
        return await super().embed_batch(spans)


class InMemoryWorktree:
    """Worktree whose files live in a dict (relative path -> text)."""

    def __init__(self, worktree_id: str, files: dict[str, str] | None = None) -> None:
        self._id = worktree_id
        self.files: dict[str, str] = dict(files or {})
        self.fail = False
        self.walk_delay = 0.0

    @property
    def worktree_id(self) -> str:
        return self._id

    def iter_files(self) -> Iterator[SourceFile]:
        if self.fail:
            raise OSError("worktree unavailable")
        if self.walk_delay:
            time.sleep(self.walk_delay)
        for path in sorted(self.files):
            yield SourceFile(self._id, path, self.files[path].encode("utf-8"))


class InMemoryProject:
    def __init__(self, project_id: str, worktrees: Sequence[InMemoryWorktree]) -> None:
        self._id = project_id
        self._worktrees = list(worktrees)

    @property
    def project_id(self) -> str:
        return self._id

    def worktrees(self) -> Sequence[InMemoryWorktree]:
        return list(self._worktrees)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir: Path) -> Generator[VectorDatabase, None, None]:
    """Create a temporary vector database with schema."""
    db = VectorDatabase(temp_dir / "index.db")
    yield db
    db.close()


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def sample_rust_content() -> str:
    """Sample Rust content for extraction tests."""
    return """/// A doc comment
/// that spans multiple lines
fn a() {
    b
}

impl C for D {
}
"""


@pytest.fixture
def make_worktree() -> type[InMemoryWorktree]:
    return InMemoryWorktree


@pytest.fixture
def make_project() -> type[InMemoryProject]:
    return InMemoryProject


@pytest.fixture
def gated_provider() -> GatedEmbeddingProvider:
    return GatedEmbeddingProvider()
