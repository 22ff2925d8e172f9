"""Embedding providers.

An EmbeddingProvider turns a batch of text spans into one vector per span,
in order, or fails the whole batch with EmbeddingError. The orchestrator
only ever talks to this protocol; concrete backends are looked up by name
in PROVIDERS.

Shipped backends:
- FastEmbedProvider: local ONNX model via fastembed (default
  BAAI/bge-small-en-v1.5, 384 dims)
- RetryingEmbeddingProvider: wraps any provider with exponential backoff
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

import numpy as np
import structlog

from semindex.config.models import EmbeddingConfig
from semindex.core.errors import EmbeddingError

log = structlog.get_logger()


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Batched, all-or-nothing text embedding."""

    @property
    def dimensions(self) -> int | None:
        """Vector length, or None until the backend has reported it."""
        ...

    async def embed_batch(self, spans: Sequence[str]) -> list[list[float]]:
        """Embed ``spans``; one vector per span, same order.

        Raises:
            EmbeddingError: The whole batch failed.
        """
        ...


def normalize(vectors: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """L2-normalize each row; zero rows stay zero."""
    matrix = np.asarray(vectors, dtype=np.float32)
    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.maximum(norms, 1e-10)
    return matrix / norms


def dot(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Dot product; equals cosine similarity for unit vectors."""
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape} vs {vb.shape}")
    return float(np.dot(va, vb))


def check_batch(spans: Sequence[str], vectors: Sequence[Sequence[float]]) -> None:
    """Reject provider output that does not line up with its input."""
    if len(vectors) != len(spans):
        raise EmbeddingError.count_mismatch(len(spans), len(vectors))


class FastEmbedProvider:
    """Local ONNX embeddings through fastembed.

    The model is loaded on first use and runs in a worker thread so the
    event loop keeps serving searches while a batch is computed.
    """

    def __init__(
        self,
        model_name: str = "BAAI/bge-small-en-v1.5",
        *,
        threads: int | None = None,
    ) -> None:
        self.model_name = model_name
        self._threads = threads
        self._model: Any = None
        self._dimensions: int | None = None
        self._load_lock = asyncio.Lock()

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    def _load_model(self) -> Any:
        try:
            from fastembed import TextEmbedding
        except ImportError as e:
            raise EmbeddingError.model_unavailable(self.model_name, "fastembed is not installed") from e

        threads = self._threads or max(1, (os.cpu_count() or 4) // 2)
        start = time.monotonic()
        try:
            model = TextEmbedding(model_name=self.model_name, threads=threads)
        except Exception as e:
            raise EmbeddingError.model_unavailable(self.model_name, str(e)) from e
        log.info(
            "embedding.model_loaded",
            model=self.model_name,
            threads=threads,
            elapsed_s=round(time.monotonic() - start, 2),
        )
        return model

    async def _ensure_model(self) -> Any:
        async with self._load_lock:
            if self._model is None:
                self._model = await asyncio.to_thread(self._load_model)
        return self._model

    def _embed_sync(self, model: Any, spans: list[str]) -> list[list[float]]:
        try:
            raw = list(model.embed(spans))
        except Exception as e:
            raise EmbeddingError.batch_failed(len(spans), str(e)) from e
        matrix = normalize(np.array(raw, dtype=np.float32))
        return matrix.tolist()  # type: ignore[no-any-return]

    async def embed_batch(self, spans: Sequence[str]) -> list[list[float]]:
        if not spans:
            return []
        model = await self._ensure_model()
        vectors = await asyncio.to_thread(self._embed_sync, model, list(spans))
        check_batch(spans, vectors)
        self._dimensions = len(vectors[0])
        return vectors


class RetryingEmbeddingProvider:
    """Retries retryable batch failures with capped exponential backoff."""

    def __init__(
        self,
        inner: EmbeddingProvider,
        *,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
    ) -> None:
        self.inner = inner
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def dimensions(self) -> int | None:
        return self.inner.dimensions

    async def embed_batch(self, spans: Sequence[str]) -> list[list[float]]:
        for attempt in range(self._max_retries + 1):
            try:
                vectors = await self.inner.embed_batch(spans)
                check_batch(spans, vectors)
                return vectors
            except EmbeddingError as e:
                if not e.retryable or attempt >= self._max_retries:
                    raise
                delay = min(self._base_delay * (2**attempt), self._max_delay)
                log.warning(
                    "embedding.batch_retry",
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    delay_sec=delay,
                    size=len(spans),
                    error=e.error_name,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")


def _fastembed_from_config(config: EmbeddingConfig) -> EmbeddingProvider:
    return FastEmbedProvider(config.model_name, threads=config.threads)


# name -> factory
PROVIDERS: dict[str, Callable[[EmbeddingConfig], EmbeddingProvider]] = {
    "fastembed": _fastembed_from_config,
}


def register_provider(name: str, factory: Callable[[EmbeddingConfig], EmbeddingProvider]) -> None:
    """Make a backend selectable through ``embedding.provider``."""
    PROVIDERS[name] = factory


def create_provider(config: EmbeddingConfig | None = None) -> EmbeddingProvider:
    """Build the configured provider, wrapped with retries.

    Raises:
        EmbeddingError: Unknown provider name.
    """
    config = config or EmbeddingConfig()
    factory = PROVIDERS.get(config.provider)
    if factory is None:
        raise EmbeddingError.model_unavailable(
            config.provider, f"unknown provider, choose from {sorted(PROVIDERS)}"
        )
    return RetryingEmbeddingProvider(
        factory(config),
        max_retries=config.max_retries,
        base_delay=config.retry_base_delay_sec,
        max_delay=config.retry_max_delay_sec,
    )
