"""Embedding providers and batching."""

from semindex.index._internal.embedding.batching import plan_batches
from semindex.index._internal.embedding.provider import (
    PROVIDERS,
    EmbeddingProvider,
    FastEmbedProvider,
    RetryingEmbeddingProvider,
    create_provider,
    dot,
    normalize,
    register_provider,
)

__all__ = [
    "EmbeddingProvider",
    "FastEmbedProvider",
    "RetryingEmbeddingProvider",
    "PROVIDERS",
    "create_provider",
    "register_provider",
    "normalize",
    "dot",
    "plan_batches",
]
