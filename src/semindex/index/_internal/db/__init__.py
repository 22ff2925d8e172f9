"""Database layer for the index."""

from semindex.index._internal.db.database import Database
from semindex.index._internal.db.store import (
    UNSET,
    VectorDatabase,
    WorktreeStats,
    decode_embedding,
    encode_embedding,
)

__all__ = [
    "Database",
    "VectorDatabase",
    "WorktreeStats",
    "UNSET",
    "encode_embedding",
    "decode_embedding",
]
