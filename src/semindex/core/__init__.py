"""Core module exports."""

from semindex.core.errors import (
    ConfigError,
    EmbeddingError,
    ErrorCode,
    InternalError,
    ParseError,
    ProjectIndexError,
    SearchError,
    SemIndexError,
    StorageError,
)
from semindex.core.logging import (
    configure_logging,
    get_operation_id,
    set_operation_id,
)

__all__ = [
    # Errors
    "ErrorCode",
    "SemIndexError",
    "ConfigError",
    "ParseError",
    "EmbeddingError",
    "ProjectIndexError",
    "SearchError",
    "StorageError",
    "InternalError",
    # Logging
    "configure_logging",
    "get_operation_id",
    "set_operation_id",
]
