"""semindex error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Parse
- 4xxx: Embedding
- 5xxx: Index
- 6xxx: Search
- 7xxx: Storage
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Parse (3xxx)
    PARSE_GRAMMAR_UNAVAILABLE = 3001
    PARSE_SYNTAX_TREE_FAILURE = 3002

    # Embedding (4xxx)
    EMBEDDING_BATCH_FAILED = 4001
    EMBEDDING_COUNT_MISMATCH = 4002
    EMBEDDING_MODEL_UNAVAILABLE = 4003

    # Index (5xxx)
    INDEX_ENUMERATION_FAILED = 5001

    # Search (6xxx)
    SEARCH_INVALID_LIMIT = 6001
    SEARCH_EMBEDDING_FAILED = 6002

    # Storage (7xxx)
    STORAGE_UNAVAILABLE = 7001
    STORAGE_CORRUPT_RECORD = 7002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class SemIndexError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'SEARCH_INVALID_LIMIT')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(SemIndexError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class ParseError(SemIndexError):
    """A file could not be turned into documents.

    The file is skipped for the current pass and retried on the next one.
    """

    @classmethod
    def grammar_unavailable(cls, language: str, reason: str = "") -> "ParseError":
        message = f"No parser available for language '{language}'"
        if reason:
            message += f": {reason}"
        return cls(
            code=ErrorCode.PARSE_GRAMMAR_UNAVAILABLE,
            message=message,
            details={"language": language, "reason": reason},
        )

    @classmethod
    def syntax_tree_failure(cls, path: str, reason: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_SYNTAX_TREE_FAILURE,
            message=f"Failed to build syntax tree for {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class EmbeddingError(SemIndexError):
    """Whole-batch failure reported by an embedding provider."""

    @classmethod
    def batch_failed(cls, size: int, reason: str, *, retryable: bool = True) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBEDDING_BATCH_FAILED,
            message=f"Embedding batch of {size} span(s) failed: {reason}",
            retryable=retryable,
            details={"size": size, "reason": reason},
        )

    @classmethod
    def count_mismatch(cls, expected: int, got: int) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBEDDING_COUNT_MISMATCH,
            message=f"Embedding provider returned {got} vector(s) for {expected} span(s)",
            details={"expected": expected, "got": got},
        )

    @classmethod
    def model_unavailable(cls, model: str, reason: str) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBEDDING_MODEL_UNAVAILABLE,
            message=f"Embedding model '{model}' could not be loaded: {reason}",
            details={"model": model, "reason": reason},
        )


class ProjectIndexError(SemIndexError):
    """Enumeration-level failure that aborts a whole index_project call."""

    @classmethod
    def enumeration_failed(cls, project_id: str, reason: str) -> "ProjectIndexError":
        return cls(
            code=ErrorCode.INDEX_ENUMERATION_FAILED,
            message=f"Cannot enumerate files of project {project_id}: {reason}",
            retryable=True,
            details={"project_id": project_id, "reason": reason},
        )


class SearchError(SemIndexError):
    """Search request failures. No partial results are ever returned."""

    @classmethod
    def invalid_limit(cls, limit: int) -> "SearchError":
        return cls(
            code=ErrorCode.SEARCH_INVALID_LIMIT,
            message=f"Search limit must be positive, got {limit}",
            details={"limit": limit},
        )

    @classmethod
    def embedding_failed(cls, reason: str) -> "SearchError":
        return cls(
            code=ErrorCode.SEARCH_EMBEDDING_FAILED,
            message=f"Failed to embed search query: {reason}",
            retryable=True,
            details={"reason": reason},
        )


class StorageError(SemIndexError):
    """Vector database failures."""

    @classmethod
    def unavailable(cls, operation: str, reason: str) -> "StorageError":
        return cls(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            message=f"Storage operation '{operation}' failed: {reason}",
            retryable=True,
            details={"operation": operation, "reason": reason},
        )

    @classmethod
    def corrupt_record(cls, document_id: int, reason: str) -> "StorageError":
        return cls(
            code=ErrorCode.STORAGE_CORRUPT_RECORD,
            message=f"Stored document {document_id} is unreadable: {reason}",
            details={"document_id": document_id, "reason": reason},
        )


class InternalError(SemIndexError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
