"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (SEMINDEX__SECTION__KEY)
3. Repo YAML (.semindex/config.yaml)
4. Global YAML (~/.config/semindex/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    SEMINDEX__<SECTION>__<KEY>=<VALUE>

Examples:
    SEMINDEX__LOGGING__LEVEL=DEBUG
    SEMINDEX__INDEXER__MAX_WORKERS=4
    SEMINDEX__EMBEDDING__MODEL_NAME=BAAI/bge-small-en-v1.5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        SEMINDEX__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every batch and file outcome.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class IndexConfig(BaseModel):
    """Which files get indexed and where the index lives.

    Env vars:
        SEMINDEX__INDEX__DB_PATH: Override index database location
        SEMINDEX__INDEX__MAX_FILE_SIZE_MB: Skip files larger than this
    """

    db_path: str | None = Field(
        default=None,
        description="SQLite file holding the vector index. Default: .semindex/index.db in repo.",
    )
    include_globs: list[str] = Field(
        default_factory=list,
        description="If non-empty, only paths matching one of these globs are indexed.",
    )
    exclude_globs: list[str] = Field(
        default_factory=lambda: ["**/*.min.js", "**/*.generated.*"],
        description="Paths matching any of these globs are never indexed.",
    )
    include_dirs: list[str] = Field(
        default_factory=list,
        description="Directory names pruned by default that should be walked anyway "
        "(e.g. 'vendor').",
    )
    max_file_size_mb: float = Field(
        default=2.0,
        description="Skip files larger than this (MB). Generated sources are rarely useful.",
    )

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_max_file_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"max_file_size_mb must be positive, got {v}")
        return v


class IndexerConfig(BaseModel):
    """Background indexing pipeline configuration.

    Env vars:
        SEMINDEX__INDEXER__MAX_WORKERS: Concurrent file indexing workers
        SEMINDEX__INDEXER__PARSE_WORKERS: Threads used for tree-sitter parsing
        SEMINDEX__INDEXER__QUEUE_MAX_SIZE: Bounded work queue size
        SEMINDEX__INDEXER__EMBED_BATCH_MAX_SPANS: Spans per embedding call
        SEMINDEX__INDEXER__EMBED_BATCH_MAX_BYTES: Bytes per embedding call
    """

    max_workers: int = Field(
        default=4,
        description="Files processed concurrently. Each worker awaits its own embedding calls.",
    )
    parse_workers: int = Field(
        default=2,
        description="Thread pool size for CPU-bound syntax tree construction.",
    )
    queue_max_size: int = Field(
        default=1024,
        description="Max queued files. index_project waits for room when the queue is full.",
    )
    embed_batch_max_spans: int = Field(
        default=64,
        description="Max spans sent in one embedding call.",
    )
    embed_batch_max_bytes: int = Field(
        default=64 * 1024,
        description="Max total UTF-8 bytes of spans sent in one embedding call. "
        "A single span larger than this is sent alone.",
    )

    @field_validator(
        "max_workers",
        "parse_workers",
        "queue_max_size",
        "embed_batch_max_spans",
        "embed_batch_max_bytes",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Must be positive, got {v}")
        return v


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration.

    Env vars:
        SEMINDEX__EMBEDDING__MODEL_NAME: fastembed model identifier
        SEMINDEX__EMBEDDING__MAX_RETRIES: Retries for a failed batch
    """

    provider: str = Field(
        default="fastembed",
        description="Registered embedding provider name.",
    )
    model_name: str = Field(
        default="BAAI/bge-small-en-v1.5",
        description="fastembed model. Changing it invalidates stored vectors; clear the index.",
    )
    threads: int | None = Field(
        default=None,
        description="ONNX runtime threads. Default: half the CPU count.",
    )
    max_retries: int = Field(
        default=3,
        description="Retry attempts for a retryable batch failure.",
    )
    retry_base_delay_sec: float = Field(
        default=0.5,
        description="Base delay between retries (exponential backoff).",
    )
    retry_max_delay_sec: float = Field(
        default=8.0,
        description="Upper bound for a single retry delay.",
    )

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries cannot be negative, got {v}")
        return v


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Env vars:
        SEMINDEX__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        SEMINDEX__DATABASE__MAX_RETRIES: Max retry attempts for locked DB
    """

    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )


class SearchConfig(BaseModel):
    """Search defaults.

    Env vars:
        SEMINDEX__SEARCH__DEFAULT_LIMIT: Results returned when no limit is given
    """

    default_limit: int = Field(
        default=10,
        description="Default number of results. Capped by SEARCH_MAX_LIMIT.",
    )

    @field_validator("default_limit")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"default_limit must be positive, got {v}")
        return v


class SemIndexConfig(BaseModel):
    """Root configuration for semindex.

    All settings can be configured via:
    1. Environment variables: SEMINDEX__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
