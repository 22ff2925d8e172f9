"""Config module exports."""

from semindex.config.loader import get_db_path, load_config
from semindex.config.models import (
    DatabaseConfig,
    EmbeddingConfig,
    IndexConfig,
    IndexerConfig,
    LoggingConfig,
    SearchConfig,
    SemIndexConfig,
)

__all__ = [
    "load_config",
    "get_db_path",
    "SemIndexConfig",
    "LoggingConfig",
    "IndexConfig",
    "IndexerConfig",
    "EmbeddingConfig",
    "DatabaseConfig",
    "SearchConfig",
]
