"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are API stability limits and implementation details.

For configurable values, see models.py (IndexerConfig, SearchConfig, etc.).
"""

# =============================================================================
# Search
# =============================================================================

SEARCH_MAX_LIMIT = 100
"""Maximum results for a single search_project call."""

# =============================================================================
# Storage Layout
# =============================================================================

DATA_DIR_NAME = ".semindex"
"""Per-repo directory holding the index database and repo config."""

INDEX_DB_FILENAME = "index.db"
"""SQLite file name inside the data directory."""

CONFIG_FILENAME = "config.yaml"
"""Repo-level config file name inside the data directory."""

