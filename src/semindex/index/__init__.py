"""Index module - semantic code search.

This module provides:
- Document extraction: tree-sitter queries turn source into embeddable fragments
- Embedding: batched, all-or-nothing providers (fastembed by default)
- Storage: SQLite vector store keyed by (worktree, relative path)
- Orchestration: incremental indexing through a bounded worker pool

Public API is in `semindex.index.ops`:
- VectorStore: index_project, remaining_files_to_index_for_project, search_project

Internal implementations are in `semindex.index._internal/`.
"""

from semindex.index._internal.db import VectorDatabase
from semindex.index._internal.discovery import LocalProject, LocalWorktree, Project, Worktree
from semindex.index._internal.embedding import (
    EmbeddingProvider,
    FastEmbedProvider,
    RetryingEmbeddingProvider,
    create_provider,
    dot,
    normalize,
)
from semindex.index._internal.extraction import DocumentExtractor, extract
from semindex.index._internal.parsing import LanguagePack, LanguageRegistry, default_registry
from semindex.index.models import (
    ByteRange,
    Document,
    FileKey,
    ProjectPhase,
    SearchResult,
    SourceFile,
)
from semindex.index.ops import ProjectState, VectorStore

__all__ = [
    # Orchestration
    "VectorStore",
    "ProjectState",
    "ProjectPhase",
    # Storage
    "VectorDatabase",
    # Extraction
    "DocumentExtractor",
    "extract",
    "LanguagePack",
    "LanguageRegistry",
    "default_registry",
    # Embedding
    "EmbeddingProvider",
    "FastEmbedProvider",
    "RetryingEmbeddingProvider",
    "create_provider",
    "dot",
    "normalize",
    # Collaborators
    "Project",
    "Worktree",
    "LocalProject",
    "LocalWorktree",
    # Values
    "ByteRange",
    "Document",
    "FileKey",
    "SearchResult",
    "SourceFile",
]
