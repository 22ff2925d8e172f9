"""Tree-sitter parsing and language packs."""

from semindex.index._internal.parsing.packs import (
    GO_PACK,
    JAVASCRIPT_PACK,
    PYTHON_PACK,
    RUST_PACK,
    TYPESCRIPT_PACK,
    LanguagePack,
    LanguageRegistry,
    default_registry,
)
from semindex.index._internal.parsing.treesitter import TreeSitterParser

__all__ = [
    "TreeSitterParser",
    "LanguagePack",
    "LanguageRegistry",
    "default_registry",
    "RUST_PACK",
    "PYTHON_PACK",
    "GO_PACK",
    "JAVASCRIPT_PACK",
    "TYPESCRIPT_PACK",
]
