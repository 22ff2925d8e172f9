"""LanguagePack: grammar metadata and embedding query for one language.

Every language semindex can index has exactly ONE LanguagePack that
consolidates:
- Grammar install metadata (package, module, loader function)
- File extension / filename detection
- The embedding query: ordered tree-sitter patterns, one per construct
  worth embedding (function, type, trait, impl block, macro, ...)

Query capture conventions:
- ``@item``: the whole construct; its span becomes the document range
- ``@name``: one or more name parts, joined with spaces in source order
  (``impl Trait for Type`` captures ``Trait``, ``for`` and ``Type``)
- ``@context``: comment lines immediately above the item

Pattern order is priority order. The LanguageRegistry is the canonical
lookup; new languages are added by registering a pack, nothing else.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import PurePosixPath

# =========================================================================
# Dataclasses
# =========================================================================


@dataclass(frozen=True)
class LanguagePack:
    """Complete tree-sitter configuration for a single language."""

    # -- Identity --
    name: str  # Canonical language name, also used as the code fence tag

    # -- Grammar install --
    grammar_package: str  # PyPI package ("tree-sitter-python")
    grammar_module: str  # Python import ("tree_sitter_python")
    min_version: str  # Minimum version
    # Non-standard function name (e.g. "language_typescript")
    language_func: str | None = None

    # -- File detection --
    extensions: frozenset[str] = field(default_factory=frozenset)
    filenames: frozenset[str] = field(default_factory=frozenset)

    # -- Embedding extraction --
    embedding_query: str | None = None


# =========================================================================
# RUST
# =========================================================================

_RUST_EMBEDDING = """
(
    (line_comment)* @context
    .
    (enum_item
        name: (_) @name) @item
)
(
    (line_comment)* @context
    .
    (struct_item
        name: (_) @name) @item
)
(
    (line_comment)* @context
    .
    (impl_item
        trait: (_)? @name
        "for"? @name
        type: (_) @name) @item
)
(
    (line_comment)* @context
    .
    (trait_item
        name: (_) @name) @item
)
(
    (line_comment)* @context
    .
    (function_item
        name: (_) @name) @item
)
(
    (line_comment)* @context
    .
    (macro_definition
        name: (_) @name) @item
)
(
    (line_comment)* @context
    .
    (function_signature_item
        name: (_) @name) @item
)
"""

RUST_PACK = LanguagePack(
    name="rust",
    grammar_package="tree-sitter-rust",
    grammar_module="tree_sitter_rust",
    min_version="0.23.0",
    extensions=frozenset({"rs"}),
    embedding_query=_RUST_EMBEDDING,
)


# =========================================================================
# PYTHON
# =========================================================================

_PYTHON_EMBEDDING = """
(
    (comment)* @context
    .
    (decorated_definition
        definition: [
            (class_definition name: (identifier) @name)
            (function_definition name: (identifier) @name)
        ]) @item
)
(
    (comment)* @context
    .
    (class_definition
        name: (identifier) @name) @item
)
(
    (comment)* @context
    .
    (function_definition
        name: (identifier) @name) @item
)
"""

PYTHON_PACK = LanguagePack(
    name="python",
    grammar_package="tree-sitter-python",
    grammar_module="tree_sitter_python",
    min_version="0.23.0",
    extensions=frozenset({"py", "pyi", "pyw"}),
    embedding_query=_PYTHON_EMBEDDING,
)


# =========================================================================
# GO
# =========================================================================

_GO_EMBEDDING = """
(
    (comment)* @context
    .
    (type_declaration
        (type_spec
            name: (type_identifier) @name)) @item
)
(
    (comment)* @context
    .
    (function_declaration
        name: (identifier) @name) @item
)
(
    (comment)* @context
    .
    (method_declaration
        name: (field_identifier) @name) @item
)
"""

GO_PACK = LanguagePack(
    name="go",
    grammar_package="tree-sitter-go",
    grammar_module="tree_sitter_go",
    min_version="0.23.0",
    extensions=frozenset({"go"}),
    embedding_query=_GO_EMBEDDING,
)


# =========================================================================
# JAVASCRIPT
# =========================================================================

_JAVASCRIPT_EMBEDDING = """
(
    (comment)* @context
    .
    (export_statement
        declaration: [
            (class_declaration name: (_) @name)
            (function_declaration name: (_) @name)
            (generator_function_declaration name: (_) @name)
        ]) @item
)
(
    (comment)* @context
    .
    (class_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (function_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (generator_function_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (method_definition
        name: (_) @name) @item
)
"""

JAVASCRIPT_PACK = LanguagePack(
    name="javascript",
    grammar_package="tree-sitter-javascript",
    grammar_module="tree_sitter_javascript",
    min_version="0.23.0",
    extensions=frozenset({"js", "jsx", "mjs", "cjs"}),
    embedding_query=_JAVASCRIPT_EMBEDDING,
)


# =========================================================================
# TYPESCRIPT
# =========================================================================

_TYPESCRIPT_EMBEDDING = """
(
    (comment)* @context
    .
    (export_statement
        declaration: [
            (interface_declaration name: (_) @name)
            (type_alias_declaration name: (_) @name)
            (enum_declaration name: (_) @name)
            (class_declaration name: (_) @name)
            (abstract_class_declaration name: (_) @name)
            (function_declaration name: (_) @name)
        ]) @item
)
(
    (comment)* @context
    .
    (interface_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (type_alias_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (enum_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (class_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (abstract_class_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (function_declaration
        name: (_) @name) @item
)
(
    (comment)* @context
    .
    (method_definition
        name: (_) @name) @item
)
"""

TYPESCRIPT_PACK = LanguagePack(
    name="typescript",
    grammar_package="tree-sitter-typescript",
    grammar_module="tree_sitter_typescript",
    min_version="0.23.0",
    language_func="language_typescript",
    extensions=frozenset({"ts", "mts", "cts"}),
    embedding_query=_TYPESCRIPT_EMBEDDING,
)


# =========================================================================
# Registry
# =========================================================================

_ALL_PACKS: tuple[LanguagePack, ...] = (
    RUST_PACK,
    PYTHON_PACK,
    GO_PACK,
    JAVASCRIPT_PACK,
    TYPESCRIPT_PACK,
)


class LanguageRegistry:
    """Maps language names, extensions and filenames to LanguagePacks."""

    def __init__(self, packs: Iterable[LanguagePack] = ()) -> None:
        self._packs: dict[str, LanguagePack] = {}
        self._by_ext: dict[str, LanguagePack] = {}
        self._by_filename: dict[str, LanguagePack] = {}
        for pack in packs:
            self.register(pack)

    def register(self, pack: LanguagePack) -> None:
        """Add or replace a pack. Later registrations win for shared extensions."""
        self._packs[pack.name] = pack
        for ext in pack.extensions:
            self._by_ext[ext.lower()] = pack
        for filename in pack.filenames:
            self._by_filename[filename.lower()] = pack

    def get(self, name: str) -> LanguagePack | None:
        """Get a LanguagePack by language name."""
        return self._packs.get(name)

    def for_ext(self, ext: str) -> LanguagePack | None:
        """Get a LanguagePack for a file extension (without leading dot)."""
        return self._by_ext.get(ext.lower())

    def for_path(self, path: str) -> LanguagePack | None:
        """Get the pack for a relative path, or None if the language is unknown."""
        pure = PurePosixPath(path)
        pack = self._by_filename.get(pure.name.lower())
        if pack is not None:
            return pack
        suffix = pure.suffix.lstrip(".")
        return self.for_ext(suffix) if suffix else None

    def __iter__(self) -> Iterator[LanguagePack]:
        return iter(self._packs.values())

    def __contains__(self, name: object) -> bool:
        return name in self._packs

    def __len__(self) -> int:
        return len(self._packs)


def default_registry() -> LanguageRegistry:
    """Registry with every built-in pack."""
    return LanguageRegistry(_ALL_PACKS)
