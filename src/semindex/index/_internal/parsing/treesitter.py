"""Tree-sitter grammar loading and parsing.

Grammars come from the per-language ``tree_sitter_<lang>`` wheels named by
each LanguagePack. Languages and compiled embedding queries are cached per
pack; parsers are not shared, so ``parse`` is safe to call from several
worker threads at once.
"""

from __future__ import annotations

import importlib
import threading
from dataclasses import dataclass, field
from typing import Any

import tree_sitter
from tree_sitter import Query as _TSQuery
from tree_sitter import QueryCursor as _TSQueryCursor

from semindex.core.errors import ParseError
from semindex.index._internal.parsing.packs import LanguagePack

Match = tuple[int, dict[str, list[Any]]]


@dataclass
class TreeSitterParser:
    """
    Tree-sitter parser for embedding extraction.

    Usage::

        parser = TreeSitterParser()
        tree = parser.parse(source_bytes, RUST_PACK, path="src/lib.rs")
        matches = parser.embedding_matches(tree, RUST_PACK)
    """

    _languages: dict[str, Any] = field(default_factory=dict, repr=False)
    _queries: dict[str, Any] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def language(self, pack: LanguagePack) -> Any:
        """Get or load the tree-sitter Language for a pack.

        Raises:
            ParseError: If the grammar package is missing or broken.
        """
        with self._lock:
            cached = self._languages.get(pack.name)
            if cached is not None:
                return cached

            try:
                mod = importlib.import_module(pack.grammar_module)
                lang_fn = getattr(mod, pack.language_func or "language")
                lang = tree_sitter.Language(lang_fn())
            except (ImportError, AttributeError) as err:
                raise ParseError.grammar_unavailable(
                    pack.name, f"install {pack.grammar_package}>={pack.min_version}"
                ) from err

            self._languages[pack.name] = lang
            return lang

    def embedding_query(self, pack: LanguagePack, *, path: str = "<memory>") -> Any:
        """Get or compile the pack's embedding query.

        Raises:
            ParseError: If the pack has no query, or it does not compile.
        """
        if pack.embedding_query is None:
            raise ParseError.grammar_unavailable(pack.name, "no embedding query defined")

        lang = self.language(pack)
        with self._lock:
            cached = self._queries.get(pack.name)
            if cached is not None:
                return cached
            try:
                query = _TSQuery(lang, pack.embedding_query)
            except Exception as err:
                raise ParseError.syntax_tree_failure(
                    path, f"{pack.name} embedding query does not compile: {err}"
                ) from err
            self._queries[pack.name] = query
            return query

    def parse(self, source: bytes, pack: LanguagePack, *, path: str = "<memory>") -> Any:
        """Parse source bytes into a tree-sitter Tree.

        Raises:
            ParseError: Grammar unavailable or syntax tree construction failed.
        """
        lang = self.language(pack)
        parser = tree_sitter.Parser()
        parser.language = lang
        try:
            tree = parser.parse(source)
        except Exception as err:
            raise ParseError.syntax_tree_failure(path, str(err)) from err
        if tree is None:
            raise ParseError.syntax_tree_failure(path, "parser returned no tree")
        return tree

    def embedding_matches(
        self, tree: Any, pack: LanguagePack, *, path: str = "<memory>"
    ) -> list[Match]:
        """Run the pack's embedding query over a parsed tree."""
        query = self.embedding_query(pack, path=path)
        cursor = _TSQueryCursor(query)
        matches: list[Match] = cursor.matches(tree.root_node)
        return matches
