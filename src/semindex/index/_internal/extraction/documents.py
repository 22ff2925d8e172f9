"""Turn source files into embeddable documents.

One document per construct matched by the language's embedding query.
A document spans from its first contiguous context comment (or the item
itself) to the end of the item, and its content is that verbatim slice
wrapped in a short header naming the file.

Nested constructs are not emitted separately: when one candidate range
contains another, the outer one wins (a method inside an ``impl`` block
is covered by the impl's document).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from semindex.index._internal.parsing.packs import LanguagePack
from semindex.index._internal.parsing.treesitter import Match, TreeSitterParser
from semindex.index.models import ByteRange, Document

CONTENT_TEMPLATE = "The below code snippet is from file '{path}'\n\n```{language}\n{snippet}\n```"


@dataclass
class _Candidate:
    """Matched item plus every context comment seen for it."""

    item: Any
    priority: int
    name_nodes: list[Any]
    context_nodes: dict[tuple[int, int], Any] = field(default_factory=dict)


def render_content(path: str, language: str, snippet: bytes) -> str:
    """Build the text sent to the embedding provider for one document."""
    return CONTENT_TEMPLATE.format(
        path=path,
        language=language,
        snippet=snippet.decode("utf-8", errors="replace"),
    )


def _last_row(node: Any) -> int:
    """Row of the node's last character (comments may swallow the newline)."""
    row, column = node.end_point
    return row if column > 0 or row == node.start_point[0] else row - 1


def _starts_line(node: Any, source: bytes) -> bool:
    """True if only whitespace precedes ``node`` on its line."""
    line_start = source.rfind(b"\n", 0, node.start_byte) + 1
    return not source[line_start : node.start_byte].strip()


def _context_start(item: Any, context_nodes: list[Any], source: bytes) -> int:
    """Start byte of the contiguous comment block directly above ``item``.

    A comment trailing code on its line belongs to that code and ends the
    block.
    """
    start = item.start_byte
    boundary_row = item.start_point[0]
    for node in reversed(context_nodes):
        if node.end_byte > start:
            continue
        if boundary_row - _last_row(node) > 1 or not _starts_line(node, source):
            break
        start = node.start_byte
        boundary_row = node.start_point[0]
    return start


def _node_text(node: Any, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _collect(matches: list[Match]) -> list[_Candidate]:
    """Merge the per-context-length matches tree-sitter returns for one item."""
    by_item: dict[tuple[int, int, int], _Candidate] = {}
    for pattern_idx, captures in matches:
        items = captures.get("item")
        names = captures.get("name")
        if not items or not names:
            continue
        item = items[0]
        key = (item.start_byte, item.end_byte, pattern_idx)
        candidate = by_item.get(key)
        if candidate is None:
            candidate = _Candidate(item=item, priority=pattern_idx, name_nodes=list(names))
            by_item[key] = candidate
        for node in captures.get("context", ()):
            candidate.context_nodes[(node.start_byte, node.end_byte)] = node
    return list(by_item.values())


class DocumentExtractor:
    """Extracts documents from source bytes. Stateless apart from grammar caches."""

    def __init__(self, parser: TreeSitterParser | None = None) -> None:
        self._parser = parser or TreeSitterParser()

    def extract(self, path: str, source: bytes | str, pack: LanguagePack) -> list[Document]:
        """Extract documents in source order.

        Args:
            path: File path shown in each document's header.
            source: File content. ``str`` is encoded as UTF-8; byte ranges
                always refer to the encoded bytes.
            pack: Language definition (grammar + embedding query).

        Raises:
            ParseError: Grammar unavailable or syntax tree failure.
        """
        if isinstance(source, str):
            source = source.encode("utf-8")

        tree = self._parser.parse(source, pack, path=path)
        matches = self._parser.embedding_matches(tree, pack, path=path)

        spans: list[tuple[int, int, int, str]] = []
        for candidate in _collect(matches):
            contexts = sorted(candidate.context_nodes.values(), key=lambda n: n.start_byte)
            start = _context_start(candidate.item, contexts, source)
            end = candidate.item.end_byte
            if end <= start:
                continue
            name_nodes = sorted(candidate.name_nodes, key=lambda n: n.start_byte)
            name = " ".join(_node_text(n, source) for n in name_nodes)
            spans.append((start, -end, candidate.priority, name))

        # Outer wins: with starts ascending, a span is nested iff it ends
        # at or before the furthest end accepted so far.
        spans.sort()
        documents: list[Document] = []
        max_end = -1
        for start, neg_end, _priority, name in spans:
            end = -neg_end
            if end <= max_end:
                continue
            max_end = end
            documents.append(
                Document(
                    name=name,
                    range=ByteRange(start, end),
                    content=render_content(path, pack.name, source[start:end]),
                )
            )
        return documents


_default_extractor: DocumentExtractor | None = None


def extract(path: str, source: bytes | str, pack: LanguagePack) -> list[Document]:
    """Module-level convenience over a shared DocumentExtractor."""
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = DocumentExtractor()
    return _default_extractor.extract(path, source, pack)
