"""Tests for document extraction from source files.

Covers:
- Byte ranges including contiguous context comments
- Document names (including multi-part impl names)
- Outer-wins handling of nested constructs
- Content header format
- ParseError paths
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from semindex.core.errors import ParseError
from semindex.index._internal.extraction import DocumentExtractor, extract, render_content
from semindex.index._internal.parsing import (
    GO_PACK,
    PYTHON_PACK,
    RUST_PACK,
    TYPESCRIPT_PACK,
)
from semindex.index.models import ByteRange


@pytest.fixture
def extractor() -> DocumentExtractor:
    return DocumentExtractor()


class TestRustExtraction:
    """Rust embedding query behaviour."""

    def test_code_context_and_items_after_blank_lines(
        self, extractor: DocumentExtractor, sample_rust_content: str
    ) -> None:
        """Doc comments are folded into the item's range; the impl is named 'C for D'."""
        source = sample_rust_content.encode()
        fn_end = source.index(b"}\n") + 1
        impl_start = source.index(b"impl")

        docs = extractor.extract("foo.rs", source, RUST_PACK)

        assert [d.name for d in docs] == ["a", "C for D"]
        assert docs[0].range == ByteRange(0, fn_end)
        assert docs[1].range == ByteRange(impl_start, len(source) - 1)
        assert docs[0].content == (
            "The below code snippet is from file 'foo.rs'\n\n```rust\n"
            + sample_rust_content[:fn_end]
            + "\n```"
        )
        assert all(d.embedding == [] for d in docs)

    def test_comment_separated_by_blank_line_is_not_context(
        self, extractor: DocumentExtractor
    ) -> None:
        source = b"// unrelated header\n\nfn solo() {}\n"

        docs = extractor.extract("solo.rs", source, RUST_PACK)

        assert len(docs) == 1
        assert docs[0].range.start == source.index(b"fn solo")

    def test_trailing_comment_on_previous_line_is_not_context(
        self, extractor: DocumentExtractor
    ) -> None:
        source = b"fn x() {} // about x\nfn y() {}\n"

        docs = extractor.extract("xy.rs", source, RUST_PACK)

        assert [d.name for d in docs] == ["x", "y"]
        assert docs[0].range == ByteRange(0, source.index(b" //"))
        assert docs[1].range == ByteRange(source.index(b"fn y"), len(source) - 1)

    def test_indented_comment_block_is_context(self, extractor: DocumentExtractor) -> None:
        source = b"fn e() {}\n\n    // free\nfn f() {}\n"

        docs = extractor.extract("f.rs", source, RUST_PACK)

        assert [d.name for d in docs] == ["e", "f"]
        assert docs[1].range.start == source.index(b"// free")

    def test_nested_items_are_covered_by_outer(self, extractor: DocumentExtractor) -> None:
        """Methods inside an impl block are not emitted separately."""
        source = b"impl Foo {\n    fn bar() {}\n}\n\nfn baz() {}\n"

        docs = extractor.extract("lib.rs", source, RUST_PACK)

        assert [d.name for d in docs] == ["Foo", "baz"]
        assert docs[0].range.contains(ByteRange(source.index(b"fn bar"), source.index(b"{}") + 2))

    def test_struct_enum_trait_and_macro(self, extractor: DocumentExtractor) -> None:
        source = (
            b"struct Point { x: i32 }\n"
            b"enum Shape { Circle }\n"
            b"trait Draw { fn draw(&self); }\n"
            b"macro_rules! square { ($x:expr) => { $x * $x }; }\n"
        )

        docs = extractor.extract("shapes.rs", source, RUST_PACK)

        assert [d.name for d in docs] == ["Point", "Shape", "Draw", "square"]

    def test_ranges_are_byte_offsets(self, extractor: DocumentExtractor) -> None:
        """Multi-byte characters before an item shift its byte range, not its char range."""
        text = "// héllo wörld\nfn x() {}\n"

        docs = extractor.extract("x.rs", text, RUST_PACK)

        assert len(docs) == 1
        assert docs[0].range == ByteRange(0, len(text.encode()) - 1)

    def test_str_and_bytes_input_agree(self, extractor: DocumentExtractor) -> None:
        text = "fn one() {}\nfn two() {}\n"

        assert extractor.extract("a.rs", text, RUST_PACK) == extractor.extract(
            "a.rs", text.encode(), RUST_PACK
        )

    def test_extraction_is_deterministic(self, extractor: DocumentExtractor) -> None:
        source = b"/// doc\nfn one() {}\n\nstruct Two;\n\nimpl Two { fn three() {} }\n"

        first = extractor.extract("a.rs", source, RUST_PACK)
        second = DocumentExtractor().extract("a.rs", source, RUST_PACK)

        assert first == second

    def test_documents_are_in_source_order_and_disjoint(
        self, extractor: DocumentExtractor
    ) -> None:
        source = b"fn c() {}\n// about b\nfn b() {}\nstruct A;\n"

        docs = extractor.extract("order.rs", source, RUST_PACK)

        starts = [d.range.start for d in docs]
        assert starts == sorted(starts)
        for prev, nxt in zip(docs, docs[1:], strict=False):
            assert prev.range.end <= nxt.range.start

    def test_file_without_items_has_no_documents(self, extractor: DocumentExtractor) -> None:
        assert extractor.extract("empty.rs", b"// nothing here\n", RUST_PACK) == []

    def test_syntax_errors_still_extract(self, extractor: DocumentExtractor) -> None:
        """Tree-sitter recovers from errors; well-formed items are still found."""
        source = b"fn ok() {}\nfn broken( {\n"

        docs = extractor.extract("broken.rs", source, RUST_PACK)

        assert "ok" in [d.name for d in docs]


class TestOtherLanguages:
    def test_python_decorated_definition_and_class(self, extractor: DocumentExtractor) -> None:
        source = (
            b"# Helper comment\n"
            b"@decorator\n"
            b"def foo():\n"
            b"    pass\n"
            b"\n"
            b"\n"
            b"class Bar:\n"
            b"    def method(self):\n"
            b"        pass\n"
        )

        docs = extractor.extract("mod.py", source, PYTHON_PACK)

        assert [d.name for d in docs] == ["foo", "Bar"]
        assert docs[0].range.start == 0
        assert docs[0].content.startswith("The below code snippet is from file 'mod.py'")
        assert "```python\n" in docs[0].content

    def test_go_functions_and_types(self, extractor: DocumentExtractor) -> None:
        source = (
            b"package main\n\n"
            b"// Server handles requests.\n"
            b"type Server struct{}\n\n"
            b"func (s *Server) Serve() {}\n\n"
            b"func main() {}\n"
        )

        docs = extractor.extract("main.go", source, GO_PACK)

        assert [d.name for d in docs] == ["Server", "Serve", "main"]
        assert docs[0].range.start == source.index(b"// Server")

    def test_typescript_exported_interface(self, extractor: DocumentExtractor) -> None:
        source = b"export interface Config {\n  name: string;\n}\n\nfunction load(): void {}\n"

        docs = extractor.extract("config.ts", source, TYPESCRIPT_PACK)

        assert [d.name for d in docs] == ["Config", "load"]


class TestRenderContent:
    def test_wraps_snippet_in_fenced_block(self) -> None:
        content = render_content("src/lib.rs", "rust", b"fn x() {}")

        assert content == "The below code snippet is from file 'src/lib.rs'\n\n```rust\nfn x() {}\n```"

    def test_invalid_utf8_is_replaced(self) -> None:
        content = render_content("a.rs", "rust", b"fn \xff() {}")

        assert "�" in content


class TestParseErrors:
    def test_pack_without_query_raises(self, extractor: DocumentExtractor) -> None:
        pack = replace(RUST_PACK, name="rust-noquery", embedding_query=None)

        with pytest.raises(ParseError) as exc_info:
            extractor.extract("a.rs", b"fn a() {}", pack)

        assert exc_info.value.error_name == "PARSE_GRAMMAR_UNAVAILABLE"

    def test_missing_grammar_raises(self, extractor: DocumentExtractor) -> None:
        pack = replace(
            RUST_PACK,
            name="nosuchlang",
            grammar_package="tree-sitter-nosuchlang",
            grammar_module="tree_sitter_nosuchlang",
        )

        with pytest.raises(ParseError) as exc_info:
            extractor.extract("a.nosuch", b"anything", pack)

        assert "tree-sitter-nosuchlang" in exc_info.value.message

    def test_invalid_query_raises(self, extractor: DocumentExtractor) -> None:
        pack = replace(RUST_PACK, name="rust-badquery", embedding_query="(not_a_node) @item")

        with pytest.raises(ParseError) as exc_info:
            extractor.extract("a.rs", b"fn a() {}", pack)

        assert exc_info.value.error_name == "PARSE_SYNTAX_TREE_FAILURE"


class TestModuleLevelExtract:
    def test_shared_extractor(self) -> None:
        docs = extract("a.rs", "fn a() {}\n", RUST_PACK)

        assert [d.name for d in docs] == ["a"]
