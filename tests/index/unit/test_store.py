"""Tests for the SQLite vector store.

Covers:
- upsert() replace semantics and fingerprint preconditions
- remove(), remove_many(), remove_worktree()
- scan() / documents_for() round trip and ordering
- Persistence across reopen
- Corrupt embedding detection
- stats()
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import numpy as np
import pytest

from semindex.core.errors import StorageError
from semindex.index._internal.db import VectorDatabase, decode_embedding, encode_embedding
from semindex.index.models import ByteRange, Document, FileKey


def make_doc(name: str, start: int, end: int, vector: list[float] | None = None) -> Document:
    return Document(
        name=name,
        range=ByteRange(start, end),
        content=f"fn {name}() {{}}",
        embedding=vector if vector is not None else [0.6, 0.8, 0.0],
    )


KEY = FileKey("wt-1", "src/lib.rs")


class TestUpsert:
    """Tests for VectorDatabase.upsert."""

    def test_insert_new_record(self, temp_db: VectorDatabase) -> None:
        written = temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10), make_doc("b", 11, 20)])

        assert written is True
        assert temp_db.fingerprint_of(KEY) == "fp1"
        docs = temp_db.documents_for(KEY)
        assert [d.name for d in docs] == ["a", "b"]
        assert [d.range for d in docs] == [ByteRange(0, 10), ByteRange(11, 20)]
        assert docs[0].embedding == pytest.approx([0.6, 0.8, 0.0])

    def test_replace_drops_previous_documents(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10), make_doc("b", 11, 20)])

        temp_db.upsert(KEY, "fp2", [make_doc("c", 0, 5)])

        assert temp_db.fingerprint_of(KEY) == "fp2"
        assert [d.name for d in temp_db.documents_for(KEY)] == ["c"]

    def test_empty_document_list_still_records_fingerprint(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10)])

        temp_db.upsert(KEY, "fp-empty", [])

        assert temp_db.fingerprint_of(KEY) == "fp-empty"
        assert temp_db.documents_for(KEY) == []

    def test_document_without_embedding_rejected(self, temp_db: VectorDatabase) -> None:
        doc = Document(name="a", range=ByteRange(0, 1), content="x")

        with pytest.raises(ValueError):
            temp_db.upsert(KEY, "fp1", [doc])

        assert temp_db.fingerprint_of(KEY) is None

    def test_precondition_matches(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10)])

        assert temp_db.upsert(KEY, "fp2", [make_doc("b", 0, 10)], expected_fingerprint="fp1")
        assert temp_db.fingerprint_of(KEY) == "fp2"

    def test_precondition_mismatch_leaves_record(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10)])

        written = temp_db.upsert(KEY, "fp3", [make_doc("z", 0, 10)], expected_fingerprint="fp0")

        assert written is False
        assert temp_db.fingerprint_of(KEY) == "fp1"
        assert [d.name for d in temp_db.documents_for(KEY)] == ["a"]

    def test_none_precondition_means_no_record(self, temp_db: VectorDatabase) -> None:
        assert temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10)], expected_fingerprint=None)
        assert not temp_db.upsert(KEY, "fp2", [make_doc("a", 0, 10)], expected_fingerprint=None)
        assert temp_db.fingerprint_of(KEY) == "fp1"


class TestRemove:
    """Tests for record deletion."""

    def test_remove_existing(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(KEY, "fp1", [make_doc("a", 0, 10)])

        assert temp_db.remove(KEY) is True
        assert temp_db.fingerprint_of(KEY) is None
        assert list(temp_db.scan(["wt-1"])) == []

    def test_remove_missing(self, temp_db: VectorDatabase) -> None:
        assert temp_db.remove(KEY) is False

    def test_remove_many(self, temp_db: VectorDatabase) -> None:
        keys = [FileKey("wt-1", f"f{i}.rs") for i in range(3)]
        for key in keys:
            temp_db.upsert(key, "fp", [make_doc("a", 0, 1)])

        removed = temp_db.remove_many([keys[0], keys[2], FileKey("wt-1", "missing.rs")])

        assert removed == 2
        assert temp_db.fingerprints_for_worktree("wt-1") == {"f1.rs": "fp"}

    def test_remove_worktree_only_touches_that_worktree(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(FileKey("wt-1", "a.rs"), "fp", [make_doc("a", 0, 1)])
        temp_db.upsert(FileKey("wt-1", "b.rs"), "fp", [make_doc("b", 0, 1)])
        temp_db.upsert(FileKey("wt-2", "a.rs"), "fp", [make_doc("a", 0, 1)])

        assert temp_db.remove_worktree("wt-1") == 2
        assert temp_db.fingerprints_for_worktree("wt-1") == {}
        assert temp_db.fingerprints_for_worktree("wt-2") == {"a.rs": "fp"}


class TestScan:
    """Tests for scan() and stats()."""

    def test_scan_filters_worktrees_and_orders_rows(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(FileKey("wt-2", "b.rs"), "fp", [make_doc("y", 0, 1)])
        temp_db.upsert(FileKey("wt-1", "b.rs"), "fp", [make_doc("b1", 0, 1), make_doc("b2", 2, 3)])
        temp_db.upsert(FileKey("wt-1", "a.rs"), "fp", [make_doc("a", 0, 1)])
        temp_db.upsert(FileKey("wt-3", "c.rs"), "fp", [make_doc("c", 0, 1)])

        rows = list(temp_db.scan(["wt-2", "wt-1"]))

        assert [(k.worktree_id, k.relative_path, d.name) for k, d in rows] == [
            ("wt-1", "a.rs", "a"),
            ("wt-1", "b.rs", "b1"),
            ("wt-1", "b.rs", "b2"),
            ("wt-2", "b.rs", "y"),
        ]

    def test_scan_of_no_worktrees_is_empty(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(KEY, "fp", [make_doc("a", 0, 1)])

        assert list(temp_db.scan([])) == []

    def test_stats(self, temp_db: VectorDatabase) -> None:
        temp_db.upsert(FileKey("wt-1", "a.rs"), "fp", [make_doc("a", 0, 1), make_doc("b", 2, 3)])
        temp_db.upsert(FileKey("wt-1", "empty.rs"), "fp", [])
        temp_db.upsert(FileKey("wt-2", "a.rs"), "fp", [make_doc("a", 0, 1)])

        stats = temp_db.stats()

        assert [(s.worktree_id, s.files, s.documents) for s in stats] == [
            ("wt-1", 2, 2),
            ("wt-2", 1, 1),
        ]
        assert [s.worktree_id for s in temp_db.stats(["wt-2"])] == ["wt-2"]


class TestPersistence:
    def test_records_survive_reopen(self, temp_dir: Path) -> None:
        db_path = temp_dir / "persist.db"
        db = VectorDatabase(db_path)
        db.upsert(KEY, "fp1", [make_doc("a", 0, 10, [1.0, 0.0])])
        db.close()

        reopened = VectorDatabase(db_path)
        try:
            assert reopened.fingerprint_of(KEY) == "fp1"
            [(key, doc)] = list(reopened.scan([KEY.worktree_id]))
            assert key == KEY
            assert doc.name == "a"
            assert doc.embedding == [1.0, 0.0]
        finally:
            reopened.close()

    def test_corrupt_embedding_raises(self, temp_dir: Path) -> None:
        db_path = temp_dir / "corrupt.db"
        db = VectorDatabase(db_path)
        db.upsert(KEY, "fp1", [make_doc("a", 0, 10)])
        db.close()

        conn = sqlite3.connect(db_path)
        with conn:
            conn.execute("UPDATE documents SET embedding = ?", (b"\x00\x01",))
        conn.close()

        reopened = VectorDatabase(db_path)
        try:
            with pytest.raises(StorageError) as exc_info:
                list(reopened.scan([KEY.worktree_id]))
            assert exc_info.value.error_name == "STORAGE_CORRUPT_RECORD"
        finally:
            reopened.close()


class TestEmbeddingCodec:
    def test_decode_matches_encode(self) -> None:
        blob = encode_embedding([0.25, -1.5, 3.0])

        assert len(blob) == 12
        assert decode_embedding(blob, 3, 1).tolist() == [0.25, -1.5, 3.0]

    def test_decode_rejects_wrong_length(self) -> None:
        with pytest.raises(StorageError):
            decode_embedding(np.zeros(2, dtype="<f4").tobytes(), 3, 42)
