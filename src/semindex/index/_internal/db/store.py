"""Persistent vector store keyed by (worktree_id, relative_path).

Each Indexed File Record is one ``files`` row plus its ``documents`` rows.
Every mutation runs in a single BEGIN IMMEDIATE transaction, so a reader
sees either the complete old document set of a file or the complete new
one. Embeddings are stored as little-endian float32 blobs next to their
dimension count and validated on the way out.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import numpy as np
import structlog
from sqlalchemy import delete, func, insert
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from semindex.config.models import DatabaseConfig
from semindex.core.errors import StorageError
from semindex.index._internal.db.database import Database
from semindex.index.models import ByteRange, Document, DocumentRecord, FileKey, IndexedFile

log = structlog.get_logger()

_EMBEDDING_DTYPE: Final = np.dtype("<f4")


class _Unset:
    """Marker for "no precondition" (``None`` means "no record")."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


@dataclass(frozen=True, slots=True)
class WorktreeStats:
    """Indexed file and document counts for one worktree."""

    worktree_id: str
    files: int
    documents: int


def encode_embedding(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=_EMBEDDING_DTYPE).tobytes()


def decode_embedding(blob: bytes, dimensions: int, document_id: int) -> np.ndarray:
    """Decode a stored embedding, rejecting truncated or padded blobs."""
    if len(blob) != dimensions * _EMBEDDING_DTYPE.itemsize:
        raise StorageError.corrupt_record(
            document_id,
            f"expected {dimensions} float32 values, blob has {len(blob)} bytes",
        )
    return np.frombuffer(blob, dtype=_EMBEDDING_DTYPE)


class VectorDatabase:
    """Indexed File Records on SQLite.

    All methods are blocking; the orchestrator calls them through
    ``asyncio.to_thread``.
    """

    def __init__(self, db_path: Path, config: DatabaseConfig | None = None) -> None:
        config = config or DatabaseConfig()
        self.db_path = db_path
        self._db = Database(
            db_path,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay_sec,
            busy_timeout_ms=config.busy_timeout_ms,
        )
        self._db.create_all()

    def close(self) -> None:
        self._db.dispose()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(
        self,
        key: FileKey,
        fingerprint: str,
        documents: Sequence[Document],
        *,
        language: str | None = None,
        expected_fingerprint: str | None | _Unset = UNSET,
    ) -> bool:
        """Atomically replace the record for ``key``.

        If ``expected_fingerprint`` is given, the write only happens when the
        stored fingerprint still equals it (``None`` = no stored record).

        Returns:
            True if the record was written, False if the precondition failed.
        """
        for doc in documents:
            if not doc.embedding:
                raise ValueError(f"Document {doc.name!r} in {key.relative_path} has no embedding")

        with self._db.immediate_transaction() as session:
            row = session.exec(
                select(IndexedFile).where(
                    IndexedFile.worktree_id == key.worktree_id,
                    IndexedFile.relative_path == key.relative_path,
                )
            ).first()
            current = row.fingerprint if row is not None else None
            if not isinstance(expected_fingerprint, _Unset) and current != expected_fingerprint:
                log.debug(
                    "store.upsert_rejected",
                    worktree_id=key.worktree_id,
                    path=key.relative_path,
                    expected=expected_fingerprint,
                    current=current,
                )
                return False

            if row is None:
                row = IndexedFile(
                    worktree_id=key.worktree_id,
                    relative_path=key.relative_path,
                    fingerprint=fingerprint,
                )
                session.add(row)
            else:
                session.execute(delete(DocumentRecord).where(DocumentRecord.file_id == row.id))  # type: ignore[arg-type]
                row.fingerprint = fingerprint
            row.language = language
            row.indexed_at = time.time()
            session.flush()

            if documents:
                session.execute(
                    insert(DocumentRecord),
                    [
                        {
                            "file_id": row.id,
                            "ordinal": ordinal,
                            "name": doc.name,
                            "start_byte": doc.range.start,
                            "end_byte": doc.range.end,
                            "embedding": encode_embedding(doc.embedding),
                            "dimensions": len(doc.embedding),
                        }
                        for ordinal, doc in enumerate(documents)
                    ],
                )
        return True

    def remove(self, key: FileKey) -> bool:
        """Delete the record for ``key``. Returns False if there was none."""
        with self._db.immediate_transaction() as session:
            result = session.execute(
                delete(IndexedFile).where(
                    IndexedFile.worktree_id == key.worktree_id,  # type: ignore[arg-type]
                    IndexedFile.relative_path == key.relative_path,  # type: ignore[arg-type]
                )
            )
            return bool(result.rowcount)

    def remove_many(self, keys: Iterable[FileKey]) -> int:
        """Delete several records in one transaction."""
        removed = 0
        with self._db.immediate_transaction() as session:
            for key in keys:
                result = session.execute(
                    delete(IndexedFile).where(
                        IndexedFile.worktree_id == key.worktree_id,  # type: ignore[arg-type]
                        IndexedFile.relative_path == key.relative_path,  # type: ignore[arg-type]
                    )
                )
                removed += result.rowcount
        return removed

    def remove_worktree(self, worktree_id: str) -> int:
        """Delete every record of a worktree. Returns the number of files removed."""
        with self._db.immediate_transaction() as session:
            result = session.execute(
                delete(IndexedFile).where(IndexedFile.worktree_id == worktree_id)  # type: ignore[arg-type]
            )
            return int(result.rowcount)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fingerprint_of(self, key: FileKey) -> str | None:
        try:
            with self._db.session() as session:
                return session.execute(
                    select(IndexedFile.fingerprint).where(
                        IndexedFile.worktree_id == key.worktree_id,
                        IndexedFile.relative_path == key.relative_path,
                    )
                ).scalar_one_or_none()
        except OperationalError as e:
            raise StorageError.unavailable("fingerprint_of", str(e)) from e

    def fingerprints_for_worktree(self, worktree_id: str) -> dict[str, str]:
        """Map relative path to stored fingerprint for one worktree."""
        try:
            with self._db.session() as session:
                rows = session.execute(
                    select(IndexedFile.relative_path, IndexedFile.fingerprint).where(
                        IndexedFile.worktree_id == worktree_id
                    )
                ).all()
        except OperationalError as e:
            raise StorageError.unavailable("fingerprints_for_worktree", str(e)) from e
        return {path: fingerprint for path, fingerprint in rows}

    def documents_for(self, key: FileKey) -> list[Document]:
        """Stored documents of one file in source order (content is not persisted)."""
        return [doc for _, doc in self._iter_documents([key.worktree_id], key.relative_path)]

    def scan(self, worktree_ids: Iterable[str]) -> Iterator[tuple[FileKey, Document]]:
        """Lazily yield every stored document of the given worktrees.

        The whole scan runs in one read transaction, so it reflects a single
        committed snapshot even while records are being replaced.
        """
        ids = sorted(set(worktree_ids))
        if not ids:
            return iter(())
        return self._iter_documents(ids, None)

    def _iter_documents(
        self, worktree_ids: list[str], relative_path: str | None
    ) -> Iterator[tuple[FileKey, Document]]:
        stmt = (
            select(
                IndexedFile.worktree_id,
                IndexedFile.relative_path,
                DocumentRecord.id,
                DocumentRecord.name,
                DocumentRecord.start_byte,
                DocumentRecord.end_byte,
                DocumentRecord.embedding,
                DocumentRecord.dimensions,
            )
            .join(DocumentRecord, DocumentRecord.file_id == IndexedFile.id)  # type: ignore[arg-type]
            .where(IndexedFile.worktree_id.in_(worktree_ids))  # type: ignore[attr-defined]
            .order_by(
                IndexedFile.worktree_id,
                IndexedFile.relative_path,
                DocumentRecord.ordinal,
            )
        )
        if relative_path is not None:
            stmt = stmt.where(IndexedFile.relative_path == relative_path)

        with self._db.read_transaction() as conn:
            try:
                result = conn.execute(stmt)
                for row in result:
                    worktree_id, path, doc_id, name, start, end, blob, dims = row
                    vector = decode_embedding(blob, dims, doc_id)
                    yield (
                        FileKey(worktree_id, path),
                        Document(
                            name=name,
                            range=ByteRange(start, end),
                            content="",
                            embedding=vector.tolist(),
                        ),
                    )
            except OperationalError as e:
                raise StorageError.unavailable("scan", str(e)) from e

    def stats(self, worktree_ids: Iterable[str] | None = None) -> list[WorktreeStats]:
        """Per-worktree file and document counts."""
        doc_counts = (
            select(DocumentRecord.file_id, func.count().label("n"))
            .group_by(DocumentRecord.file_id)
            .subquery()
        )
        stmt = (
            select(
                IndexedFile.worktree_id,
                func.count(IndexedFile.id),
                func.coalesce(func.sum(doc_counts.c.n), 0),
            )
            .outerjoin(doc_counts, doc_counts.c.file_id == IndexedFile.id)
            .group_by(IndexedFile.worktree_id)
            .order_by(IndexedFile.worktree_id)
        )
        if worktree_ids is not None:
            stmt = stmt.where(IndexedFile.worktree_id.in_(list(worktree_ids)))  # type: ignore[attr-defined]
        try:
            with self._db.session() as session:
                rows = session.execute(stmt).all()
        except OperationalError as e:
            raise StorageError.unavailable("stats", str(e)) from e
        return [WorktreeStats(w, int(files), int(docs)) for w, files, docs in rows]
