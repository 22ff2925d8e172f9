"""High-level orchestration of the semantic index.

This module implements the VectorStore - the entry point for all index
operations exposed to callers:

- index_project: select new/changed files, drop deleted ones, enqueue work
- remaining_files_to_index_for_project: pending file count (None if unknown)
- search_project: embed a query and rank stored documents by dot product

The VectorStore owns the pipeline lifecycle. Per-project pending counts are
written only by the collector task, from FileOutcome messages sent after
each file's database write commits (or the file is given up on).
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import structlog

from semindex.config.models import SemIndexConfig
from semindex.core.errors import EmbeddingError, ProjectIndexError, SearchError, SemIndexError
from semindex.core.logging import set_operation_id
from semindex.index._internal.db.store import VectorDatabase, WorktreeStats
from semindex.index._internal.discovery.project import Project, Worktree, fingerprint
from semindex.index._internal.embedding.provider import EmbeddingProvider, normalize
from semindex.index._internal.extraction.documents import DocumentExtractor
from semindex.index._internal.indexing.pipeline import (
    FileOutcome,
    IndexingPipeline,
    KeyLedger,
)
from semindex.index._internal.parsing.packs import LanguagePack, LanguageRegistry, default_registry
from semindex.index.models import (
    ByteRange,
    FileKey,
    OutcomeKind,
    ProjectPhase,
    SearchResult,
)

log = structlog.get_logger()


@dataclass
class ProjectState:
    """In-memory indexing state of one registered project."""

    project_id: str
    pending: int = 0
    submitted: int = 0
    committed: int = 0
    abandoned: int = 0
    superseded: int = 0
    _finished_since_submit: int = 0
    _idle: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def __post_init__(self) -> None:
        self._idle.set()

    @property
    def phase(self) -> ProjectPhase:
        if self.pending == 0:
            return ProjectPhase.IDLE
        if self._finished_since_submit == 0:
            return ProjectPhase.REGISTERED
        return ProjectPhase.DRAINING

    def add_pending(self, count: int) -> None:
        if count <= 0:
            return
        self.pending += count
        self.submitted += count
        self._finished_since_submit = 0
        self._idle.clear()

    def apply(self, outcome: FileOutcome) -> None:
        self.pending -= 1
        self._finished_since_submit += 1
        if outcome.kind is OutcomeKind.COMMITTED:
            self.committed += 1
        elif outcome.kind is OutcomeKind.ABANDONED:
            self.abandoned += 1
        else:
            self.superseded += 1
        if self.pending == 0:
            self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()


@dataclass(frozen=True, slots=True)
class _Changed:
    """A file whose content differs from its stored record."""

    key: FileKey
    content: bytes
    fingerprint: str
    stored_fingerprint: str | None
    pack: LanguagePack


@dataclass
class _Selection:
    """Result of enumerating one project."""

    changed: list[_Changed] = field(default_factory=list)
    seen: dict[FileKey, str] = field(default_factory=dict)  # key -> current fingerprint


class VectorStore:
    """
    Semantic index over one SQLite database.

    Usage::

        store = VectorStore.open(Path(".semindex/index.db"), provider)
        changed = await store.index_project(project)
        await store.wait_for_project(project)
        results = await store.search_project(project, "parse config file", 10)
        await store.close()
    """

    def __init__(
        self,
        database: VectorDatabase,
        provider: EmbeddingProvider,
        *,
        config: SemIndexConfig | None = None,
        registry: LanguageRegistry | None = None,
        extractor: DocumentExtractor | None = None,
    ) -> None:
        self.config = config or SemIndexConfig()
        self.database = database
        self.provider = provider
        self.registry = registry or default_registry()
        self._ledger = KeyLedger()
        self._pipeline = IndexingPipeline(
            database,
            provider,
            extractor or DocumentExtractor(),
            self._ledger,
            self.config.indexer,
        )
        self._projects: dict[str, ProjectState] = {}
        self._collector: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    def open(
        cls,
        db_path: Path,
        provider: EmbeddingProvider,
        *,
        config: SemIndexConfig | None = None,
        registry: LanguageRegistry | None = None,
    ) -> VectorStore:
        """Open (or create) the database at ``db_path`` and wrap it."""
        config = config or SemIndexConfig()
        database = VectorDatabase(db_path, config.database)
        return cls(database, provider, config=config, registry=registry)

    async def __aenter__(self) -> VectorStore:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _ensure_started(self) -> None:
        if self._closed:
            raise RuntimeError("VectorStore is closed")
        if not self._pipeline.running:
            self._pipeline.start()
            self._collector = asyncio.create_task(self._collect(), name="semindex-collector")

    async def close(self) -> None:
        """Stop workers and release the database. Queued work is dropped."""
        if self._closed:
            return
        self._closed = True
        await self._pipeline.stop()
        if self._collector is not None:
            self._collector.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._collector
            self._collector = None
        await asyncio.to_thread(self.database.close)

    async def _collect(self) -> None:
        """Sole writer of pending counts."""
        outcomes = self._pipeline.outcomes
        while True:
            outcome = await outcomes.get()
            job = outcome.job
            self._ledger.finish(job)
            state = self._projects.get(job.project_id)
            if state is not None:
                state.apply(outcome)
                remaining = state.pending
            else:
                remaining = None
            if outcome.kind is OutcomeKind.ABANDONED:
                log.info(
                    "index.file_abandoned",
                    project_id=job.project_id,
                    path=job.key.relative_path,
                    error=outcome.error,
                    remaining=remaining,
                )
            if state is not None and remaining == 0:
                log.info(
                    "index.project_idle",
                    project_id=job.project_id,
                    committed=state.committed,
                    abandoned=state.abandoned,
                    superseded=state.superseded,
                )

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def _enumerate(
        self, worktrees: Sequence[Worktree], observed: dict[str, dict[str, str]]
    ) -> _Selection:
        """Walk every worktree and pick new/changed files (runs in a thread)."""
        selection = _Selection()
        for worktree in worktrees:
            worktree_id = worktree.worktree_id
            stored = observed[worktree_id]
            for source_file in worktree.iter_files():
                path = source_file.relative_path
                pack = self.registry.for_path(path)
                if pack is None:
                    continue
                key = FileKey(worktree_id, path)
                fp = fingerprint(source_file.content)
                selection.seen[key] = fp
                stored_fp = stored.get(path)
                if stored_fp == fp:
                    continue
                selection.changed.append(_Changed(key, source_file.content, fp, stored_fp, pack))
        return selection

    def _needs_job(self, changed: _Changed, observed_seq: int) -> bool:
        # A job in flight for the same content keeps running; content
        # committed during the walk is already stored.
        in_flight = self._ledger.in_flight(changed.key)
        if in_flight is not None and in_flight.fingerprint == changed.fingerprint:
            return False
        return self._ledger.written_after(changed.key, observed_seq) != changed.fingerprint

    def _unseen_keys(
        self, worktrees: Sequence[Worktree], seen: dict[FileKey, str]
    ) -> list[FileKey]:
        """Stored files of ``worktrees`` that the last walk did not enumerate."""
        unseen: list[FileKey] = []
        for worktree in worktrees:
            stored = self.database.fingerprints_for_worktree(worktree.worktree_id)
            keys = (FileKey(worktree.worktree_id, path) for path in sorted(stored))
            unseen.extend(key for key in keys if key not in seen)
        return unseen

    async def index_project(self, project: Project) -> int:
        """Select new or changed files of ``project`` and queue them for indexing.

        Files stored under the project's worktrees but no longer enumerated
        are removed before this returns. Returns once every selected file is
        queued, not once it is embedded; poll
        remaining_files_to_index_for_project or await wait_for_project.

        Returns:
            Number of files selected by this call.

        Raises:
            ProjectIndexError: The project's files could not be enumerated.
            StorageError: The database could not be read or updated.
        """
        self._ensure_started()
        set_operation_id()
        project_id = project.project_id
        start = time.monotonic()

        try:
            worktrees = list(project.worktrees())
        except Exception as e:
            raise ProjectIndexError.enumeration_failed(project_id, str(e)) from e

        # Read the sequence before the fingerprints so writes that land in
        # between are visible to expected_for().
        observed_seq = self._ledger.write_seq
        observed = {
            w.worktree_id: await asyncio.to_thread(
                self.database.fingerprints_for_worktree, w.worktree_id
            )
            for w in worktrees
        }

        try:
            selection = await asyncio.to_thread(self._enumerate, worktrees, observed)
        except SemIndexError:
            raise
        except Exception as e:
            raise ProjectIndexError.enumeration_failed(project_id, str(e)) from e

        changed = [c for c in selection.changed if self._needs_job(c, observed_seq)]

        # In-flight jobs for deleted or reverted files must never write. Holding
        # the key lock waits out a write that is already under way.
        resubmitted = {c.key for c in changed}
        for worktree in worktrees:
            for key in self._ledger.in_flight_keys(worktree.worktree_id):
                in_flight = self._ledger.in_flight(key)
                current_fp = selection.seen.get(key)
                if key in resubmitted or (in_flight and in_flight.fingerprint == current_fp):
                    continue
                async with self._ledger.hold(key):
                    self._ledger.cancel(key)

        # Re-read after cancelling: jobs may have committed files that were
        # deleted while the worktrees were being walked.
        removed = await asyncio.to_thread(self._unseen_keys, worktrees, selection.seen)
        if removed:
            await asyncio.to_thread(self.database.remove_many, removed)

        state = self._projects.get(project_id)
        if state is None:
            state = ProjectState(project_id)
            self._projects[project_id] = state
        state.add_pending(len(changed))

        for c in changed:
            job = self._ledger.new_job(
                project_id=project_id,
                key=c.key,
                content=c.content,
                fingerprint=c.fingerprint,
                expected_fingerprint=c.stored_fingerprint,
                observed_seq=observed_seq,
                pack=c.pack,
            )
            await self._pipeline.submit(job)

        log.info(
            "index.pass_submitted",
            project_id=project_id,
            files_seen=len(selection.seen),
            files_changed=len(changed),
            files_removed=len(removed),
            pending=state.pending,
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return len(changed)

    def remaining_files_to_index_for_project(self, project: Project) -> int | None:
        """Pending file count, or None if the project was never submitted."""
        state = self._projects.get(project.project_id)
        return state.pending if state is not None else None

    def project_status(self, project: Project) -> ProjectPhase:
        state = self._projects.get(project.project_id)
        return state.phase if state is not None else ProjectPhase.UNREGISTERED

    def project_state(self, project: Project) -> ProjectState | None:
        return self._projects.get(project.project_id)

    async def wait_for_project(self, project: Project, timeout: float | None = None) -> None:
        """Wait until the project's pending count reaches 0.

        Returns immediately for a project that was never submitted.

        Raises:
            TimeoutError: ``timeout`` elapsed first.
        """
        state = self._projects.get(project.project_id)
        if state is None:
            return
        await asyncio.wait_for(state.wait_idle(), timeout)

    async def remove_worktree(self, worktree_id: str) -> int:
        """Drop every record of a worktree that left its project."""
        for key in self._ledger.in_flight_keys(worktree_id):
            async with self._ledger.hold(key):
                self._ledger.cancel(key)
        removed = await asyncio.to_thread(self.database.remove_worktree, worktree_id)
        log.info("index.worktree_removed", worktree_id=worktree_id, files_removed=removed)
        return removed

    async def stats(self, project: Project) -> list[WorktreeStats]:
        worktree_ids = [w.worktree_id for w in project.worktrees()]
        return await asyncio.to_thread(self.database.stats, worktree_ids)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _load_candidates(
        self, worktree_ids: list[str], dimensions: int
    ) -> tuple[list[tuple[FileKey, str, ByteRange]], np.ndarray]:
        entries: list[tuple[FileKey, str, ByteRange]] = []
        vectors: list[list[float]] = []
        skipped = 0
        for key, doc in self.database.scan(worktree_ids):
            if len(doc.embedding) != dimensions:
                skipped += 1
                continue
            entries.append((key, doc.name, doc.range))
            vectors.append(doc.embedding)
        if skipped:
            log.warning("search.dimension_mismatch", skipped=skipped, expected=dimensions)
        matrix = np.asarray(vectors, dtype=np.float32).reshape(len(vectors), dimensions)
        return entries, matrix

    async def search_project(
        self, project: Project, query: str, limit: int
    ) -> list[SearchResult]:
        """Rank the project's stored documents against ``query``.

        Ties are broken by range start, then worktree id, then path.

        Raises:
            SearchError: ``limit`` is not positive, or the query could not be
                embedded.
            StorageError: The database could not be read.
        """
        if limit <= 0:
            raise SearchError.invalid_limit(limit)
        set_operation_id()
        start = time.monotonic()

        try:
            vectors = await self.provider.embed_batch([query])
        except EmbeddingError as e:
            raise SearchError.embedding_failed(e.message) from e
        if len(vectors) != 1:
            raise SearchError.embedding_failed(f"expected 1 vector, got {len(vectors)}")
        query_vector = normalize(vectors)[0]

        worktree_ids = sorted({w.worktree_id for w in project.worktrees()})
        entries, matrix = await asyncio.to_thread(
            self._load_candidates, worktree_ids, int(query_vector.shape[0])
        )
        if not entries:
            log.info("search.completed", project_id=project.project_id, results=0, scanned=0)
            return []

        scores = matrix @ query_vector
        ranked = sorted(
            range(len(entries)),
            key=lambda i: (
                -float(scores[i]),
                entries[i][2].start,
                entries[i][0].worktree_id,
                entries[i][0].relative_path,
            ),
        )
        results = [
            SearchResult(
                name=entries[i][1],
                range=entries[i][2],
                worktree_id=entries[i][0].worktree_id,
                relative_path=entries[i][0].relative_path,
                score=float(scores[i]),
            )
            for i in ranked[:limit]
        ]
        log.info(
            "search.completed",
            project_id=project.project_id,
            results=len(results),
            scanned=len(entries),
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return results
