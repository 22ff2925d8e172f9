"""File indexing pipeline: bounded work queue + fixed worker pool.

Design:
- index_project enqueues one FileJob per new or changed file
- max_workers asyncio tasks consume the queue
- Tree-sitter extraction runs in a ThreadPoolExecutor (CPU-bound)
- Embedding batches are awaited one after another per file
- The file record is replaced in one transaction, guarded by the
  fingerprint observed when the file was enumerated
- Every job ends with exactly one FileOutcome on the outcome queue; the
  orchestrator's collector is the only consumer

Writes to one file are ordered through the KeyLedger: only the newest job
for a key may write, and the check plus the write happen under a per-key
lock.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace

import structlog

from semindex.config.models import IndexerConfig
from semindex.core.errors import EmbeddingError, InternalError, ParseError, StorageError
from semindex.index._internal.db.store import VectorDatabase
from semindex.index._internal.embedding.batching import plan_batches
from semindex.index._internal.embedding.provider import EmbeddingProvider, normalize
from semindex.index._internal.extraction.documents import DocumentExtractor
from semindex.index._internal.parsing.packs import LanguagePack
from semindex.index.models import Document, FileKey, OutcomeKind

log = structlog.get_logger()


@dataclass(frozen=True, slots=True, eq=False)
class FileJob:
    """One file that needs (re)indexing. Identity, not value, equality."""

    project_id: str
    key: FileKey
    content: bytes
    fingerprint: str
    expected_fingerprint: str | None  # stored fingerprint when enumerated
    observed_seq: int  # ledger write sequence when the stored fingerprint was read
    pack: LanguagePack
    generation: int


@dataclass(frozen=True, slots=True)
class FileOutcome:
    """Completion message for one FileJob."""

    job: FileJob
    kind: OutcomeKind
    documents: int = 0
    error: str | None = None


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0  # tasks holding or waiting for the lock


@dataclass
class KeyLedger:
    """Per-file bookkeeping shared by the orchestrator and the workers.

    Confined to the event loop thread; no locking beyond the per-key
    asyncio locks that order writes. A key's lock lives only while a job
    for it is in flight or a task holds it.
    """

    _generation: int = 0
    _write_seq: int = 0
    _latest: dict[FileKey, FileJob] = field(default_factory=dict)
    _written: dict[FileKey, tuple[int, str]] = field(default_factory=dict)
    _locks: dict[FileKey, _KeyLock] = field(default_factory=dict)

    @property
    def write_seq(self) -> int:
        return self._write_seq

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def in_flight(self, key: FileKey) -> FileJob | None:
        return self._latest.get(key)

    def in_flight_keys(self, worktree_id: str) -> list[FileKey]:
        return [k for k in self._latest if k.worktree_id == worktree_id]

    def new_job(
        self,
        *,
        project_id: str,
        key: FileKey,
        content: bytes,
        fingerprint: str,
        expected_fingerprint: str | None,
        observed_seq: int,
        pack: LanguagePack,
    ) -> FileJob:
        """Create the newest job for ``key``; any older in-flight job is superseded."""
        self._generation += 1
        job = FileJob(
            project_id=project_id,
            key=key,
            content=content,
            fingerprint=fingerprint,
            expected_fingerprint=expected_fingerprint,
            observed_seq=observed_seq,
            pack=pack,
            generation=self._generation,
        )
        self._latest[key] = job
        return job

    def is_current(self, job: FileJob) -> bool:
        return self._latest.get(job.key) is job

    def cancel(self, key: FileKey) -> None:
        """Forget the in-flight job for a deleted file so it never writes."""
        self._latest.pop(key, None)
        self._prune(key)

    @contextlib.asynccontextmanager
    async def hold(self, key: FileKey) -> AsyncIterator[None]:
        """Hold the write lock of ``key``."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            self._prune(key)

    def _prune(self, key: FileKey) -> None:
        entry = self._locks.get(key)
        if entry is not None and entry.holders == 0 and key not in self._latest:
            del self._locks[key]

    def expected_for(self, job: FileJob) -> str | None:
        """Fingerprint the stored record must still have for ``job`` to write.

        If this process wrote the key after the job's enumeration read the
        database, that write is the new baseline.
        """
        written = self.written_after(job.key, job.observed_seq)
        return written if written is not None else job.expected_fingerprint

    def written_after(self, key: FileKey, seq: int) -> str | None:
        """Fingerprint this process wrote for ``key`` after write sequence ``seq``."""
        written = self._written.get(key)
        return written[1] if written is not None and written[0] > seq else None

    def record_write(self, job: FileJob) -> None:
        self._write_seq += 1
        self._written[job.key] = (self._write_seq, job.fingerprint)

    def finish(self, job: FileJob) -> None:
        """Called by the collector once the job's outcome is processed."""
        if self._latest.get(job.key) is job:
            del self._latest[job.key]
        self._prune(job.key)


class IndexingPipeline:
    """Bounded queue of FileJobs consumed by a fixed pool of worker tasks."""

    def __init__(
        self,
        database: VectorDatabase,
        provider: EmbeddingProvider,
        extractor: DocumentExtractor,
        ledger: KeyLedger,
        config: IndexerConfig | None = None,
    ) -> None:
        self._db = database
        self._provider = provider
        self._extractor = extractor
        self._ledger = ledger
        self._config = config or IndexerConfig()
        self._queue: asyncio.Queue[FileJob] | None = None
        self._outcomes: asyncio.Queue[FileOutcome] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._executor: ThreadPoolExecutor | None = None

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def outcomes(self) -> asyncio.Queue[FileOutcome]:
        if self._outcomes is None:
            raise RuntimeError("IndexingPipeline is not started")
        return self._outcomes

    def start(self) -> None:
        """Create the queues, thread pool and worker tasks (needs a running loop)."""
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self._config.queue_max_size)
        self._outcomes = asyncio.Queue()
        self._executor = ThreadPoolExecutor(
            max_workers=self._config.parse_workers,
            thread_name_prefix="semindex-parse",
        )
        self._workers = [
            asyncio.create_task(self._worker(), name=f"semindex-indexer-{i}")
            for i in range(self._config.max_workers)
        ]
        log.info(
            "indexing_pipeline_started",
            max_workers=self._config.max_workers,
            parse_workers=self._config.parse_workers,
        )

    async def stop(self) -> None:
        """Cancel workers and shut down the thread pool. Queued jobs are dropped."""
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._workers = []
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        log.info("indexing_pipeline_stopped")

    async def submit(self, job: FileJob) -> None:
        """Enqueue a job, waiting for room if the queue is full."""
        if self._queue is None:
            raise RuntimeError("IndexingPipeline is not started")
        await self._queue.put(job)

    async def _worker(self) -> None:
        assert self._queue is not None and self._outcomes is not None
        while True:
            job = await self._queue.get()
            try:
                outcome = await self.process(job)
            except Exception as e:
                log.exception(
                    "index.worker_error",
                    worktree_id=job.key.worktree_id,
                    path=job.key.relative_path,
                )
                error = InternalError.unexpected(
                    f"{type(e).__name__}: {e}",
                    worktree_id=job.key.worktree_id,
                    path=job.key.relative_path,
                )
                outcome = FileOutcome(job, OutcomeKind.ABANDONED, error=str(error))
            finally:
                self._queue.task_done()
            await self._outcomes.put(outcome)

    async def _extract(self, job: FileJob) -> list[Document]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            self._extractor.extract,
            job.key.relative_path,
            job.content,
            job.pack,
        )

    async def _embed(self, documents: list[Document]) -> list[Document]:
        spans = [doc.content for doc in documents]
        embedded: list[Document] = []
        for batch in plan_batches(
            spans, self._config.embed_batch_max_spans, self._config.embed_batch_max_bytes
        ):
            batch_spans = spans[batch.start : batch.stop]
            vectors = await self._provider.embed_batch(batch_spans)
            if len(vectors) != len(batch_spans):
                raise EmbeddingError.count_mismatch(len(batch_spans), len(vectors))
            batch_docs = documents[batch.start : batch.stop]
            for doc, vector in zip(batch_docs, normalize(vectors), strict=True):
                embedded.append(replace(doc, embedding=vector.tolist()))
        return embedded

    async def process(self, job: FileJob) -> FileOutcome:
        """Run one job to completion and describe how it ended."""
        key = job.key
        if not self._ledger.is_current(job):
            return FileOutcome(job, OutcomeKind.SUPERSEDED)

        try:
            documents = await self._extract(job)
        except ParseError as e:
            log.warning(
                "index.file_abandoned",
                path=key.relative_path,
                worktree_id=key.worktree_id,
                error=e.error_name,
                reason=e.message,
            )
            return FileOutcome(job, OutcomeKind.ABANDONED, error=str(e))

        try:
            embedded = await self._embed(documents) if documents else []
        except EmbeddingError as e:
            log.warning(
                "embedding.batch_failed",
                path=key.relative_path,
                worktree_id=key.worktree_id,
                error=e.error_name,
                reason=e.message,
            )
            return FileOutcome(job, OutcomeKind.ABANDONED, error=str(e))

        async with self._ledger.hold(key):
            if not self._ledger.is_current(job):
                return FileOutcome(job, OutcomeKind.SUPERSEDED)
            try:
                written = await asyncio.to_thread(
                    self._db.upsert,
                    key,
                    job.fingerprint,
                    embedded,
                    language=job.pack.name,
                    expected_fingerprint=self._ledger.expected_for(job),
                )
            except StorageError as e:
                log.error(
                    "index.file_write_failed",
                    path=key.relative_path,
                    worktree_id=key.worktree_id,
                    error=e.error_name,
                    reason=e.message,
                )
                return FileOutcome(job, OutcomeKind.ABANDONED, error=str(e))
            if not written:
                return FileOutcome(job, OutcomeKind.SUPERSEDED)
            self._ledger.record_write(job)

        log.debug(
            "index.file_committed",
            path=key.relative_path,
            worktree_id=key.worktree_id,
            documents=len(embedded),
        )
        return FileOutcome(job, OutcomeKind.COMMITTED, documents=len(embedded))
