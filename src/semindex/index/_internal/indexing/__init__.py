"""Indexing pipeline: work queue, workers and per-file ledger."""

from semindex.index._internal.indexing.pipeline import (
    FileJob,
    FileOutcome,
    IndexingPipeline,
    KeyLedger,
)

__all__ = ["FileJob", "FileOutcome", "IndexingPipeline", "KeyLedger"]
