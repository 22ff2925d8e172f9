"""Partition spans into embedding batches.

A batch closes when adding the next span would exceed either the span
count or the UTF-8 byte budget. A span larger than the byte budget on its
own still goes out, alone, rather than being dropped.
"""

from __future__ import annotations

from collections.abc import Sequence


def plan_batches(spans: Sequence[str], max_spans: int, max_bytes: int) -> list[range]:
    """Return index ranges into ``spans``, in order, covering every span once."""
    if max_spans <= 0 or max_bytes <= 0:
        raise ValueError("max_spans and max_bytes must be positive")

    batches: list[range] = []
    start = 0
    batch_bytes = 0
    for i, span in enumerate(spans):
        size = len(span.encode("utf-8"))
        count = i - start
        if count and (count >= max_spans or batch_bytes + size > max_bytes):
            batches.append(range(start, i))
            start = i
            batch_bytes = 0
        batch_bytes += size
    if start < len(spans):
        batches.append(range(start, len(spans)))
    return batches
