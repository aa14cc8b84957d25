"""
Chunked batch writes.

Large fan-out writes are split into groups that each commit atomically.
Groups are independent: a failed group is logged and the rest still run.
"""

# pylint: disable=broad-exception-caught

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterator, Mapping, Optional, Sequence, TypeVar

from dynamo_denorm.models import FieldPath, WriteOp, join_path
from dynamo_denorm.store import MAX_TRANSACTION_ITEMS, DocumentStore
from dynamo_denorm.stream_types import MetricsRecorder

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 100


def chunk(items: Sequence[T], size: int = DEFAULT_CHUNK_SIZE) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


def _collapse(operations: Sequence[WriteOp]) -> list[WriteOp]:
    """Keep only the last operation per document, in first-seen order."""
    latest: dict[str, WriteOp] = {}
    for op in operations:
        latest[join_path(op.path)] = op
    return list(latest.values())


def chunked_batch_write(
    store: DocumentStore,
    operations: Sequence[WriteOp],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: int = 1,
    metrics: Optional[MetricsRecorder] = None,
) -> None:
    """
    Commit ``operations`` in atomic groups of at most ``chunk_size``.

    There is no atomicity across groups and no overall success signal:
    each failed group is logged and counted, remaining groups continue.

    Args:
        store: Document store to write to
        operations: Writes to apply
        chunk_size: Operations per atomic group (1..100)
        max_workers: Groups committed concurrently; groups touch disjoint
            documents so order between them does not matter
        metrics: Optional metrics recorder
    """
    if not 1 <= chunk_size <= MAX_TRANSACTION_ITEMS:
        raise ValueError(
            f"chunk_size must be between 1 and {MAX_TRANSACTION_ITEMS}"
        )
    # A transaction may touch each document once; the last write wins.
    groups = list(chunk(_collapse(operations), chunk_size))
    if not groups:
        return

    def commit_group(index: int, group: list[WriteOp]) -> None:
        try:
            store.commit(group)
            logger.debug("Committed batch %s (%s operations)", index, len(group))
            if metrics:
                metrics.count("BatchWriteCommitted", len(group))
        except Exception:
            logger.exception(
                "Failed to commit batch %s of %s operations", index, len(group)
            )
            if metrics:
                metrics.count("BatchWriteFailed", len(group))

    if max_workers > 1 and len(groups) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for index, group in enumerate(groups):
                executor.submit(commit_group, index, group)
    else:
        for index, group in enumerate(groups):
            commit_group(index, group)

    logger.info(
        "Finished batch write",
        extra={"operations": len(operations), "batches": len(groups)},
    )


def bulk_update(
    store: DocumentStore,
    paths: Sequence[str],
    data: Mapping[str, Any],
    **kwargs: Any,
) -> None:
    """Merge the same top-level fields into every document."""
    chunked_batch_write(store, [WriteOp.merge(p, data) for p in paths], **kwargs)


def bulk_delete(store: DocumentStore, paths: Sequence[str], **kwargs: Any) -> None:
    chunked_batch_write(store, [WriteOp.delete(p) for p in paths], **kwargs)


def bulk_remove_fields(
    store: DocumentStore,
    paths: Sequence[str],
    fields: Sequence[FieldPath],
    **kwargs: Any,
) -> None:
    """Remove the given (possibly nested) fields from every document."""
    chunked_batch_write(
        store, [WriteOp.remove(p, tuple(fields)) for p in paths], **kwargs
    )


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "bulk_delete",
    "bulk_remove_fields",
    "bulk_update",
    "chunk",
    "chunked_batch_write",
]
