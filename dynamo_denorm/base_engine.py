"""
Base class shared by the maintenance engines.

Holds the collaborators every engine needs (store, deduplicator, config and
metrics) plus the duplicate-event guard and batched writes.
"""

from __future__ import annotations

from typing import Optional, Sequence

from dynamo_denorm.batch import chunked_batch_write
from dynamo_denorm.config import DenormConfig, get_config
from dynamo_denorm.events import EventDeduplicator
from dynamo_denorm.models import DocumentChange, WriteOp
from dynamo_denorm.store import DocumentStore
from dynamo_denorm.stream_types import MetricsRecorder


class BaseEngine:  # pylint: disable=too-few-public-methods
    """Common collaborators and helpers for change-driven engines."""

    def __init__(
        self,
        store: DocumentStore,
        deduplicator: Optional[EventDeduplicator] = None,
        config: Optional[DenormConfig] = None,
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.store = store
        self.deduplicator = deduplicator
        self.config = config or get_config()
        self.metrics = metrics

    def _is_duplicate(self, change: DocumentChange) -> bool:
        """True when the deduplicator says this event was already handled."""
        if self.deduplicator is None:
            return False
        return self.deduplicator.has_been_processed(change.event_id)

    def _write_batch(self, operations: Sequence[WriteOp]) -> None:
        chunked_batch_write(
            self.store,
            operations,
            chunk_size=self.config.chunk_size,
            max_workers=self.config.max_workers,
            metrics=self.metrics,
        )

    def _count(self, name: str, value: int = 1) -> None:
        if self.metrics:
            self.metrics.count(name, value, {"engine": type(self).__name__})


__all__ = ["BaseEngine"]
