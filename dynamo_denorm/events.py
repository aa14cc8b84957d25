"""
Event deduplication for at-least-once stream delivery.

The store-backed ``_events`` records are the source of truth. The
``RecentEventCache`` only remembers ids claimed by the current invocation so
that several engines handling the same change can all proceed.
"""

# pylint: disable=broad-exception-caught

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Optional

from dynamo_denorm.batch import bulk_delete
from dynamo_denorm.config import DenormConfig, get_config
from dynamo_denorm.models import SERVER_TIMESTAMP, Query, join_path
from dynamo_denorm.shared_exceptions import DynamoDBError, MissingIdentifierError
from dynamo_denorm.store import DocumentStore, format_timestamp
from dynamo_denorm.stream_types import MetricsRecorder

logger = logging.getLogger(__name__)


class RecentEventCache:
    """Bounded LRU of event ids claimed during one invocation."""

    def __init__(self, maxsize: int = 1024):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, event_id: object) -> bool:
        if event_id not in self._ids:
            return False
        self._ids.move_to_end(event_id)  # type: ignore[arg-type]
        return True

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, event_id: str) -> None:
        self._ids[event_id] = None
        self._ids.move_to_end(event_id)
        while len(self._ids) > self.maxsize:
            self._ids.popitem(last=False)

    def clear(self) -> None:
        self._ids.clear()


class EventDeduplicator:
    """Decides whether an event id has already been processed."""

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[DenormConfig] = None,
        cache: Optional[RecentEventCache] = None,
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.cache = (
            cache
            if cache is not None
            else RecentEventCache(self.config.recent_event_cache_size)
        )
        self.metrics = metrics

    def has_been_processed(self, event_id: str) -> bool:
        """
        Check and claim an event id.

        Returns:
            True if an earlier invocation already processed this event and
            the caller should skip all work; False otherwise.

        Raises:
            MissingIdentifierError: If ``event_id`` is empty
        """
        if not event_id:
            raise MissingIdentifierError("An event id is required")

        if event_id in self.cache:
            return False

        event_path = join_path(self.config.events_collection, event_id)
        try:
            seen = self.store.exists(event_path)
        except DynamoDBError:
            logger.exception(
                "Failed to look up event record", extra={"event_id": event_id}
            )
            if self.metrics:
                self.metrics.count("EventLookupFailed", 1)
            self.cache.add(event_id)
            return False

        if seen:
            logger.info("Duplicate function run: %s", event_id)
            if self.metrics:
                self.metrics.count("DuplicateEventSkipped", 1)
            return True

        # A failed write only weakens delivery to at-least-once.
        try:
            self.store.set(event_path, {"completed": SERVER_TIMESTAMP})
        except Exception:
            logger.exception(
                "Failed to record event", extra={"event_id": event_id}
            )
            if self.metrics:
                self.metrics.count("EventRecordFailed", 1)

        self.cache.add(event_id)
        self.cleanup_expired()
        return False

    def cleanup_expired(self) -> int:
        """
        Delete event records older than the retention window.

        Returns:
            Number of expired records found (and scheduled for deletion)
        """
        cutoff = datetime.now(timezone.utc) - timedelta(
            hours=self.config.event_retention_hours
        )
        query = Query(self.config.events_collection).where(
            "completed", "<=", format_timestamp(cutoff)
        )
        try:
            expired = self.store.query(query)
        except Exception:
            logger.exception("Failed to query expired events")
            return 0

        if expired:
            logger.info("Deleting old events", extra={"count": len(expired)})
            bulk_delete(
                self.store,
                [snapshot.path for snapshot in expired],
                chunk_size=self.config.chunk_size,
                metrics=self.metrics,
            )
        return len(expired)


__all__ = ["EventDeduplicator", "RecentEventCache"]
