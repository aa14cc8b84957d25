"""
Routing of document changes to handlers by path pattern.

Patterns are document paths with ``{name}`` placeholders, such as
``posts/{docId}`` or ``posts/{postId}/comments/{docId}``. Matched
placeholders become the change's ``params``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Mapping, Optional

from dynamo_denorm.config import DenormConfig, get_config
from dynamo_denorm.events import EventDeduplicator, RecentEventCache
from dynamo_denorm.models import DocumentChange, LambdaResponse
from dynamo_denorm.parsing.parsers import parse_stream_record
from dynamo_denorm.store import DocumentStore
from dynamo_denorm.stream_types import DynamoDBStreamEvent, MetricsRecorder

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[DocumentChange, EventDeduplicator], object]

_PLACEHOLDER = re.compile(r"^\{(\w+)\}$")


def compile_pattern(pattern: str) -> re.Pattern[str]:
    parts = []
    for segment in pattern.strip("/").split("/"):
        placeholder = _PLACEHOLDER.match(segment)
        if placeholder:
            parts.append(f"(?P<{placeholder.group(1)}>[^/]+)")
        else:
            parts.append(re.escape(segment))
    return re.compile("^" + "/".join(parts) + "$")


class StreamRouter:
    """Maps document path patterns to change handlers."""

    def __init__(self) -> None:
        self._routes: list[tuple[str, re.Pattern[str], ChangeHandler]] = []

    def add(self, pattern: str, handler: ChangeHandler) -> None:
        self._routes.append((pattern, compile_pattern(pattern), handler))

    def route(self, pattern: str) -> Callable[[ChangeHandler], ChangeHandler]:
        """Decorator form of ``add``."""

        def decorator(handler: ChangeHandler) -> ChangeHandler:
            self.add(pattern, handler)
            return handler

        return decorator

    def match(
        self, path: str
    ) -> list[tuple[ChangeHandler, Mapping[str, str]]]:
        """Every handler whose pattern matches ``path``, with its params."""
        matches = []
        for _, regex, handler in self._routes:
            found = regex.match(path)
            if found:
                matches.append((handler, found.groupdict()))
        return matches


def process_stream_event(
    event: DynamoDBStreamEvent,
    router: StreamRouter,
    store: Optional[DocumentStore] = None,
    config: Optional[DenormConfig] = None,
    metrics: Optional[MetricsRecorder] = None,
) -> LambdaResponse:
    """
    Dispatch every record of a stream event to its matching handlers.

    Handlers receive the change (with path params filled in) and a
    deduplicator whose recent-event cache lives only for this call.
    """
    config = config or get_config()
    store = store or DocumentStore(config=config)
    deduplicator = EventDeduplicator(
        store,
        config=config,
        cache=RecentEventCache(config.recent_event_cache_size),
        metrics=metrics,
    )

    records = event.get("Records", [])
    processed = 0
    skipped = 0
    for record in records:
        change = parse_stream_record(record, metrics)
        if change is None:
            skipped += 1
            continue
        handlers = router.match(change.path)
        if not handlers:
            logger.debug("No handler for %s", change.path)
            skipped += 1
            continue
        for handler, params in handlers:
            handler(replace(change, params=dict(params)), deduplicator)
        processed += 1

    logger.info(
        "Processed stream event",
        extra={"processed": processed, "skipped": skipped, "records": len(records)},
    )
    if metrics:
        metrics.count("StreamRecordsProcessed", processed)
        metrics.count("StreamRecordsSkipped", skipped)
    return LambdaResponse(
        status_code=200, processed_records=processed, skipped_records=skipped
    )
