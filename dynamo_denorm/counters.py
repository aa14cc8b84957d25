"""
Counter maintenance.

Counters are integer fields on counter documents. An existing counter is
moved with an atomic ``ADD``; a missing one is initialized from a full
recount of the matching documents, which self-heals any drift.
"""

# pylint: disable=broad-exception-caught

from __future__ import annotations

import logging
import operator as op
from typing import Any, Callable, Optional

from dynamo_denorm.base_engine import BaseEngine
from dynamo_denorm.change_detection import (
    changed,
    did_shift,
    is_create,
)
from dynamo_denorm.models import (
    DocumentChange,
    FieldPath,
    Query,
    field_segments,
    get_path,
    join_path,
)

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
DUPLICATE = "duplicate"
INCREMENTED = "incremented"
RECOUNTED = "recounted"
DELETED = "deleted"
FAILED = "failed"

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "<": op.lt,
    "<=": op.le,
    "==": op.eq,
    "!=": op.ne,
    ">=": op.ge,
    ">": op.gt,
}


def evaluate_condition(left: Any, operator: str, right: Any) -> bool:
    """
    Evaluate ``left operator right``.

    Missing values and values of incomparable types evaluate to False.

    Raises:
        ValueError: If ``operator`` is not a comparison operator
    """
    try:
        compare = _COMPARISONS[operator]
    except KeyError as e:
        raise ValueError(f"Unsupported comparison operator: {operator}") from e
    if left is None or right is None:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    try:
        return bool(compare(left, right))
    except TypeError:
        return False


class CounterEngine(BaseEngine):
    """Keeps counter documents in step with document changes."""

    def update_collection_counter(
        self, change: DocumentChange, counters_collection: Optional[str] = None
    ) -> str:
        """
        Count the documents of the changed document's collection.

        The counter lives at ``{counters}/{collection_path}`` in the
        ``count`` field and only moves on create or delete.
        """
        if self._is_duplicate(change):
            return DUPLICATE
        if not did_shift(change):
            return SKIPPED

        counter_path = join_path(
            counters_collection or self.config.counters_collection,
            change.collection_path,
        )
        logger.info("Updating %s counter", change.collection_path)
        return self._apply(
            counter_path,
            "count",
            1 if is_create(change) else -1,
            Query(change.collection_path),
        )

    def update_query_counter(
        self,
        change: DocumentChange,
        query: Query,
        counter_path: str,
        counter_field: str = "",
        delete_on_zero: bool = False,
        forced_delta: int = 0,
        require_shift: bool = True,
    ) -> str:
        """
        Count the documents matching ``query`` on a counter document.

        Args:
            change: The triggering change
            query: Query whose size is counted
            counter_path: Document holding the counter
            counter_field: Counter field, defaults to ``{collectionId}Count``
            delete_on_zero: Delete the counter document instead of leaving
                a zero count
            forced_delta: Overrides the create/delete derived +1/-1
            require_shift: Only act on creates and deletes
        """
        if self._is_duplicate(change):
            return DUPLICATE
        shifted = did_shift(change)
        if require_shift and not shifted:
            return SKIPPED
        if not forced_delta and not shifted:
            # An update without a forced delta has no direction.
            return SKIPPED

        field_name = counter_field or f"{change.collection_id}Count"
        delta = forced_delta or (1 if is_create(change) else -1)
        logger.info("Updating %s counter on %s", field_name, counter_path)
        return self._apply(
            counter_path, field_name, delta, query, delete_on_zero=delete_on_zero
        )

    def update_condition_counter(
        self,
        change: DocumentChange,
        field: FieldPath,
        operator: str,
        value: Any,
        counter_field: str = "",
        counters_collection: Optional[str] = None,
        delete_on_zero: bool = False,
    ) -> str:
        """
        Count the documents for which ``field operator value`` holds.

        Only acts when the predicate result flips between the before and
        after snapshots; a changed value that keeps the same result is a
        no-op. The counter lives at ``{counters}/{collection_path}``, the
        same partition its recount covers.
        """
        if self._is_duplicate(change):
            return DUPLICATE

        true_before = evaluate_condition(
            get_path(change.before, field), operator, value
        )
        true_after = evaluate_condition(
            get_path(change.after, field), operator, value
        )
        if not changed(change, field) or true_before == true_after:
            return SKIPPED

        field_label = ".".join(field_segments(field))
        field_name = counter_field or f"{field_label}Count"
        counter_path = join_path(
            counters_collection or self.config.counters_collection,
            change.collection_path,
        )
        logger.info("Updating %s counter on %s", field_name, counter_path)
        return self._apply(
            counter_path,
            field_name,
            1 if true_after else -1,
            Query(change.collection_path).where(field, operator, value),
            delete_on_zero=delete_on_zero,
        )

    def _apply(
        self,
        counter_path: str,
        field_name: str,
        delta: int,
        recount_query: Query,
        delete_on_zero: bool = False,
    ) -> str:
        try:
            snapshot = self.store.get(counter_path)
            current = snapshot.get(field_name) if snapshot else None

            if isinstance(current, (int, float)) and not isinstance(current, bool):
                if delete_on_zero and delta < 0 and current + delta == 0:
                    self.store.delete(counter_path)
                    self._count("CounterDeleted")
                    return DELETED
                self.store.increment(counter_path, field_name, delta)
                self._count("CounterIncremented")
                return INCREMENTED

            total = self.store.count(recount_query)
            if self.store.initialize_field(counter_path, field_name, total):
                logger.info(
                    "Recounted %s on %s",
                    field_name,
                    counter_path,
                    extra={"count": total},
                )
            self._count("CounterRecounted")
            return RECOUNTED
        except Exception:
            logger.exception(
                "Failed to update counter",
                extra={"path": counter_path, "field": field_name},
            )
            self._count("CounterUpdateFailed")
            return FAILED


__all__ = [
    "CounterEngine",
    "DELETED",
    "DUPLICATE",
    "FAILED",
    "INCREMENTED",
    "RECOUNTED",
    "SKIPPED",
    "evaluate_condition",
]
