"""
Join and aggregate maintenance.

Denormalizes fields between related documents: pushing parent fields into
children, pulling parent fields into a new child, and keeping a bounded
"latest N" snapshot of a query on a target document.
"""

# pylint: disable=broad-exception-caught

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from dynamo_denorm.base_engine import BaseEngine
from dynamo_denorm.change_detection import (
    any_changed,
    had_before,
    is_create,
    is_write,
)
from dynamo_denorm.models import (
    PATH_SEPARATOR,
    DocumentChange,
    FieldPath,
    Query,
    WriteOp,
    delete_path,
    field_segments,
    get_path,
    join_path,
    set_path,
)

logger = logging.getLogger(__name__)


def _label(field: FieldPath) -> str:
    return ".".join(field_segments(field))


class JoinEngine(BaseEngine):
    """Propagates joined fields and maintains aggregate snapshots."""

    def propagate_join_fields(
        self,
        change: DocumentChange,
        related_query: Query,
        fields: Sequence[FieldPath],
        target_field: FieldPath,
        delete_on_source_delete: bool = False,
    ) -> str:
        """
        Copy ``fields`` from the changed document into every related one.

        The values land under ``target_field`` (dotted paths nest into a
        sub-map) and are merged, so other keys already stored there are
        kept. When the source is deleted the joined field is removed only if
        ``delete_on_source_delete`` is set.

        Returns:
            "propagated", "cleared", "skipped", "duplicate" or "failed"
        """
        if self._is_duplicate(change):
            return "duplicate"
        if not any_changed(change, fields):
            return "skipped"
        if not is_write(change) and not delete_on_source_delete:
            return "skipped"

        try:
            related = self.store.query(related_query)
        except Exception:
            logger.exception(
                "Failed to query join documents",
                extra={"collection": related_query.collection},
            )
            self._count("JoinQueryFailed")
            return "failed"

        target = field_segments(target_field)
        if is_write(change):
            joined = {_label(f): get_path(change.after, f) for f in fields}
            operations = []
            for snapshot in related:
                data = snapshot.to_dict()
                for name, value in joined.items():
                    set_path(data, target + (name,), value)
                operations.append(
                    WriteOp.merge(snapshot.path, {target[0]: data[target[0]]})
                )
            logger.info(
                "Updating join data on %s documents",
                len(operations),
                extra={"source": change.path, "field": _label(target_field)},
            )
            self._write_batch(operations)
            return "propagated"

        logger.info(
            "Removing join data from %s documents",
            len(related),
            extra={"source": change.path, "field": _label(target_field)},
        )
        self._write_batch([WriteOp.remove(s.path, (target,)) for s in related])
        return "cleared"

    def get_join_data(
        self,
        change: DocumentChange,
        target_path: str,
        fields: Sequence[FieldPath],
        store_as: str = "",
        always: bool = False,
    ) -> Dict[str, Any]:
        """
        Read ``fields`` from the target document for storing on the change.

        Only reads on create unless ``always`` is set. ``store_as`` defaults
        to the target's root collection name.
        """
        if not (is_create(change) or always):
            return {}

        store_as = store_as or join_path(target_path).split(PATH_SEPARATOR)[0]
        logger.info("Getting join data from %s doc", target_path)
        target = self.store.get(target_path)
        if target is None:
            logger.warning("Join target %s does not exist", target_path)
            return {}
        return {store_as: {_label(f): target.get(f) for f in fields}}

    def pull_join_fields(
        self,
        change: DocumentChange,
        target_path: str,
        fields: Sequence[FieldPath],
        store_as: str = "",
        always: bool = False,
    ) -> str:
        """Merge join data from the target document into the changed one."""
        if self._is_duplicate(change):
            return "duplicate"
        if not is_write(change):
            return "skipped"
        try:
            data = self.get_join_data(change, target_path, fields, store_as, always)
            if not data:
                return "skipped"
            self.store.merge(change.path, data)
        except Exception:
            logger.exception(
                "Failed to pull join data",
                extra={"path": change.path, "target": target_path},
            )
            self._count("JoinPullFailed")
            return "failed"
        return "pulled"

    def maintain_aggregate_snapshot(
        self,
        change: DocumentChange,
        target_path: str,
        source_query: Query,
        excluded_fields: Sequence[FieldPath] = (),
        aggregate_field: str = "",
        max_items: int = 3,
        always: bool = False,
    ) -> str:
        """
        Store the latest ``max_items`` documents of ``source_query``.

        Each aggregated document carries its ``id`` and omits
        ``excluded_fields``. Updates and deletes of documents outside the
        current snapshot do not requery unless ``always`` is set.

        Returns:
            "aggregated", "skipped", "duplicate" or "failed"
        """
        if self._is_duplicate(change):
            return "duplicate"

        field_name = aggregate_field or f"{change.collection_id}Aggregate"
        try:
            target = self.store.get(target_path)
            current = target.get(field_name) if target else None

            if had_before(change) and not always and isinstance(current, list):
                ids = {item.get("id") for item in current if isinstance(item, dict)}
                if change.doc_id not in ids:
                    return "skipped"

            items = []
            for snapshot in self.store.query(source_query.take(max_items)):
                data = snapshot.to_dict()
                data["id"] = snapshot.id
                for excluded in excluded_fields:
                    delete_path(data, excluded)
                items.append(data)

            logger.info(
                "Aggregating %s data on %s", change.collection_id, target_path
            )
            self.store.merge(target_path, {field_name: items})
        except Exception:
            logger.exception(
                "Failed to aggregate documents",
                extra={"target": target_path, "field": field_name},
            )
            self._count("AggregateFailed")
            return "failed"
        return "aggregated"


__all__ = ["JoinEngine"]
