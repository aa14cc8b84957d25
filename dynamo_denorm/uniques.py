"""
Unique field index.

Each indexed value owns ``{uniques}/{collection}/{field}/{value}``, holding
the foreign key of the document that claimed it. Clients check availability
with ``is_unique`` before writing.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from dynamo_denorm.base_engine import BaseEngine
from dynamo_denorm.categories import friendly_url
from dynamo_denorm.change_detection import is_create, is_delete, is_update
from dynamo_denorm.models import DocumentChange, WriteOp, get_path, join_path
from dynamo_denorm.shared_exceptions import DynamoDBError

logger = logging.getLogger(__name__)

# Document ids cannot contain the path separator.
SLASH_REPLACEMENT = "___"


def unique_key(value: Any, friendly: bool = False) -> str:
    key = str(value).replace("/", SLASH_REPLACEMENT)
    return friendly_url(key) if friendly else key


class UniqueFieldIndex(BaseEngine):
    """Maintains and queries unique value claims."""

    def unique_field(
        self,
        change: DocumentChange,
        field: str,
        friendly: bool = False,
        new_value: Optional[Any] = None,
        fk_name: str = "docId",
        uniques_collection: Optional[str] = None,
    ) -> str:
        """
        Claim, release or move the unique value of ``field``.

        Args:
            change: The triggering change
            field: Field holding the unique value
            friendly: Store the value as a URL-friendly slug
            new_value: Overrides the value read from the new document
            fk_name: Path parameter (or foreign key name) stored on the claim;
                falls back to the document id
            uniques_collection: Overrides the configured collection

        Returns:
            "created", "deleted", "updated", "skipped", "duplicate" or "failed"
        """
        if self._is_duplicate(change):
            return "duplicate"

        base = join_path(
            uniques_collection or self.config.uniques_collection,
            change.collection_id,
            field,
        )
        fk_value = change.params.get(fk_name) or change.doc_id

        raw_new = new_value if new_value is not None else get_path(change.after, field)
        raw_old = get_path(change.before, field)
        new_key = unique_key(raw_new, friendly) if raw_new is not None else ""
        old_key = unique_key(raw_old, friendly) if raw_old is not None else ""

        operations: list[WriteOp] = []
        status = "skipped"
        if is_create(change) and new_key:
            logger.info("Creating unique index on %s", new_key)
            operations = [WriteOp.create(join_path(base, new_key), {fk_name: fk_value})]
            status = "created"
        elif is_delete(change) and old_key:
            logger.info("Deleting unique index on %s", old_key)
            operations = [WriteOp.delete(join_path(base, old_key))]
            status = "deleted"
        elif is_update(change) and new_key != old_key:
            logger.info("Changing unique index from %s to %s", old_key, new_key)
            if old_key:
                operations.append(WriteOp.delete(join_path(base, old_key)))
            if new_key:
                operations.append(
                    WriteOp.create(join_path(base, new_key), {fk_name: fk_value})
                )
            status = "updated"

        if not operations:
            return "skipped"
        try:
            self.store.commit(operations)
        except DynamoDBError:
            logger.exception(
                "Failed to update unique index",
                extra={"field": field, "old": old_key, "new": new_key},
            )
            self._count("UniqueIndexFailed")
            return "failed"
        return status

    def is_unique(
        self,
        collection: str,
        field: str,
        value: Any,
        friendly: bool = False,
        uniques_collection: Optional[str] = None,
    ) -> bool:
        """Whether ``value`` is still unclaimed for ``collection.field``."""
        path = join_path(
            uniques_collection or self.config.uniques_collection,
            collection,
            field,
            unique_key(value, friendly),
        )
        return not self.store.exists(path)


__all__ = ["SLASH_REPLACEMENT", "UniqueFieldIndex", "unique_key"]
