"""Full-text phrase index."""

# pylint: disable=broad-exception-caught

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from dynamo_denorm.base_engine import BaseEngine
from dynamo_denorm.change_detection import (
    any_changed,
    changed,
    is_create,
    is_delete,
    is_update,
)
from dynamo_denorm.models import (
    Document,
    DocumentChange,
    Query,
    WriteOp,
    get_path,
    has_path,
    join_path,
)
from dynamo_denorm.search.text import character_prefixes, create_index

logger = logging.getLogger(__name__)

INDEX_SHAPES = ("id", "map", "array")
PHRASE_DELIMITER = "__"


class _FullTextIndex(BaseEngine):
    """
    Maintains ``{search}/{collection}/{field}/{phrase}__{docId}`` documents.

    Each phrase document holds the foreign key value(s) of its source
    document and, for the ``map`` and ``array`` shapes, every character
    prefix of the phrase under ``_terms``.
    """

    def full_text_index(
        self,
        change: DocumentChange,
        field: str,
        foreign_key: str | Sequence[str] = "id",
        index_shape: str = "id",
        chunk_word_count: int = 6,
        search_collection: Optional[str] = None,
    ) -> str:
        """
        Keep the phrase index of ``field`` in step with the document.

        Stale phrase documents (found by the old foreign key) are deleted
        before new ones are written.

        Returns:
            "indexed", "deleted", "skipped" or "duplicate"

        Raises:
            ValueError: If ``index_shape`` is not "id", "map" or "array"
        """
        if index_shape not in INDEX_SHAPES:
            raise ValueError(
                f"index_shape must be one of {', '.join(INDEX_SHAPES)}, "
                f"got {index_shape!r}"
            )
        if self._is_duplicate(change):
            return "duplicate"

        keys = [foreign_key] if isinstance(foreign_key, str) else list(foreign_key)
        index_collection = join_path(
            search_collection or self.config.search_collection,
            change.collection_id,
            field,
        )
        relinked = changed(change, field) or any_changed(change, keys)

        status = "skipped"
        if is_delete(change) or (is_update(change) and relinked):
            self._delete_phrases(
                index_collection,
                self._foreign_keys(change, change.before, keys),
                field,
            )
            status = "deleted"

        if is_create(change) or (is_update(change) and relinked):
            value = get_path(change.after, field)
            if value is None:
                logger.debug("Nothing to index on %s field", field)
                return status
            self._write_phrases(
                change,
                index_collection,
                self._foreign_keys(change, change.after, keys),
                create_index(value, chunk_word_count),
                index_shape,
                field,
            )
            status = "indexed"

        return status

    @staticmethod
    def _foreign_keys(
        change: DocumentChange, doc: Optional[Document], keys: Sequence[str]
    ) -> Dict[str, Any]:
        values = {}
        for key in keys:
            if key == "id" and not has_path(doc, key):
                values[key] = change.doc_id
            else:
                values[key] = get_path(doc, key)
        return values

    def _delete_phrases(
        self, index_collection: str, foreign_keys: Dict[str, Any], field: str
    ) -> None:
        query = Query(index_collection)
        for key, value in foreign_keys.items():
            if value is not None:
                query = query.where(key, "==", value)
        if not query.filters:
            logger.warning(
                "No foreign key value to find old indexes on %s field", field
            )
            return
        try:
            stale = self.store.query(query)
        except Exception:
            logger.exception(
                "Failed to find old indexes", extra={"collection": index_collection}
            )
            self._count("SearchIndexQueryFailed")
            return
        logger.info(
            "Deleting %s index docs on %s field",
            len(stale),
            field,
        )
        self._write_batch([WriteOp.delete(s.path) for s in stale])

    def _write_phrases(
        self,
        change: DocumentChange,
        index_collection: str,
        foreign_keys: Dict[str, Any],
        phrases: Sequence[str],
        index_shape: str,
        field: str,
    ) -> None:
        logger.info("Generating index array on %s field", field)
        operations = []
        for phrase in phrases:
            data: Dict[str, Any] = dict(foreign_keys)
            if index_shape == "map":
                data["_terms"] = {p: True for p in character_prefixes(phrase)}
            elif index_shape == "array":
                data["_terms"] = character_prefixes(phrase)
            path = join_path(
                index_collection, f"{phrase}{PHRASE_DELIMITER}{change.doc_id}"
            )
            operations.append(WriteOp.put(path, data))
        self._write_batch(operations)
        self._count("SearchPhrasesWritten", len(operations))
