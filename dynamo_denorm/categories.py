"""
Hierarchical category utilities and counters.

Categories are slash-separated paths (``a/b/c``). Documents carry their
category path in one field and every ancestor path in an array field, so a
category's document count is an ``array-contains`` query.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from dynamo_denorm.change_detection import did_shift, value_of
from dynamo_denorm.counters import SKIPPED, CounterEngine
from dynamo_denorm.models import DocumentChange, DocumentSnapshot, Query

logger = logging.getLogger(__name__)

_EDGE_JUNK = re.compile(r"^[^a-z\d]*|[^a-z\d]*$")
_NON_WORD = re.compile(r"[^\w ]+")
_SPACES = re.compile(r" +")


def category_array(category: str) -> list[str]:
    """Every ancestor path of a category, deepest first.

    >>> category_array("a/b/c")
    ['a/b/c', 'a/b', 'a']
    """
    paths: list[str] = []
    current = (category or "").strip("/")
    while current:
        paths.append(current)
        current = "/".join(current.split("/")[:-1])
    return paths


def friendly_url(text: str) -> str:
    """Lowercase, hyphen-separated slug of ``text``."""
    slug = _EDGE_JUNK.sub("", text.strip().lower())
    slug = _NON_WORD.sub("", slug.replace("-", " "))
    return _SPACES.sub("-", slug)


class CategoryCounter(CounterEngine):
    """Document and sub-category counts on category documents."""

    def category_doc_counter(
        self,
        change: DocumentChange,
        counter_field: str = "",
        path_field: str = "catPath",
        array_field: str = "catArray",
        field: str = "category",
        categories_collection: str = "categories",
    ) -> dict[str, str]:
        """
        Count documents in their category and every ancestor category.

        Returns:
            Counter status per category path
        """
        if not did_shift(change):
            return {}
        category = value_of(change, field)
        if not category:
            logger.debug("No %s on %s, nothing to count", field, change.path)
            return {}

        statuses: dict[str, str] = {}
        for path in category_array(str(category)):
            category_doc = self._find_category(categories_collection, path_field, path)
            if category_doc is None:
                statuses[path] = SKIPPED
                continue
            statuses[path] = self.update_query_counter(
                change,
                Query(change.collection_path).where(array_field, "array-contains", path),
                category_doc.path,
                counter_field,
            )
        return statuses

    def sub_category_counter(
        self,
        change: DocumentChange,
        counter_field: str = "",
        parent_field: str = "parent",
        path_field: str = "catPath",
    ) -> str:
        """Count the direct sub-categories of the changed category's parent."""
        parent = value_of(change, parent_field)
        if not parent:
            return SKIPPED
        parent_doc = self._find_category(change.collection_path, path_field, parent)
        if parent_doc is None:
            return SKIPPED
        logger.info("Updating subcategory count on %s doc", parent)
        return self.update_query_counter(
            change,
            Query(change.collection_path).where(parent_field, "==", parent),
            parent_doc.path,
            counter_field,
        )

    def _find_category(
        self, collection: str, path_field: str, path: str
    ) -> Optional[DocumentSnapshot]:
        matches = self.store.query(Query(collection).where(path_field, "==", path))
        if not matches:
            logger.warning(
                "No category document for %s",
                path,
                extra={"collection": collection, "field": path_field},
            )
            return None
        return matches[0]


__all__ = ["CategoryCounter", "category_array", "friendly_url"]
