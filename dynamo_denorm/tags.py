"""Tag counters: one ``{tags}/{tag}`` document per tag with a ``count``."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional

from dynamo_denorm.change_detection import is_update
from dynamo_denorm.counters import CounterEngine
from dynamo_denorm.models import DocumentChange, Query, get_path, join_path

logger = logging.getLogger(__name__)

_HYPHENS = re.compile(r"-+")
_NON_WORD = re.compile(r"[^\w ]+")


def normalize_tag(tag: str) -> str:
    return _NON_WORD.sub("", _HYPHENS.sub(" ", str(tag).lower())).strip()


def changed_tags(before: Iterable[Any], after: Iterable[Any]) -> list[Any]:
    """Tags present on exactly one side, before-side tags first."""
    old = list(before or [])
    new = list(after or [])
    return [t for t in old if t not in new] + [t for t in new if t not in old]


def _tag_map(value: Any) -> dict[str, Any]:
    """Normalized tag name to the first raw tag that produced it."""
    tags: dict[str, Any] = {}
    if isinstance(value, (list, tuple, set)):
        for tag in value:
            name = normalize_tag(tag)
            if name:
                tags.setdefault(name, tag)
    return tags


class TagCounter(CounterEngine):
    """Counts documents per tag."""

    def tag_index(
        self,
        change: DocumentChange,
        field: str = "tags",
        tags_collection: Optional[str] = None,
    ) -> dict[str, str]:
        """
        Move the counter of every tag that was added or removed.

        Returns:
            Counter status per normalized tag
        """
        before = _tag_map(get_path(change.before, field))
        after = _tag_map(get_path(change.after, field))
        if is_update(change):
            names = changed_tags(before, after)
        else:
            names = list(after if change.after is not None else before)

        collection = tags_collection or self.config.tags_collection
        statuses: dict[str, str] = {}
        for name in names:
            added = name in after
            raw = after[name] if added else before[name]
            statuses[name] = self.update_query_counter(
                change,
                Query(change.collection_path).where(field, "array-contains", raw),
                join_path(collection, name),
                "count",
                delete_on_zero=True,
                forced_delta=1 if added else -1,
                require_shift=False,
            )
        if statuses:
            logger.info("Updated %s tag counters", len(statuses))
        return statuses


__all__ = ["TagCounter", "changed_tags", "normalize_tag"]
