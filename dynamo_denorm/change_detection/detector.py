"""
Change classification over before/after document pairs.

Every function here is pure: it only looks at the two snapshots carried by
a DocumentChange.
"""

import json
from typing import Any, Dict, Iterable, Sequence

from dynamo_denorm.models import (
    DocumentChange,
    FieldChange,
    FieldPath,
    get_path,
    has_path,
)


def is_create(change: DocumentChange) -> bool:
    return change.before is None and change.after is not None


def is_update(change: DocumentChange) -> bool:
    return change.before is not None and change.after is not None


def is_delete(change: DocumentChange) -> bool:
    return change.before is not None and change.after is None


def is_write(change: DocumentChange) -> bool:
    """Create or update: the document exists afterwards."""
    return change.after is not None


def did_shift(change: DocumentChange) -> bool:
    """Create or delete: the document's existence changed."""
    return is_create(change) or is_delete(change)


def had_before(change: DocumentChange) -> bool:
    """Update or delete: the document existed beforehand."""
    return change.before is not None


def value_of(change: DocumentChange, field: FieldPath) -> Any:
    """The current value of a field, or its last known value after a delete."""
    if change.after is not None:
        return get_path(change.after, field)
    return get_path(change.before, field)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def changed(change: DocumentChange, field: FieldPath) -> bool:
    """
    Whether a field differs between the two snapshots.

    A field present on one side only counts as changed; a field absent on
    both sides does not. Values are compared structurally, so any
    difference inside lists or maps is a change.
    """
    in_before = has_path(change.before, field)
    in_after = has_path(change.after, field)
    if not in_before and not in_after:
        return False
    if in_before != in_after:
        return True
    return _canonical(get_path(change.before, field)) != _canonical(
        get_path(change.after, field)
    )


def any_changed(change: DocumentChange, fields: Iterable[FieldPath]) -> bool:
    return any(changed(change, field) for field in fields)


def foreign_key_changed(
    change: DocumentChange, keys: FieldPath | Sequence[str]
) -> bool:
    """Whether any foreign key moved the document to a different parent."""
    if isinstance(keys, (str, tuple)):
        return changed(change, keys)
    return any_changed(change, keys)


def get_field_changes(
    change: DocumentChange, fields: Iterable[FieldPath]
) -> Dict[str, FieldChange]:
    """Identify which of ``fields`` changed, with their old and new values."""
    changes: Dict[str, FieldChange] = {}

    for field in fields:
        if changed(change, field):
            name = field if isinstance(field, str) else ".".join(field)
            changes[name] = FieldChange(
                old=get_path(change.before, field),
                new=get_path(change.after, field),
            )

    return changes


__all__ = [
    "any_changed",
    "changed",
    "did_shift",
    "foreign_key_changed",
    "get_field_changes",
    "had_before",
    "is_create",
    "is_delete",
    "is_update",
    "is_write",
    "value_of",
]
