"""Before/after change classification for document changes."""

from dynamo_denorm.change_detection.detector import (
    any_changed,
    changed,
    did_shift,
    foreign_key_changed,
    get_field_changes,
    had_before,
    is_create,
    is_delete,
    is_update,
    is_write,
    value_of,
)

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
