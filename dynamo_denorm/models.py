"""
Data models for document changes, store operations and search results.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from dynamo_denorm.shared_exceptions import MissingIdentifierError

Document = dict[str, Any]
FieldPath = str | tuple[str, ...]

PATH_SEPARATOR = "/"

OPERATORS = frozenset(
    {"==", "!=", "<", "<=", ">", ">=", "array-contains", "in", "exists"}
)


class _ServerTimestamp:  # pylint: disable=too-few-public-methods
    """Placeholder resolved to the current UTC time when written."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


# =============================================================================
# Paths and field access
# =============================================================================


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into its collection path and document id."""
    segments = [s for s in (path or "").split(PATH_SEPARATOR) if s]
    if len(segments) < 2:
        raise MissingIdentifierError(
            f"'{path}' is not a document path (collection/docId)"
        )
    return PATH_SEPARATOR.join(segments[:-1]), segments[-1]


def join_path(*segments: str) -> str:
    """Join path segments, ignoring empty ones."""
    parts: list[str] = []
    for segment in segments:
        parts.extend(s for s in str(segment).split(PATH_SEPARATOR) if s)
    return PATH_SEPARATOR.join(parts)


def field_segments(field_path: FieldPath) -> tuple[str, ...]:
    """Dotted strings are nested paths; tuples are taken literally."""
    if isinstance(field_path, tuple):
        return field_path
    return tuple(field_path.split("."))


_MISSING = object()


def get_path(
    doc: Optional[Mapping[str, Any]], field_path: FieldPath, default: Any = None
) -> Any:
    """Return the value at a (possibly nested) field path."""
    value = _lookup(doc, field_path)
    return default if value is _MISSING else value


def has_path(doc: Optional[Mapping[str, Any]], field_path: FieldPath) -> bool:
    return _lookup(doc, field_path) is not _MISSING


def _lookup(doc: Optional[Mapping[str, Any]], field_path: FieldPath) -> Any:
    current: Any = doc
    for segment in field_segments(field_path):
        if not isinstance(current, Mapping) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def set_path(doc: Document, field_path: FieldPath, value: Any) -> Document:
    """Set a nested value in place, creating intermediate maps."""
    segments = field_segments(field_path)
    current = doc
    for segment in segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[segments[-1]] = value
    return doc


def delete_path(doc: Document, field_path: FieldPath) -> bool:
    """Remove a nested value in place. Returns whether anything was removed."""
    segments = field_segments(field_path)
    current: Any = doc
    for segment in segments[:-1]:
        current = current.get(segment) if isinstance(current, dict) else None
        if current is None:
            return False
    if isinstance(current, dict) and segments[-1] in current:
        del current[segments[-1]]
        return True
    return False


# =============================================================================
# Document changes
# =============================================================================


@dataclass(frozen=True)
class DocumentChange:
    """A before/after pair for one write to one document."""

    path: str
    event_id: str
    before: Optional[Document] = None
    after: Optional[Document] = None
    params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.before is None and self.after is None:
            raise ValueError("A change needs a before or an after document")

    @property
    def collection_path(self) -> str:
        return split_path(self.path)[0]

    @property
    def collection_id(self) -> str:
        """Id of the collection directly containing the document."""
        return self.collection_path.split(PATH_SEPARATOR)[-1]

    @property
    def doc_id(self) -> str:
        return split_path(self.path)[1]

    @property
    def data(self) -> Document:
        """The current document, or the last known one after a delete."""
        return self.after if self.after is not None else (self.before or {})


@dataclass(frozen=True)
class FieldChange:
    """Represents a change in a single field."""

    old: object | None
    new: object | None


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document read from the store."""

    path: str
    data: Document

    @property
    def id(self) -> str:  # pylint: disable=invalid-name
        return split_path(self.path)[1]

    def get(self, field_path: FieldPath, default: Any = None) -> Any:
        return get_path(self.data, field_path, default)

    def to_dict(self) -> Document:
        return copy.deepcopy(self.data)


# =============================================================================
# Write operations
# =============================================================================


class WriteKind(str, Enum):
    """Kinds of single-document writes inside a batch."""

    SET = "SET"
    CREATE = "CREATE"
    MERGE = "MERGE"
    DELETE = "DELETE"
    REMOVE_FIELDS = "REMOVE_FIELDS"


@dataclass(frozen=True)
class WriteOp:
    """One document write inside a batched commit."""

    kind: WriteKind
    path: str
    data: Mapping[str, Any] = field(default_factory=dict)
    fields: tuple[FieldPath, ...] = ()

    @classmethod
    def put(cls, path: str, data: Mapping[str, Any]) -> "WriteOp":
        return cls(WriteKind.SET, path, data=data)

    @classmethod
    def create(cls, path: str, data: Mapping[str, Any]) -> "WriteOp":
        """Put that fails the whole batch if the document already exists."""
        return cls(WriteKind.CREATE, path, data=data)

    @classmethod
    def merge(cls, path: str, data: Mapping[str, Any]) -> "WriteOp":
        return cls(WriteKind.MERGE, path, data=data)

    @classmethod
    def delete(cls, path: str) -> "WriteOp":
        return cls(WriteKind.DELETE, path)

    @classmethod
    def remove(cls, path: str, fields: Sequence[FieldPath]) -> "WriteOp":
        return cls(WriteKind.REMOVE_FIELDS, path, fields=tuple(fields))


# =============================================================================
# Queries
# =============================================================================


@dataclass(frozen=True)
class Filter:
    """A single field predicate."""

    field: FieldPath
    operator: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator}")


@dataclass(frozen=True)
class Query:
    """A query over the documents of one collection."""

    collection: str
    filters: tuple[Filter, ...] = ()
    order_by: Optional[FieldPath] = None
    descending: bool = False
    limit: Optional[int] = None
    start_after: Optional[str] = None

    def where(self, field_path: FieldPath, operator: str, value: Any = None) -> "Query":
        return replace(
            self, filters=self.filters + (Filter(field_path, operator, value),)
        )

    def order(self, field_path: FieldPath, descending: bool = False) -> "Query":
        return replace(self, order_by=field_path, descending=descending)

    def take(self, limit: Optional[int]) -> "Query":
        return replace(self, limit=limit)

    def after(self, doc_id: Optional[str]) -> "Query":
        return replace(self, start_after=doc_id)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class SearchResult:
    """A ranked search hit."""

    id: str  # pylint: disable=invalid-name
    relevance: int


def merge_results(batches: Sequence[Sequence[SearchResult]]) -> list[SearchResult]:
    """Sum relevance per document id and sort by it, highest first."""
    totals: dict[str, int] = {}
    for batch in batches:
        for result in batch:
            totals[result.id] = totals.get(result.id, 0) + result.relevance
    merged = [SearchResult(id=doc_id, relevance=score) for doc_id, score in totals.items()]
    merged.sort(key=lambda r: r.relevance, reverse=True)
    return merged


@dataclass(frozen=True)
class LambdaResponse:
    """Response structure for Lambda handlers."""

    status_code: int
    processed_records: int
    skipped_records: int

    def to_dict(self) -> dict[str, int]:
        """Convert to AWS Lambda-compatible dictionary."""
        return {
            "statusCode": self.status_code,
            "processed_records": self.processed_records,
            "skipped_records": self.skipped_records,
        }


__all__ = [
    "Document",
    "DocumentChange",
    "DocumentSnapshot",
    "FieldChange",
    "FieldPath",
    "Filter",
    "LambdaResponse",
    "Query",
    "SERVER_TIMESTAMP",
    "SearchResult",
    "WriteKind",
    "WriteOp",
    "delete_path",
    "field_segments",
    "get_path",
    "has_path",
    "join_path",
    "merge_results",
    "set_path",
    "split_path",
]
