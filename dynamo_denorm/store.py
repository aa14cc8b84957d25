"""
DynamoDB-backed document store.

Every collection lives in one table. A document at ``a/b/c/d`` is the item
``PK = "a/b/c"``, ``SK = "d"``; its fields are the remaining attributes.
Collection queries are partition queries on ``PK`` with filter expressions,
so nested sub-collections are simply longer partition keys.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from functools import wraps
from typing import Any, Mapping, Optional, Sequence

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from dynamo_denorm.config import DenormConfig, get_config
from dynamo_denorm.models import (
    SERVER_TIMESTAMP,
    Document,
    DocumentSnapshot,
    FieldPath,
    Filter,
    Query,
    WriteKind,
    WriteOp,
    field_segments,
    get_path,
    has_path,
    join_path,
    split_path,
)
from dynamo_denorm.shared_exceptions import (
    ConditionalCheckFailedError,
    DynamoDBAccessError,
    DynamoDBError,
    DynamoDBResourceNotFoundError,
    DynamoDBServerError,
    DynamoDBThroughputError,
    DynamoDBValidationError,
    TransactionError,
)

logger = logging.getLogger(__name__)

KEY_ATTRIBUTES = ("PK", "SK")

# DynamoDB limit for TransactWriteItems
MAX_TRANSACTION_ITEMS = 100

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

_ERROR_CODES: dict[str, type[DynamoDBError]] = {
    "ConditionalCheckFailedException": ConditionalCheckFailedError,
    "ResourceNotFoundException": DynamoDBResourceNotFoundError,
    "ProvisionedThroughputExceededException": DynamoDBThroughputError,
    "RequestLimitExceeded": DynamoDBThroughputError,
    "ThrottlingException": DynamoDBThroughputError,
    "InternalServerError": DynamoDBServerError,
    "ValidationException": DynamoDBValidationError,
    "AccessDeniedException": DynamoDBAccessError,
    "TransactionCanceledException": TransactionError,
}


def handle_dynamodb_errors(operation_name: str):
    """
    Decorator to translate botocore client errors consistently.

    Args:
        operation_name: Name of the operation for error context
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except ClientError as e:
                error = e.response.get("Error", {})
                code = error.get("Code", "")
                exc_class = _ERROR_CODES.get(code, DynamoDBError)
                raise exc_class(
                    f"{operation_name} failed ({code or 'UnknownError'}): "
                    f"{error.get('Message', e)}"
                ) from e

        return wrapper

    return decorator


# =============================================================================
# Value conversion
# =============================================================================


def _prepare(value: Any, now: str) -> Any:
    """Convert Python values into types TypeSerializer accepts."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Mapping):
        return {str(k): _prepare(v, now) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return [_prepare(v, now) for v in items]
    return value


def _restore(value: Any) -> Any:
    """Convert deserialized DynamoDB values back into plain Python types."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _restore(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_restore(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_restore(v) for v in value), key=str)
    return value


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO-8601 so stored timestamps compare as strings."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def serialize_value(value: Any, now: Optional[str] = None) -> dict[str, Any]:
    return _serializer.serialize(_prepare(value, now or utc_now()))


def serialize_document(data: Mapping[str, Any], now: Optional[str] = None) -> dict[str, Any]:
    """Serialize a document to DynamoDB attribute values."""
    timestamp = now or utc_now()
    return {
        key: serialize_value(value, timestamp)
        for key, value in data.items()
        if key not in KEY_ATTRIBUTES
    }


def deserialize_document(item: Mapping[str, Any]) -> Document:
    """Deserialize a DynamoDB item (or stream image) into a document."""
    return {
        key: _restore(_deserializer.deserialize(value))
        for key, value in item.items()
        if key not in KEY_ATTRIBUTES
    }


def _key(path: str) -> dict[str, dict[str, str]]:
    collection, doc_id = split_path(path)
    return {"PK": {"S": collection}, "SK": {"S": doc_id}}


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, (bool, int, float)):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    return (2, str(value))


class _Expression:
    """Allocates attribute name and value placeholders for one request."""

    def __init__(self, now: Optional[str] = None) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._now = now or utc_now()

    def path(self, field_path: FieldPath) -> str:
        placeholders = []
        for segment in field_segments(field_path):
            placeholder = f"#n{len(self.names)}"
            self.names[placeholder] = segment
            placeholders.append(placeholder)
        return ".".join(placeholders)

    def value(self, value: Any) -> str:
        placeholder = f":v{len(self.values)}"
        self.values[placeholder] = serialize_value(value, self._now)
        return placeholder

    def condition(self, flt: Filter) -> str:
        path = self.path(flt.field)
        if flt.operator == "exists":
            return f"attribute_exists({path})"
        if flt.operator == "array-contains":
            return f"contains({path}, {self.value(flt.value)})"
        if flt.operator == "in":
            options = ", ".join(self.value(v) for v in flt.value)
            return f"{path} IN ({options})"
        operator = {"==": "=", "!=": "<>"}.get(flt.operator, flt.operator)
        return f"{path} {operator} {self.value(flt.value)}"

    def request_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.names:
            kwargs["ExpressionAttributeNames"] = self.names
        if self.values:
            kwargs["ExpressionAttributeValues"] = self.values
        return kwargs


class DocumentStore:
    """
    Document-store collaborator backed by a single DynamoDB table.

    Provides get/set/merge/delete, atomic increments, conditional field
    initialization, collection queries and atomic batched writes.
    """

    def __init__(
        self,
        table_name: Optional[str] = None,
        config: Optional[DenormConfig] = None,
        dynamodb_client: Optional[Any] = None,
    ):
        """
        Initialize the document store.

        Args:
            table_name: DynamoDB table name (defaults to config)
            config: Configuration settings
            dynamodb_client: Optional pre-configured DynamoDB client
        """
        self._config = config or get_config()
        self.table_name = table_name or self._config.table_name

        if dynamodb_client is not None:
            self._client = dynamodb_client
        else:
            client_kwargs: dict[str, Any] = {
                "region_name": self._config.aws_region,
            }
            if self._config.endpoint_url:
                client_kwargs["endpoint_url"] = self._config.endpoint_url
            self._client = boto3.client("dynamodb", **client_kwargs)

        logger.debug("DocumentStore initialized for table: %s", self.table_name)

    # ------------------------------------------------------------------
    # Single documents
    # ------------------------------------------------------------------

    @handle_dynamodb_errors("get_document")
    def get(self, path: str) -> Optional[DocumentSnapshot]:
        response = self._client.get_item(
            TableName=self.table_name,
            Key=_key(path),
            ConsistentRead=True,
        )
        item = response.get("Item")
        if not item:
            return None
        return DocumentSnapshot(path=join_path(path), data=deserialize_document(item))

    def exists(self, path: str) -> bool:
        return self.get(path) is not None

    @handle_dynamodb_errors("set_document")
    def set(self, path: str, data: Mapping[str, Any]) -> None:
        """Replace the whole document."""
        self._client.put_item(
            TableName=self.table_name,
            Item={**_key(path), **serialize_document(data)},
        )

    @handle_dynamodb_errors("merge_document")
    def merge(self, path: str, data: Mapping[str, Any]) -> None:
        """Overwrite the given top-level fields, keeping all others."""
        if not data:
            return
        self._client.update_item(**self._merge_request(path, data))

    @handle_dynamodb_errors("delete_document")
    def delete(self, path: str) -> None:
        self._client.delete_item(TableName=self.table_name, Key=_key(path))

    @handle_dynamodb_errors("remove_fields")
    def remove_fields(self, path: str, fields: Sequence[FieldPath]) -> None:
        """Remove fields from an existing document; missing documents are ignored."""
        if not fields:
            return
        try:
            self._client.update_item(**self._remove_request(path, fields))
        except ClientError as e:
            if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
                raise
            logger.debug("Document %s no longer exists, nothing to remove", path)

    @handle_dynamodb_errors("increment_field")
    def increment(self, path: str, field_name: str, delta: int) -> None:
        """Atomically add ``delta`` to a numeric field."""
        expression = _Expression()
        name = expression.path((field_name,))
        value = expression.value(delta)
        self._client.update_item(
            TableName=self.table_name,
            Key=_key(path),
            UpdateExpression=f"ADD {name} {value}",
            **expression.request_kwargs(),
        )

    @handle_dynamodb_errors("initialize_field")
    def initialize_field(self, path: str, field_name: str, value: Any) -> bool:
        """
        Set a field only if it does not exist yet.

        Returns:
            True if the value was written, False if another writer got there
            first.
        """
        expression = _Expression()
        name = expression.path((field_name,))
        placeholder = expression.value(value)
        try:
            self._client.update_item(
                TableName=self.table_name,
                Key=_key(path),
                UpdateExpression=f"SET {name} = {placeholder}",
                ConditionExpression=f"attribute_not_exists({name})",
                **expression.request_kwargs(),
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.info(
                    "Field already initialized by a concurrent writer",
                    extra={"path": path, "field": field_name},
                )
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _query_pages(self, query: Query, select_count: bool = False):
        expression = _Expression()
        pk = expression.value(join_path(query.collection))
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": f"PK = {pk}",
            "ConsistentRead": True,
        }
        if query.filters:
            kwargs["FilterExpression"] = " AND ".join(
                expression.condition(flt) for flt in query.filters
            )
        if select_count:
            kwargs["Select"] = "COUNT"
        kwargs.update(expression.request_kwargs())
        while True:
            response = self._client.query(**kwargs)
            yield response
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key

    @handle_dynamodb_errors("query_collection")
    def query(self, query: Query) -> list[DocumentSnapshot]:
        """
        Run a collection query.

        Filters are evaluated by DynamoDB; ordering, cursor and limit are
        applied to the matching documents afterwards. Documents missing the
        ``order_by`` field are excluded, as an ordered index would.
        """
        collection = join_path(query.collection)
        snapshots = [
            DocumentSnapshot(
                path=join_path(collection, item["SK"]["S"]),
                data=deserialize_document(item),
            )
            for page in self._query_pages(query)
            for item in page.get("Items", [])
        ]
        if query.order_by is not None:
            snapshots = [s for s in snapshots if has_path(s.data, query.order_by)]
            snapshots.sort(
                key=lambda s: _sort_key(get_path(s.data, query.order_by)),
                reverse=query.descending,
            )
        if query.start_after is not None:
            ids = [s.id for s in snapshots]
            if query.start_after in ids:
                snapshots = snapshots[ids.index(query.start_after) + 1 :]
        if query.limit is not None:
            snapshots = snapshots[: query.limit]
        return snapshots

    @handle_dynamodb_errors("count_collection")
    def count(self, query: Query) -> int:
        """Number of documents matching the query's filters."""
        return sum(
            page.get("Count", 0)
            for page in self._query_pages(query, select_count=True)
        )

    # ------------------------------------------------------------------
    # Batched writes
    # ------------------------------------------------------------------

    @handle_dynamodb_errors("commit_batch")
    def commit(self, operations: Sequence[WriteOp]) -> None:
        """
        Apply the operations as one all-or-nothing write.

        Raises:
            ValueError: If more than 100 operations are given or a document
                appears twice.
        """
        if len(operations) > MAX_TRANSACTION_ITEMS:
            raise ValueError(
                f"A batch holds at most {MAX_TRANSACTION_ITEMS} operations, "
                f"got {len(operations)}"
            )
        paths = [join_path(op.path) for op in operations]
        if len(set(paths)) != len(paths):
            raise ValueError("A batch may touch each document only once")

        now = utc_now()
        transact_items = [
            item
            for item in (self._transact_item(op, now) for op in operations)
            if item is not None
        ]
        if not transact_items:
            return
        self._client.transact_write_items(TransactItems=transact_items)

    def _transact_item(self, op: WriteOp, now: str) -> Optional[dict[str, Any]]:
        if op.kind in (WriteKind.SET, WriteKind.CREATE):
            put: dict[str, Any] = {
                "TableName": self.table_name,
                "Item": {**_key(op.path), **serialize_document(op.data, now)},
            }
            if op.kind is WriteKind.CREATE:
                put["ConditionExpression"] = "attribute_not_exists(PK)"
            return {"Put": put}
        if op.kind is WriteKind.DELETE:
            return {"Delete": {"TableName": self.table_name, "Key": _key(op.path)}}
        if op.kind is WriteKind.MERGE:
            if not op.data:
                return None
            return {"Update": self._merge_request(op.path, op.data, now)}
        if not op.fields:
            return None
        return {"Update": self._remove_request(op.path, op.fields)}

    def _merge_request(
        self, path: str, data: Mapping[str, Any], now: Optional[str] = None
    ) -> dict[str, Any]:
        expression = _Expression(now)
        assignments = [
            f"{expression.path((name,))} = {expression.value(value)}"
            for name, value in data.items()
            if name not in KEY_ATTRIBUTES
        ]
        return {
            "TableName": self.table_name,
            "Key": _key(path),
            "UpdateExpression": "SET " + ", ".join(assignments),
            **expression.request_kwargs(),
        }

    def _remove_request(
        self, path: str, fields: Sequence[FieldPath]
    ) -> dict[str, Any]:
        """
        REMOVE guarded by ``attribute_exists(PK)``.

        Without the guard an update on a vanished document would create an
        empty key-only item, which collection queries and recounts would
        then see. Inside a batched commit the guard means one vanished
        document cancels its whole group; the group is logged as failed and
        the stale joined fields stay until the next source change.
        """
        expression = _Expression()
        removals = [expression.path(f) for f in fields]
        return {
            "TableName": self.table_name,
            "Key": _key(path),
            "UpdateExpression": "REMOVE " + ", ".join(removals),
            "ConditionExpression": "attribute_exists(PK)",
            **expression.request_kwargs(),
        }


__all__ = [
    "DocumentStore",
    "MAX_TRANSACTION_ITEMS",
    "deserialize_document",
    "format_timestamp",
    "handle_dynamodb_errors",
    "serialize_document",
    "serialize_value",
    "utc_now",
]
