"""
Reactive denormalized-index maintenance over DynamoDB.

Keeps counters, join caches, search indexes and unique-value claims in step
with source documents as their changes arrive on a DynamoDB stream.
"""

__version__ = "0.1.0"

from dynamo_denorm.batch import (
    bulk_delete,
    bulk_remove_fields,
    bulk_update,
    chunk,
    chunked_batch_write,
)
from dynamo_denorm.categories import CategoryCounter, category_array, friendly_url
from dynamo_denorm.config import DenormConfig, get_config
from dynamo_denorm.counters import CounterEngine, evaluate_condition
from dynamo_denorm.events import EventDeduplicator, RecentEventCache
from dynamo_denorm.joins import JoinEngine
from dynamo_denorm.models import (
    SERVER_TIMESTAMP,
    DocumentChange,
    DocumentSnapshot,
    FieldChange,
    Filter,
    LambdaResponse,
    Query,
    SearchResult,
    WriteKind,
    WriteOp,
    merge_results,
)
from dynamo_denorm.parsing import (
    StreamRouter,
    parse_stream_record,
    process_stream_event,
)
from dynamo_denorm.search import SearchEngine
from dynamo_denorm.shared_exceptions import (
    DenormError,
    DynamoDBError,
    MissingIdentifierError,
)
from dynamo_denorm.store import DocumentStore
from dynamo_denorm.tags import TagCounter, changed_tags, normalize_tag
from dynamo_denorm.uniques import UniqueFieldIndex

__all__ = [
    "__version__",
    "CategoryCounter",
    "CounterEngine",
    "DenormConfig",
    "DenormError",
    "DocumentChange",
    "DocumentSnapshot",
    "DocumentStore",
    "DynamoDBError",
    "EventDeduplicator",
    "FieldChange",
    "Filter",
    "JoinEngine",
    "LambdaResponse",
    "MissingIdentifierError",
    "Query",
    "RecentEventCache",
    "SERVER_TIMESTAMP",
    "SearchEngine",
    "SearchResult",
    "StreamRouter",
    "TagCounter",
    "UniqueFieldIndex",
    "WriteKind",
    "WriteOp",
    "bulk_delete",
    "bulk_remove_fields",
    "bulk_update",
    "category_array",
    "changed_tags",
    "chunk",
    "chunked_batch_write",
    "evaluate_condition",
    "friendly_url",
    "get_config",
    "merge_results",
    "normalize_tag",
    "parse_stream_record",
    "process_stream_event",
]
