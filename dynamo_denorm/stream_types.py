"""
Typed shapes of the stream events the delivery adapter consumes.

Only the parts of a record the parser reads are described: the document key
(``PK`` collection path, ``SK`` document id) and the old/new images.
"""

from typing import Literal, Mapping, Protocol, TypedDict

# Attribute name -> attribute-value encoding, e.g. {"title": {"S": "Hi"}}.
DynamoDBItem = dict[str, dict[str, object]]


class StringKey(TypedDict):
    S: str


class DocumentKeys(TypedDict):
    """Key of a stored document: its collection path and its id."""

    PK: StringKey
    SK: StringKey


class StreamRecordDynamoDB(TypedDict, total=False):
    Keys: DocumentKeys
    NewImage: DynamoDBItem
    OldImage: DynamoDBItem
    StreamViewType: Literal["KEYS_ONLY", "NEW_IMAGE", "OLD_IMAGE", "NEW_AND_OLD_IMAGES"]


class DynamoDBStreamRecord(TypedDict, total=False):
    """One change; ``eventID`` doubles as the dedup event id."""

    eventID: str
    eventName: Literal["INSERT", "MODIFY", "REMOVE"]
    dynamodb: StreamRecordDynamoDB


class DynamoDBStreamEvent(TypedDict):
    Records: list[DynamoDBStreamRecord]


class MetricsRecorder(Protocol):  # pylint: disable=too-few-public-methods
    """Anything that can record a named count, e.g. an EMF or CloudWatch client."""

    def count(
        self,
        name: str,
        value: int,
        dimensions: Mapping[str, str] | None = None,
    ) -> object: ...


__all__ = [
    "DocumentKeys",
    "DynamoDBItem",
    "DynamoDBStreamEvent",
    "DynamoDBStreamRecord",
    "MetricsRecorder",
    "StreamRecordDynamoDB",
    "StringKey",
]
