"""
Parsing of DynamoDB stream records into document changes.

The table stores a document at ``PK/SK``; stream images are converted back
into plain documents so engines never see attribute-value encodings.
"""

import logging
from typing import Mapping, Optional, cast

from dynamo_denorm.models import DocumentChange, join_path
from dynamo_denorm.store import deserialize_document
from dynamo_denorm.stream_types import (
    DynamoDBItem,
    DynamoDBStreamRecord,
    MetricsRecorder,
)

logger = logging.getLogger(__name__)


def parse_image(image: Optional[DynamoDBItem]) -> Optional[dict]:
    """Convert a stream image into a document, or None when absent."""
    if not image:
        return None
    return deserialize_document(image)


def parse_stream_record(
    record: DynamoDBStreamRecord | Mapping[str, object],
    metrics: Optional[MetricsRecorder] = None,
) -> Optional[DocumentChange]:
    """Parse a DynamoDB stream record into a DocumentChange."""
    try:
        dynamodb = cast(dict[str, object], record["dynamodb"])
        keys = cast(dict[str, dict[str, str]], dynamodb["Keys"])
        pk = keys["PK"]["S"]
        sk = keys["SK"]["S"]
        event_id = cast(str, record["eventID"])

        before = parse_image(cast(Optional[DynamoDBItem], dynamodb.get("OldImage")))
        after = parse_image(cast(Optional[DynamoDBItem], dynamodb.get("NewImage")))

        if before is None and after is None:
            logger.warning(
                "Stream record carries no images",
                extra={"pk": pk, "sk": sk, "event_id": event_id},
            )
            if metrics:
                metrics.count("StreamRecordWithoutImages", 1)
            return None

        return DocumentChange(
            path=join_path(pk, sk),
            event_id=event_id,
            before=before,
            after=after,
        )

    except (KeyError, ValueError, TypeError) as exc:
        logger.warning("Failed to parse stream record", extra={"error": str(exc)})
        if metrics:
            metrics.count("StreamRecordParsingError", 1)
        return None
