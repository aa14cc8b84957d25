"""DynamoDB stream parsing and routing."""

from dynamo_denorm.parsing.parsers import parse_image, parse_stream_record
from dynamo_denorm.parsing.router import (
    StreamRouter,
    compile_pattern,
    process_stream_event,
)

__all__ = [
    "StreamRouter",
    "compile_pattern",
    "parse_image",
    "parse_stream_record",
    "process_stream_event",
]
