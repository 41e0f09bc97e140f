"""Record sinks: batching writers for each backend."""

from .base import RecordSink
from .dynamodb import DynamoDBTableSink
from .redis import RedisHashSink
from .s3 import S3ObjectSink

__all__ = [
    "RecordSink",
    "DynamoDBTableSink",
    "RedisHashSink",
    "S3ObjectSink",
]
