"""Record sources: lazy, pull-based readers for each backend."""

from .base import RecordSource
from .dynamodb import DynamoDBSegmentSource
from .redis import RedisKeySource
from .s3 import S3ObjectSource

__all__ = [
    "RecordSource",
    "DynamoDBSegmentSource",
    "RedisKeySource",
    "S3ObjectSource",
]
