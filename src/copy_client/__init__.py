"""
Copy Client Library

Backend connection layer for the table copy engine: a shared client pool,
location models, error taxonomy and parsing helpers for DynamoDB, S3 and Redis.

Usage:
    from copy_client import ClientPool, parse_table_name, parse_s3_url

    pool = ClientPool()
    src = parse_table_name("us-west-2:orders")
    dest = parse_s3_url("s3://backups/orders")
"""

from .pool import ClientPool
from .models import TableLocation, S3Location, RedisLocation
from .errors import (
    CopyOperationalError,
    RetryableError,
    BackendError,
    ConfigurationError,
    StreamClosedError,
    UnprocessedItemsError,
    ObjectFormatError,
    SchemaCoercionError,
    RecordKeyError,
    is_retryable,
    map_aws_error,
)
from .utils import (
    ContentMetadata,
    describe_table,
    get_content_metadata,
    get_segments,
    parse_redis_url,
    parse_s3_url,
    parse_table_name,
)

__version__ = "1.0.0"
__all__ = [
    "ClientPool",
    "TableLocation",
    "S3Location",
    "RedisLocation",
    "ContentMetadata",
    "CopyOperationalError",
    "RetryableError",
    "BackendError",
    "ConfigurationError",
    "StreamClosedError",
    "UnprocessedItemsError",
    "ObjectFormatError",
    "SchemaCoercionError",
    "RecordKeyError",
    "is_retryable",
    "map_aws_error",
    "describe_table",
    "get_content_metadata",
    "get_segments",
    "parse_redis_url",
    "parse_s3_url",
    "parse_table_name",
]
