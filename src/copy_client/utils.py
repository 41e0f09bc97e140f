"""
Utility functions for the copy client.

Includes location parsing, segment assignment and backend metadata helpers.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from loguru import logger

from .errors import AWS_ERRORS, ConfigurationError, map_aws_error
from .models import DEFAULT_REDIS_PORT, DEFAULT_REGION, RedisLocation, S3Location, TableLocation
from .pool import ClientPool

ENCODING_GZIP = "gzip"
SUFFIX_GZIP = ".gz"

_TABLE_RE = re.compile(r"^([a-z]+-[a-z]+-[0-9]+):(.+)$")
_S3_RE = re.compile(r"^s3://([^/]+)/?(.*)$")
_REDIS_RE = re.compile(r"^redis://([^/:]*)(?::([0-9]*))?/?([0-9]*)$")


@dataclass(frozen=True)
class ContentMetadata:
    """Encoding and size of an S3 object."""

    content_encoding: Optional[str] = None
    content_length: Optional[int] = None

    @property
    def is_gzip(self) -> bool:
        return self.content_encoding == ENCODING_GZIP


def parse_table_name(table: str, endpoint: Optional[str] = None) -> TableLocation:
    """Parse "us-west-2:orders" into a location; bare names use the default region."""
    if not table:
        raise ConfigurationError("Table name is not set")
    m = _TABLE_RE.match(table)
    if m:
        return TableLocation(region=m.group(1), table_name=m.group(2), endpoint=endpoint)
    return TableLocation(region=DEFAULT_REGION, table_name=table, endpoint=endpoint)


def parse_s3_url(
    url: str, region: Optional[str] = None, endpoint: Optional[str] = None
) -> S3Location:
    m = _S3_RE.match(url or "")
    if not m:
        raise ConfigurationError(f"Not an S3 URL: {url!r}")
    return S3Location(bucket=m.group(1), key=m.group(2), region=region, endpoint=endpoint)


def parse_redis_url(url: str) -> RedisLocation:
    m = _REDIS_RE.match(url or "")
    if not m:
        raise ConfigurationError(f"Not a Redis URL: {url!r}")
    host, port, database = m.groups()
    return RedisLocation(
        host=host or "localhost",
        port=int(port) if port else DEFAULT_REDIS_PORT,
        database=int(database) if database else 0,
    )


def get_segments(worker_id: int, n_workers: int, total_segments: int) -> List[int]:
    """Segments owned by one worker when total_segments are dealt round-robin."""
    if n_workers <= 0 or total_segments <= 0:
        raise ConfigurationError("n_workers and total_segments must be > 0")
    if not 0 <= worker_id < n_workers:
        raise ConfigurationError(f"worker_id must be in [0, {n_workers})")
    return list(range(worker_id, total_segments, n_workers))


async def describe_table(pool: ClientPool, location: TableLocation) -> dict[str, Any]:
    client = pool.dynamodb(location.region, location.endpoint)
    try:
        resp = await asyncio.to_thread(client.describe_table, TableName=location.table_name)
    except AWS_ERRORS as e:
        raise map_aws_error(e) from e
    return resp["Table"]


async def get_content_metadata(pool: ClientPool, location: S3Location) -> ContentMetadata:
    """Content encoding from the key suffix, overridden by the object's own header."""
    encoding = ENCODING_GZIP if location.key.endswith(SUFFIX_GZIP) else None
    client = pool.s3(location.region, location.endpoint)
    try:
        head = await asyncio.to_thread(client.head_object, Bucket=location.bucket, Key=location.key)
    except AWS_ERRORS as e:
        raise map_aws_error(e) from e
    if head.get("ContentEncoding"):
        encoding = head["ContentEncoding"]
    logger.debug(f"Content encoding of {location.url} is {encoding}")
    logger.debug(f"Content length of {location.url} is {head.get('ContentLength')}")
    return ContentMetadata(content_encoding=encoding, content_length=head.get("ContentLength"))
