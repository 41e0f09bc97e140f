from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from loguru import logger

from copy_client.errors import (
    AWS_ERRORS,
    ConfigurationError,
    error_code,
    is_retryable,
    map_aws_error,
)
from copy_client.models import TableLocation
from copy_client.pool import ClientPool

from ..backoff import BackoffPolicy
from ..codec import from_attribute_values
from ..metrics import BACKOFF_EVENTS_TOTAL
from ..types import Record
from .base import RecordSource


class DynamoDBSegmentSource(RecordSource):
    """Parallel-scan reader for one segment of a DynamoDB table.

    Each page resumes from the previous page's LastEvaluatedKey; a page
    without one ends the segment. Throttled pages are retried with the same
    parameters after a backoff.
    """

    name = "dynamodb"
    DEFAULT_HIGH_WATERMARK = 100
    MAX_BATCH_SIZE = 200

    def __init__(
        self,
        pool: ClientPool,
        location: TableLocation,
        segment: int = 0,
        total_segments: int = 1,
        *,
        high_watermark: Optional[int] = None,
        consistent_read: bool = True,
        backoff: Optional[BackoffPolicy] = None,
    ):
        super().__init__(high_watermark=high_watermark)
        if total_segments <= 0:
            raise ConfigurationError("total_segments must be > 0")
        if not 0 <= segment < total_segments:
            raise ConfigurationError(f"segment must be in [0, {total_segments})")
        self.location = location
        self.segment = segment
        self.total_segments = total_segments
        self.consistent_read = consistent_read
        self.last_evaluated_key: Optional[dict[str, Any]] = None
        self._client = pool.dynamodb(location.region, location.endpoint)
        self._backoff = backoff or BackoffPolicy.for_table_scan()

    def scan_params(self, limit: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            "TableName": self.location.table_name,
            "Segment": self.segment,
            "TotalSegments": self.total_segments,
            "Limit": min(limit, self.MAX_BATCH_SIZE),
            "ConsistentRead": self.consistent_read,
        }
        if self.last_evaluated_key:
            params["ExclusiveStartKey"] = self.last_evaluated_key
        return params

    async def _fetch(self, count: int) -> List[Record]:
        # pages may be empty while a continuation key remains
        while not self._exhausted:
            items = await self._scan(count)
            if items:
                return items
        logger.debug(f"No more keys in {self.location.table_name} segment {self.segment}")
        return []

    async def _scan(self, limit: int) -> List[Record]:
        params = self.scan_params(limit)
        while True:
            try:
                resp = await asyncio.to_thread(self._client.scan, **params)
                break
            except AWS_ERRORS as exc:
                if not is_retryable(exc):
                    raise map_aws_error(exc) from exc
                code = error_code(exc) or type(exc).__name__
                logger.warning(f"Retry-able exception encountered: {code}")
                self.num_backoff_events += 1
                BACKOFF_EVENTS_TOTAL.labels(component="dynamodb_scan").inc()
                await self._backoff.execute()

        self.last_evaluated_key = resp.get("LastEvaluatedKey")
        self._exhausted = not self.last_evaluated_key
        await self._backoff.skip()
        return [from_attribute_values(item) for item in resp.get("Items", [])]
