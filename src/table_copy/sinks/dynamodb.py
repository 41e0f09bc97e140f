from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from loguru import logger

from copy_client.errors import (
    AWS_ERRORS,
    UnprocessedItemsError,
    error_code,
    is_retryable,
    map_aws_error,
)
from copy_client.models import TableLocation
from copy_client.pool import ClientPool

from ..backoff import BackoffPolicy
from ..codec import to_attribute_values
from ..types import Record
from .base import RecordSink

DEFAULT_MAX_UNPROCESSED_RETRIES = 64


class DynamoDBTableSink(RecordSink):
    """Writes records with BatchWriteItem in chunks of 25.

    Chunks of one group are written concurrently and the group completes
    when all of them have. Unprocessed items are resubmitted after a backoff
    until none remain or max_unprocessed_retries resubmissions have failed
    to drain them. Throttled chunks are retried without limit.
    """

    name = "dynamodb"
    MAX_BATCH_SIZE = 25
    DEFAULT_HIGH_WATERMARK = 50

    def __init__(
        self,
        pool: ClientPool,
        location: TableLocation,
        *,
        backoff: Optional[BackoffPolicy] = None,
        max_unprocessed_retries: Optional[int] = DEFAULT_MAX_UNPROCESSED_RETRIES,
    ):
        super().__init__()
        self.location = location
        self.max_unprocessed_retries = max_unprocessed_retries
        self._client = pool.dynamodb(location.region, location.endpoint)
        self._backoff = backoff or BackoffPolicy.for_table_write()

    def split_into_batches(self, records: List[Record]) -> List[List[dict[str, Any]]]:
        requests = [{"PutRequest": {"Item": to_attribute_values(r)}} for r in records]
        return [
            requests[i : i + self.MAX_BATCH_SIZE]
            for i in range(0, len(requests), self.MAX_BATCH_SIZE)
        ]

    async def _write(self, batch: List[Record]) -> None:
        n_items = len(batch)
        chunks = self.split_into_batches(batch)
        self._num_in_flight += n_items
        try:
            await asyncio.gather(*(self._write_chunk(chunk) for chunk in chunks))
        except Exception as exc:
            logger.error(f"Failed to write {n_items} items to {self.location.table_name}: {exc}")
            raise
        finally:
            self._num_in_flight -= n_items

    async def _write_chunk(self, requests: List[dict[str, Any]]) -> None:
        table = self.location.table_name
        pending = requests
        resubmissions = 0
        while True:
            try:
                resp = await asyncio.to_thread(
                    self._client.batch_write_item, RequestItems={table: pending}
                )
            except AWS_ERRORS as exc:
                if not is_retryable(exc):
                    raise map_aws_error(exc) from exc
                code = error_code(exc) or type(exc).__name__
                logger.warning(f"Retry-able exception encountered: {code}")
                self._record_backoff()
                await self._backoff.execute()
                continue

            unprocessed = resp.get("UnprocessedItems", {}).get(table, [])
            self._num_written += len(pending) - len(unprocessed)
            if not unprocessed:
                await self._backoff.skip()
                return

            if (
                self.max_unprocessed_retries is not None
                and resubmissions >= self.max_unprocessed_retries
            ):
                raise UnprocessedItemsError(unprocessed, resubmissions)
            resubmissions += 1
            logger.debug(f"Found {len(unprocessed)} unprocessed items. Retrying after backoff...")
            self._record_backoff()
            await self._backoff.execute()
            pending = unprocessed
