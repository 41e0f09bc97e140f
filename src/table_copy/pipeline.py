"""
Pipeline driver: wires sources to sinks and fans out across table segments.

transfer() moves one source into one sink with a small prefetch queue, so
the next page is read while the current one is written. CopyPipeline builds
the source/sink pairs for each supported route and runs segments concurrently.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from loguru import logger

from copy_client.models import RedisLocation, S3Location, TableLocation
from copy_client.pool import ClientPool
from copy_client.utils import describe_table, get_segments

from .backoff import BackoffPolicy
from .monitor import TransferMonitor
from .schema import FieldCoercion
from .sinks import DynamoDBTableSink, RecordSink, RedisHashSink, S3ObjectSink
from .sinks.dynamodb import DEFAULT_MAX_UNPROCESSED_RETRIES
from .sources import DynamoDBSegmentSource, RecordSource, RedisKeySource, S3ObjectSource
from .types import Record

Transform = Callable[[Mapping[str, Any]], Record]

_END = object()


async def transfer(
    source: RecordSource,
    sink: RecordSink,
    *,
    transform: Optional[Transform] = None,
    prefetch: int = 2,
    page_size: Optional[int] = None,
) -> int:
    """Copy every record of source into sink; returns the number of records.

    Pages are written to the sink as groups. The sink is not closed here.
    A terminal error on either side cancels the other and propagates.
    """
    if prefetch <= 0:
        raise ValueError("prefetch must be > 0")
    queue: asyncio.Queue = asyncio.Queue(maxsize=prefetch)

    async def produce() -> None:
        try:
            while True:
                page = await source.produce(page_size)
                if not page:
                    break
                if transform is not None:
                    page = [transform(record) for record in page]
                await queue.put(page)
        except Exception as exc:
            await queue.put(exc)
            return
        await queue.put(_END)

    producer = asyncio.create_task(produce())
    total = 0
    try:
        while True:
            item = await queue.get()
            if item is _END:
                break
            if isinstance(item, Exception):
                raise item
            await sink.consume(item)
            total += len(item)
    finally:
        if not producer.done():
            producer.cancel()
            with suppress(asyncio.CancelledError):
                await producer
    return total


@dataclass
class SegmentTask:
    source: RecordSource
    sink: RecordSink
    transform: Optional[Transform] = None


class CopyPipeline:
    """Runs copy routes between DynamoDB, S3 and Redis.

    Example:
        pool = ClientPool()
        async with TransferMonitor("orders") as monitor:
            pipeline = CopyPipeline(pool, monitor=monitor)
            await pipeline.copy_table(src, dst, total_segments=8)
        await pool.aclose()
    """

    def __init__(
        self,
        pool: ClientPool,
        *,
        monitor: Optional[TransferMonitor] = None,
        max_unprocessed_retries: Optional[int] = DEFAULT_MAX_UNPROCESSED_RETRIES,
        prefetch: int = 2,
    ):
        self.pool = pool
        self.monitor = monitor
        self.max_unprocessed_retries = max_unprocessed_retries
        self.prefetch = prefetch

    # ---------- routes ----------

    async def copy_table(
        self,
        src: TableLocation,
        dst: TableLocation,
        *,
        total_segments: int = 1,
        worker_id: int = 0,
        n_workers: int = 1,
    ) -> int:
        segments = get_segments(worker_id, n_workers, total_segments)
        logger.info(
            f"Copying {src.table_name} to {dst.table_name}: segments {segments} of {total_segments}"
        )
        # one policy per direction: segments share the backoff magnitude
        scan_backoff = BackoffPolicy.for_table_scan()
        write_backoff = BackoffPolicy.for_table_write()
        tasks = [
            SegmentTask(
                DynamoDBSegmentSource(
                    self.pool, src, segment, total_segments, backoff=scan_backoff
                ),
                self._table_sink(dst, write_backoff),
            )
            for segment in segments
        ]
        return await self.run(tasks)

    async def export_to_s3(
        self,
        src: TableLocation,
        dest_prefix: S3Location,
        *,
        total_segments: int = 1,
        worker_id: int = 0,
        n_workers: int = 1,
        compress: bool = True,
        base_time: Optional[datetime] = None,
    ) -> List[S3Location]:
        segments = get_segments(worker_id, n_workers, total_segments)
        destinations = [
            self.export_key(dest_prefix, src, segment, compress=compress, base_time=base_time)
            for segment in segments
        ]
        scan_backoff = BackoffPolicy.for_table_scan()
        tasks = [
            SegmentTask(
                DynamoDBSegmentSource(
                    self.pool, src, segment, total_segments, backoff=scan_backoff
                ),
                S3ObjectSink(self.pool, dest, compress=compress),
            )
            for segment, dest in zip(segments, destinations)
        ]
        await self.run(tasks)
        return destinations

    async def import_from_s3(self, src: S3Location, dst: TableLocation) -> int:
        logger.info(f"Importing {src.url} into {dst.table_name}")
        return await self.run([SegmentTask(S3ObjectSource(self.pool, src), self._table_sink(dst))])

    async def export_to_redis(
        self,
        src: TableLocation,
        dest: RedisLocation,
        *,
        total_segments: int = 1,
        worker_id: int = 0,
        n_workers: int = 1,
    ) -> int:
        segments = get_segments(worker_id, n_workers, total_segments)
        description = await describe_table(self.pool, src)
        logger.info(f"Exporting {src.table_name} to {dest.url}: segments {segments}")
        scan_backoff = BackoffPolicy.for_table_scan()
        tasks = [
            SegmentTask(
                DynamoDBSegmentSource(
                    self.pool, src, segment, total_segments, backoff=scan_backoff
                ),
                RedisHashSink.from_table_description(self.pool, dest, description),
            )
            for segment in segments
        ]
        return await self.run(tasks)

    async def import_from_redis(
        self, src: RedisLocation, dst: TableLocation, *, key_pattern: str = "*"
    ) -> int:
        description = await describe_table(self.pool, dst)
        coercion = FieldCoercion.from_table_description(description)
        logger.info(f"Importing {src.url} keys matching {key_pattern!r} into {dst.table_name}")
        source = RedisKeySource(self.pool, src, key_pattern=key_pattern)
        return await self.run([SegmentTask(source, self._table_sink(dst), transform=coercion)])

    # ---------- helpers ----------

    @staticmethod
    def export_key(
        prefix: S3Location,
        src: TableLocation,
        segment: int,
        *,
        compress: bool = True,
        base_time: Optional[datetime] = None,
    ) -> S3Location:
        stamp = (base_time or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%SZ")
        suffix = ".json.gz" if compress else ".json"
        return prefix.child(f"{src.table_name}/{stamp}/segment-{segment:05d}{suffix}")

    async def run(self, tasks: List[SegmentTask]) -> int:
        """Run segment tasks concurrently.

        The first terminal error cancels the remaining segments, waits until
        their sinks are aborted, then propagates.
        """
        if self.monitor is not None:
            for task in tasks:
                self.monitor.register(task.sink)
        running = [asyncio.create_task(self._run_one(task)) for task in tasks]
        try:
            counts = await asyncio.gather(*running)
        except BaseException:
            for pending in running:
                pending.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise
        return sum(counts)

    async def _run_one(self, task: SegmentTask) -> int:
        async with task.sink:
            return await transfer(
                task.source, task.sink, transform=task.transform, prefetch=self.prefetch
            )

    def _table_sink(
        self, dst: TableLocation, backoff: Optional[BackoffPolicy] = None
    ) -> DynamoDBTableSink:
        return DynamoDBTableSink(
            self.pool,
            dst,
            backoff=backoff,
            max_unprocessed_retries=self.max_unprocessed_retries,
        )
