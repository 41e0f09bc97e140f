"""
Demo script for the table copy engine.

Copies a DynamoDB table into another table, exports it to S3 as gzipped JSON
arrays and mirrors it into Redis, with throughput reports every two seconds.

Expects DynamoDB Local on :8000, an S3-compatible store on :9000 and Redis on
:6379; override with DYNAMODB_ENDPOINT, S3_ENDPOINT and REDIS_URL.
"""

import asyncio
import os

from loguru import logger

from copy_client import ClientPool, parse_redis_url, parse_s3_url, parse_table_name
from table_copy import CopyPipeline, TransferMonitor


async def on_report(report):
    if report.num_backoff:
        logger.warning(f"⚠️  {report.task_id} throttled {report.num_backoff} times")


async def main():
    dynamodb = os.getenv("DYNAMODB_ENDPOINT", "http://localhost:8000")
    s3 = os.getenv("S3_ENDPOINT", "http://localhost:9000")
    src = parse_table_name(os.getenv("SOURCE_TABLE", "orders"), endpoint=dynamodb)
    dst = parse_table_name(os.getenv("DEST_TABLE", "orders_copy"), endpoint=dynamodb)
    bucket = parse_s3_url("s3://backups/demo", region="us-east-1", endpoint=s3)
    cache = parse_redis_url(os.getenv("REDIS_URL", "redis://localhost:6379/0"))

    pool = ClientPool(max_pool_connections=32)
    monitor = TransferMonitor("demo", interval=2.0)
    monitor.subscribe(on_report)
    pipeline = CopyPipeline(pool, monitor=monitor)

    try:
        async with monitor:
            logger.info(f"🚀 Copying {src.table_name} -> {dst.table_name}")
            n = await pipeline.copy_table(src, dst, total_segments=4)
            logger.info(f"✅ Copied {n} items")

            locations = await pipeline.export_to_s3(src, bucket, total_segments=4)
            for location in locations:
                logger.info(f"✅ Exported {location.url}")

            n = await pipeline.export_to_redis(src, cache, total_segments=4)
            logger.info(f"✅ Mirrored {n} items into {cache.url}")
    finally:
        await pool.aclose()


if __name__ == "__main__":
    asyncio.run(main())
