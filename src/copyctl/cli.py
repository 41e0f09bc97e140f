from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from typing import Awaitable, Callable, Optional

import typer
from loguru import logger

from copy_client import (
    ClientPool,
    CopyOperationalError,
    get_segments,
    parse_redis_url,
    parse_s3_url,
    parse_table_name,
)
from copyctl.config import Settings, get_settings
from table_copy import CopyPipeline, TransferMonitor

app = typer.Typer(help="Copy DynamoDB tables to and from DynamoDB, S3 and Redis")

Route = Callable[[CopyPipeline, Settings], Awaitable[str]]

# ---------------------------
# Common options
# ---------------------------


def segments_opt() -> Optional[int]:
    return typer.Option(
        None, "--total-segments", help="Parallel scan segments (default: TABLE_COPY_TOTAL_SEGMENTS)"
    )


def worker_id_opt() -> int:
    return typer.Option(0, "--worker-id", help="This worker's index among --workers")


def workers_opt() -> int:
    return typer.Option(1, "--workers", help="Number of workers sharing the segments")


def task_id_opt() -> Optional[str]:
    return typer.Option(None, "--task-id", help="Label used in progress reports")


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), colorize=True)


def run_pipeline(task_id: Optional[str], route: Route) -> None:
    """Run one route with a fresh client pool and monitor; exit 1 on a terminal error."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    async def _main() -> str:
        pool = ClientPool(max_pool_connections=settings.MAX_POOL_CONNECTIONS)
        monitor = TransferMonitor(task_id, interval=settings.MONITOR_INTERVAL)
        pipeline = CopyPipeline(
            pool, monitor=monitor, max_unprocessed_retries=settings.MAX_UNPROCESSED_RETRIES
        )
        try:
            async with monitor:
                return await route(pipeline, settings)
        finally:
            await pool.aclose()

    try:
        summary = asyncio.run(_main())
    except CopyOperationalError as e:
        logger.error(f"Copy failed: {type(e).__name__}: {e}")
        sys.exit(1)
    logger.success(summary)


def table(name: str, settings: Settings):
    return parse_table_name(name, endpoint=settings.DYNAMODB_ENDPOINT)


def s3_url(url: str, settings: Settings):
    return parse_s3_url(url, region=settings.REGION, endpoint=settings.S3_ENDPOINT)


# ---------------------------
# Routes
# ---------------------------


@app.command("copy-table")
def copy_table(
    source: str = typer.Argument(..., help="Source table, e.g. us-west-2:orders"),
    destination: str = typer.Argument(..., help="Destination table"),
    total_segments: Optional[int] = segments_opt(),
    worker_id: int = worker_id_opt(),
    workers: int = workers_opt(),
    task_id: Optional[str] = task_id_opt(),
):
    """Copy one DynamoDB table into another."""

    async def route(p: CopyPipeline, settings: Settings) -> str:
        src, dst = table(source, settings), table(destination, settings)
        n = await p.copy_table(
            src,
            dst,
            total_segments=total_segments or settings.TOTAL_SEGMENTS,
            worker_id=worker_id,
            n_workers=workers,
        )
        return f"Copied {n} items from {src.table_name} to {dst.table_name}"

    run_pipeline(task_id, route)


@app.command("export-s3")
def export_s3(
    source: str = typer.Argument(..., help="Source table"),
    destination: str = typer.Argument(..., help="Destination prefix, e.g. s3://bucket/backups"),
    total_segments: Optional[int] = segments_opt(),
    worker_id: int = worker_id_opt(),
    workers: int = workers_opt(),
    gzip_output: bool = typer.Option(True, "--gzip/--no-gzip", help="gzip each object"),
    base_time: Optional[datetime] = typer.Option(
        None,
        "--base-time",
        formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S%z"],
        help="Timestamp used in object keys (default: now)",
    ),
    task_id: Optional[str] = task_id_opt(),
):
    """Export a table to one S3 object per scan segment."""

    async def route(p: CopyPipeline, settings: Settings) -> str:
        src = table(source, settings)
        locations = await p.export_to_s3(
            src,
            s3_url(destination, settings),
            total_segments=total_segments or settings.TOTAL_SEGMENTS,
            worker_id=worker_id,
            n_workers=workers,
            compress=gzip_output,
            base_time=base_time,
        )
        for location in locations:
            typer.echo(location.url)
        return f"Exported {src.table_name} to {len(locations)} objects"

    run_pipeline(task_id, route)


@app.command("import-s3")
def import_s3(
    source: str = typer.Argument(..., help="Source object, e.g. s3://bucket/orders.json.gz"),
    destination: str = typer.Argument(..., help="Destination table"),
    task_id: Optional[str] = task_id_opt(),
):
    """Load one S3 JSON array object into a table."""

    async def route(p: CopyPipeline, settings: Settings) -> str:
        src, dst = s3_url(source, settings), table(destination, settings)
        n = await p.import_from_s3(src, dst)
        return f"Imported {n} items from {src.url} into {dst.table_name}"

    run_pipeline(task_id, route)


@app.command("export-redis")
def export_redis(
    source: str = typer.Argument(..., help="Source table"),
    destination: str = typer.Argument(..., help="Redis URL, e.g. redis://localhost:6379/0"),
    total_segments: Optional[int] = segments_opt(),
    worker_id: int = worker_id_opt(),
    workers: int = workers_opt(),
    task_id: Optional[str] = task_id_opt(),
):
    """Store every item of a table as a Redis hash."""

    async def route(p: CopyPipeline, settings: Settings) -> str:
        src, dest = table(source, settings), parse_redis_url(destination)
        n = await p.export_to_redis(
            src,
            dest,
            total_segments=total_segments or settings.TOTAL_SEGMENTS,
            worker_id=worker_id,
            n_workers=workers,
        )
        return f"Exported {n} items from {src.table_name} to {dest.url}"

    run_pipeline(task_id, route)


@app.command("import-redis")
def import_redis(
    source: str = typer.Argument(..., help="Redis URL"),
    destination: str = typer.Argument(..., help="Destination table"),
    pattern: str = typer.Option("*", "--pattern", help="Redis key match pattern"),
    task_id: Optional[str] = task_id_opt(),
):
    """Load Redis hashes matching a key pattern into a table."""

    async def route(p: CopyPipeline, settings: Settings) -> str:
        src, dst = parse_redis_url(source), table(destination, settings)
        n = await p.import_from_redis(src, dst, key_pattern=pattern)
        return f"Imported {n} items from {src.url} into {dst.table_name}"

    run_pipeline(task_id, route)


@app.command("segments")
def segments(
    total_segments: int = typer.Option(..., "--total-segments"),
    worker_id: int = worker_id_opt(),
    workers: int = workers_opt(),
):
    """Print the segments a worker owns."""
    try:
        owned = get_segments(worker_id, workers, total_segments)
    except CopyOperationalError as e:
        logger.error(str(e))
        sys.exit(1)
    typer.echo(" ".join(str(s) for s in owned))


if __name__ == "__main__":
    app()
