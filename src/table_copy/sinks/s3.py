from __future__ import annotations

import asyncio
import gzip
import io
from typing import Any, List, Optional

from loguru import logger

from copy_client.errors import (
    AWS_ERRORS,
    ConfigurationError,
    error_code,
    is_retryable,
    map_aws_error,
)
from copy_client.models import S3Location
from copy_client.pool import ClientPool
from copy_client.utils import ENCODING_GZIP

from ..backoff import BackoffPolicy
from ..codec import JsonArrayEncoder
from ..types import Record
from .base import RecordSink

MIN_PART_SIZE = 5 * 1024 * 1024
DEFAULT_PART_SIZE = 8 * 1024 * 1024
DEFAULT_MAX_RETRIES = 10


class S3ObjectSink(RecordSink):
    """Streams records into one S3 object as a JSON array, optionally gzipped.

    The body is uploaded with the multipart API as it grows. close() returns,
    and `finished` is set, only after CompleteMultipartUpload confirms the
    object; finishing local buffering alone is not enough. Throttling,
    5xx responses and dropped connections are retried after a backoff, up
    to max_retries times per call.
    """

    name = "s3"
    DEFAULT_HIGH_WATERMARK = 50

    def __init__(
        self,
        pool: ClientPool,
        location: S3Location,
        *,
        compress: bool = False,
        part_size: int = DEFAULT_PART_SIZE,
        compress_level: int = 6,
        backoff: Optional[BackoffPolicy] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        super().__init__()
        if not location.key:
            raise ConfigurationError("Object key is not set")
        if part_size < MIN_PART_SIZE:
            raise ConfigurationError(f"part_size must be >= {MIN_PART_SIZE} bytes")
        self.location = location
        self.compress = compress
        self.part_size = part_size
        self.max_retries = max_retries
        self.upload_result: Optional[dict[str, Any]] = None
        self.finished = asyncio.Event()

        self._client = pool.s3(location.region, location.endpoint)
        self._backoff = backoff or BackoffPolicy.for_object_transfer()
        self._encoder = JsonArrayEncoder()
        self._spool = io.BytesIO()
        self._gzip = (
            gzip.GzipFile(fileobj=self._spool, mode="wb", compresslevel=compress_level)
            if compress
            else None
        )
        self._started = False
        self._upload_id: Optional[str] = None
        self._parts: List[dict[str, Any]] = []
        self._bytes_uploaded = 0

        if compress:
            logger.info(f"Streaming to {location.url} with encoding {ENCODING_GZIP}")
        else:
            logger.info(f"Streaming to {location.url} without encoding")

    # ---------- RecordSink hooks ----------

    async def _write(self, batch: List[Record]) -> None:
        if not self._started:
            self._emit(self._encoder.begin())
            self._started = True
        self._emit(self._encoder.encode(batch))
        self._num_written += len(batch)
        if self._spool.tell() >= self.part_size:
            await self._upload_part(self._drain())

    async def _finish(self) -> None:
        logger.debug("End of input stream reached.")
        if not self._started:
            self._emit(self._encoder.begin())
            self._started = True
        self._emit(self._encoder.end())
        if self._gzip is not None:
            self._gzip.close()
        await self._upload_part(self._drain())
        resp = await self._call(
            self._client.complete_multipart_upload,
            Bucket=self.location.bucket,
            Key=self.location.key,
            UploadId=self._upload_id,
            MultipartUpload={"Parts": self._parts},
        )
        self.upload_result = resp
        self.finished.set()
        logger.info(
            f"Uploaded {self._encoder.count} records to {self.location.url} "
            f"({self._bytes_uploaded} bytes in {len(self._parts)} parts)"
        )

    async def _abort(self) -> None:
        if self._upload_id is None:
            return
        upload_id, self._upload_id = self._upload_id, None
        try:
            await asyncio.to_thread(
                self._client.abort_multipart_upload,
                Bucket=self.location.bucket,
                Key=self.location.key,
                UploadId=upload_id,
            )
        except AWS_ERRORS as e:
            logger.warning(f"Failed to abort multipart upload of {self.location.url}: {e}")

    # ---------- internals ----------

    def _emit(self, text: str) -> None:
        data = text.encode("utf-8")
        if self._gzip is not None:
            self._gzip.write(data)
        else:
            self._spool.write(data)

    def _drain(self) -> bytes:
        data = self._spool.getvalue()
        self._spool.seek(0)
        self._spool.truncate()
        return data

    async def _call(self, method, **params) -> dict[str, Any]:
        attempts = 0
        while True:
            try:
                resp = await asyncio.to_thread(method, **params)
            except AWS_ERRORS as e:
                if not is_retryable(e) or attempts >= self.max_retries:
                    raise map_aws_error(e) from e
                attempts += 1
                code = error_code(e) or type(e).__name__
                logger.warning(f"Retry-able exception encountered: {code}")
                self._record_backoff()
                await self._backoff.execute()
                continue
            await self._backoff.skip()
            return resp

    async def _start_upload(self) -> str:
        params: dict[str, Any] = {
            "Bucket": self.location.bucket,
            "Key": self.location.key,
            "ContentType": "application/json",
        }
        if self.compress:
            params["ContentEncoding"] = ENCODING_GZIP
        resp = await self._call(self._client.create_multipart_upload, **params)
        return resp["UploadId"]

    async def _upload_part(self, data: bytes) -> None:
        if self._upload_id is None:
            self._upload_id = await self._start_upload()
        part_number = len(self._parts) + 1
        resp = await self._call(
            self._client.upload_part,
            Bucket=self.location.bucket,
            Key=self.location.key,
            UploadId=self._upload_id,
            PartNumber=part_number,
            Body=data,
        )
        self._parts.append({"ETag": resp["ETag"], "PartNumber": part_number})
        self._bytes_uploaded += len(data)
        logger.debug(
            f"Progress: part {part_number} of {self.location.key} loaded "
            f"{self._bytes_uploaded} in total."
        )
