from __future__ import annotations

import asyncio
import codecs
import zlib
from collections import deque
from typing import Any, List, Optional

from loguru import logger

from copy_client.errors import (
    AWS_ERRORS,
    ConfigurationError,
    ObjectFormatError,
    map_aws_error,
)
from copy_client.models import S3Location
from copy_client.pool import ClientPool
from copy_client.utils import ENCODING_GZIP, get_content_metadata

from ..codec import JsonArrayDecoder, from_json_item
from ..types import Record
from .base import RecordSource

DEFAULT_CHUNK_SIZE = 64 * 1024


class S3ObjectSource(RecordSource):
    """Streams the records of one S3 object.

    The body is one JSON array whose elements are DynamoDB JSON items, the
    format S3ObjectSink writes.

    gzip is the only recognised content encoding; anything else is read as
    plain text. Reads forward only: any transfer or parse error ends the stream.
    """

    name = "s3"
    DEFAULT_HIGH_WATERMARK = 100

    def __init__(
        self,
        pool: ClientPool,
        location: S3Location,
        *,
        content_encoding: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        high_watermark: Optional[int] = None,
    ):
        super().__init__(high_watermark=high_watermark)
        if not location.key:
            raise ConfigurationError("Object key is not set")
        if chunk_size <= 0:
            raise ConfigurationError("chunk_size must be > 0")
        self.location = location
        self.content_encoding = content_encoding
        self.chunk_size = chunk_size
        self._pool = pool
        self._client = pool.s3(location.region, location.endpoint)
        self._body: Any = None
        self._gunzip = None
        self._text = codecs.getincrementaldecoder("utf-8")()
        self._decoder = JsonArrayDecoder()
        self._pending: deque[Record] = deque()
        self._eof = False

    async def _open(self) -> None:
        if self.content_encoding is None:
            metadata = await get_content_metadata(self._pool, self.location)
            self.content_encoding = metadata.content_encoding
        if self.content_encoding == ENCODING_GZIP:
            self._gunzip = zlib.decompressobj(16 + zlib.MAX_WBITS)
        elif self.content_encoding:
            logger.warning(f"Unknown encoding type {self.content_encoding}. Assuming plain text")
        try:
            resp = await asyncio.to_thread(
                self._client.get_object, Bucket=self.location.bucket, Key=self.location.key
            )
        except AWS_ERRORS as e:
            raise map_aws_error(e) from e
        self._body = resp["Body"]
        logger.debug(f"Reading {self.location.url} (encoding={self.content_encoding})")

    async def _fetch(self, count: int) -> List[Record]:
        if self._body is None:
            await self._open()
        while len(self._pending) < count and not self._eof:
            try:
                chunk = await asyncio.to_thread(self._body.read, self.chunk_size)
            except AWS_ERRORS as e:
                raise map_aws_error(e) from e
            self._pending.extend(self._decode(chunk))
        batch = [self._pending.popleft() for _ in range(min(count, len(self._pending)))]
        if self._eof and not self._pending:
            self._exhausted = True
        return batch

    def _decode(self, chunk: bytes) -> List[Record]:
        final = not chunk
        try:
            data = chunk
            if self._gunzip is not None:
                data = self._gunzip.decompress(chunk) if chunk else self._gunzip.flush()
            text = self._text.decode(data, final=final)
        except (zlib.error, UnicodeDecodeError) as e:
            raise ObjectFormatError(f"Cannot decode {self.location.url}: {e}") from e
        if final:
            self._eof = True
            close = getattr(self._body, "close", None)
            if close is not None:
                close()
        return [from_json_item(item) for item in self._decoder.feed(text, final=final)]
