from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from copy_client.errors import ConfigurationError, StreamClosedError

from ..metrics import SOURCE_RECORDS_TOTAL
from ..types import Record


class RecordSource(ABC):
    """Pull-based lazy sequence of records.

    produce() fetches only when called, so at most one page is in flight and
    the consumer's demand bounds buffered records. An empty page means end of
    data. After a terminal error the source refuses further use.
    """

    name = "source"
    DEFAULT_HIGH_WATERMARK = 100

    def __init__(self, *, high_watermark: Optional[int] = None):
        high_watermark = high_watermark or self.DEFAULT_HIGH_WATERMARK
        if high_watermark <= 0:
            raise ConfigurationError("high_watermark must be > 0")
        self.high_watermark = high_watermark
        self.num_read = 0
        self.num_backoff_events = 0
        self._exhausted = False
        self._error: Optional[BaseException] = None
        self._lock = asyncio.Lock()

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def produce(self, count: Optional[int] = None) -> List[Record]:
        """Next page of at most `count` records; [] once the source is exhausted."""
        if count is not None and count <= 0:
            raise ValueError("count must be > 0")
        async with self._lock:
            if self._error is not None:
                raise StreamClosedError(f"{self.name} source failed earlier") from self._error
            if self._exhausted:
                return []
            try:
                records = await self._fetch(count or self.high_watermark)
            except Exception as exc:
                self._error = exc
                raise
            if records:
                self.num_read += len(records)
                SOURCE_RECORDS_TOTAL.labels(source=self.name).inc(len(records))
            return records

    async def records(self) -> AsyncIterator[Record]:
        while True:
            page = await self.produce()
            if not page:
                return
            for record in page:
                yield record

    def __aiter__(self) -> AsyncIterator[Record]:
        return self.records()

    @abstractmethod
    async def _fetch(self, count: int) -> List[Record]:
        """Return up to `count` records, setting _exhausted at end of data."""
