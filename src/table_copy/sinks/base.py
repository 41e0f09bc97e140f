from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import List, Mapping, Optional

from copy_client.errors import StreamClosedError

from ..metrics import BACKOFF_EVENTS_TOTAL, SINK_WRITE_LATENCY, SINK_WRITES_TOTAL
from ..types import Record, RecordInput, SinkCounters


class RecordSink(ABC):
    """Consumes records one at a time or in groups.

    consume() returns once the group is written (or buffered, for sinks that
    stream). Counters are read by TransferMonitor and never written by it.
    A sink that surfaced a terminal error, or was closed, refuses more input.
    """

    name = "sink"

    def __init__(self) -> None:
        self._num_written = 0
        self._num_in_flight = 0
        self._num_backoff = 0
        self._closed = False
        self._error: Optional[BaseException] = None

    # ---------- counters ----------

    @property
    def num_written(self) -> int:
        return self._num_written

    @property
    def num_in_flight_requests(self) -> int:
        return self._num_in_flight

    @property
    def num_backoff_events(self) -> int:
        return self._num_backoff

    @property
    def closed(self) -> bool:
        return self._closed

    def counters(self) -> SinkCounters:
        return SinkCounters(self._num_written, self._num_in_flight, self._num_backoff)

    def _record_backoff(self) -> None:
        self._num_backoff += 1
        BACKOFF_EVENTS_TOTAL.labels(component=f"{self.name}_write").inc()

    # ---------- public API ----------

    async def consume(self, records: RecordInput) -> None:
        self._ensure_usable()
        batch: List[Record] = [records] if isinstance(records, Mapping) else list(records)
        if not batch:
            return
        start = time.perf_counter()
        try:
            await self._write(batch)
        except Exception as exc:
            self._error = exc
            SINK_WRITES_TOTAL.labels(sink=self.name, status="failure").inc()
            raise
        SINK_WRITES_TOTAL.labels(sink=self.name, status="success").inc()
        SINK_WRITE_LATENCY.labels(sink=self.name).observe(time.perf_counter() - start)

    async def close(self) -> None:
        """Flush and confirm everything consumed so far."""
        if self._closed:
            return
        self._ensure_usable()
        self._closed = True
        try:
            await self._finish()
        except Exception as exc:
            self._error = exc
            await self._abort()
            raise

    async def abort(self) -> None:
        if self._closed and self._error is None:
            return
        self._closed = True
        await self._abort()

    async def __aenter__(self) -> "RecordSink":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None and self._error is None:
            await self.close()
        else:
            await self.abort()

    # ---------- internals ----------

    def _ensure_usable(self) -> None:
        if self._error is not None:
            raise StreamClosedError(f"{self.name} sink failed earlier") from self._error
        if self._closed:
            raise StreamClosedError(f"{self.name} sink is closed")

    @abstractmethod
    async def _write(self, batch: List[Record]) -> None: ...

    async def _finish(self) -> None:
        return None

    async def _abort(self) -> None:
        return None
