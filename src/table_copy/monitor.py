"""
Transfer monitor.

Samples the counters of every registered sink on a fixed interval and
reports progress: total written, elapsed time, write rate and backoffs since
the previous sample. Read-only: it never mutates sink state.
"""

from __future__ import annotations

import asyncio
import os
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from loguru import logger

from .metrics import MONITOR_IN_FLIGHT, MONITOR_RATE
from .types import SinkCounters


class CountingSink(Protocol):
    def counters(self) -> SinkCounters: ...


@dataclass(frozen=True)
class MonitorReport:
    """Immutable progress sample."""

    task_id: str
    total_written: int
    elapsed_seconds: float
    rate: float
    num_backoff: int
    in_flight: int

    def format(self) -> str:
        return (
            f"{self.task_id} wrote {self.total_written} items in {self.elapsed_seconds:.0f} "
            f"seconds (Rate = {self.rate:.0f} items/s, # of backoff = {self.num_backoff})"
        )


class ReportSubscriber(Protocol):
    async def __call__(self, report: MonitorReport) -> None: ...


class TransferMonitor:
    """Periodic throughput reporter for a set of sinks.

    Example:
        monitor = TransferMonitor("orders-copy", interval=5.0)
        monitor.register(sink)
        monitor.start()
        ...
        await monitor.stop()  # cancels the loop and emits one final report
    """

    MONITOR_INTERVAL = 5.0

    def __init__(
        self,
        task_id: Optional[str] = None,
        *,
        interval: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.task_id = task_id or f"PID {os.getpid()}"
        self.interval = interval if interval is not None else self.MONITOR_INTERVAL
        if self.interval <= 0:
            raise ValueError("interval must be > 0")
        self._clock = clock or time.monotonic
        self._sinks: List[CountingSink] = []
        self._subs: List[ReportSubscriber] = []
        self._task: Optional[asyncio.Task] = None
        self._start_time: Optional[float] = None
        self._last_time: Optional[float] = None
        self._last_written = 0
        self._last_backoff = 0

    def register(self, sink: CountingSink) -> None:
        self._sinks.append(sink)

    def subscribe(self, callback: ReportSubscriber) -> None:
        self._subs.append(callback)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def totals(self) -> SinkCounters:
        total = SinkCounters()
        for sink in self._sinks:
            total = total + sink.counters()
        return total

    def report(self) -> MonitorReport:
        """Take one sample, log it, and advance the incremental baselines."""
        now = self._clock()
        if self._start_time is None:
            self._start_time = self._last_time = now
        totals = self.totals()
        window = now - self._last_time
        written = totals.num_written - self._last_written
        rate = written / window if window > 0 else 0.0

        report = MonitorReport(
            task_id=self.task_id,
            total_written=totals.num_written,
            elapsed_seconds=now - self._start_time,
            rate=rate,
            num_backoff=totals.num_backoff_events - self._last_backoff,
            in_flight=totals.num_in_flight_requests,
        )
        logger.info(report.format())
        if report.in_flight > 0:
            logger.info(f"{report.in_flight} items are in flight")
        MONITOR_RATE.labels(task=self.task_id).set(rate)
        MONITOR_IN_FLIGHT.labels(task=self.task_id).set(report.in_flight)

        self._last_time = now
        self._last_written = totals.num_written
        self._last_backoff = totals.num_backoff_events
        return report

    def start(self) -> None:
        if self.running:
            return
        self._start_time = self._last_time = self._clock()
        self._task = asyncio.create_task(self._run(), name=f"monitor-{self.task_id}")

    async def stop(self) -> MonitorReport:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        report = self.report()
        await self._publish(report)
        return report

    async def __aenter__(self) -> "TransferMonitor":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self._publish(self.report())

    async def _publish(self, report: MonitorReport) -> None:
        for cb in list(self._subs):
            try:
                await cb(report)
            except Exception as exc:
                logger.debug(f"Monitor subscriber error (ignored): {type(exc).__name__}: {exc}")
