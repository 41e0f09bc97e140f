from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Union

Record = Dict[str, Any]
RecordInput = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]


@dataclass(frozen=True)
class SinkCounters:
    """Point-in-time copy of a sink's monitoring counters."""

    num_written: int = 0
    num_in_flight_requests: int = 0
    num_backoff_events: int = 0

    def __add__(self, other: "SinkCounters") -> "SinkCounters":
        return SinkCounters(
            self.num_written + other.num_written,
            self.num_in_flight_requests + other.num_in_flight_requests,
            self.num_backoff_events + other.num_backoff_events,
        )
