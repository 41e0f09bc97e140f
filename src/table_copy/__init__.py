"""Table copy engine

Streaming record copy between DynamoDB, S3 and Redis:
- BackoffPolicy (double on failure, halve on success)
- Sources: DynamoDB parallel-scan segments, Redis key scans, S3 JSON arrays
- Sinks: DynamoDB batch writes with unprocessed-item retry, Redis hashes,
  S3 multipart JSON (optionally gzipped)
- FieldCoercion for schema-driven type restoration
- TransferMonitor throughput reporting
- CopyPipeline / transfer driver
- Prometheus metrics
"""

from .backoff import BackoffPolicy
from .types import Record, SinkCounters
from .schema import FieldCoercion
from .codec import (
    JsonArrayDecoder,
    JsonArrayEncoder,
    from_attribute_values,
    from_json_item,
    to_attribute_values,
    to_json_item,
)
from .sources import RecordSource, DynamoDBSegmentSource, RedisKeySource, S3ObjectSource
from .sinks import RecordSink, DynamoDBTableSink, RedisHashSink, S3ObjectSink
from .monitor import MonitorReport, TransferMonitor
from .pipeline import CopyPipeline, SegmentTask, transfer

__all__ = [
    # types
    "Record",
    "SinkCounters",
    "MonitorReport",
    "SegmentTask",
    # policies
    "BackoffPolicy",
    "FieldCoercion",
    # codecs
    "JsonArrayDecoder",
    "JsonArrayEncoder",
    "from_attribute_values",
    "from_json_item",
    "to_attribute_values",
    "to_json_item",
    # sources
    "RecordSource",
    "DynamoDBSegmentSource",
    "RedisKeySource",
    "S3ObjectSource",
    # sinks
    "RecordSink",
    "DynamoDBTableSink",
    "RedisHashSink",
    "S3ObjectSink",
    # runtime
    "TransferMonitor",
    "CopyPipeline",
    "transfer",
]
