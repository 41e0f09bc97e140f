from __future__ import annotations

import asyncio
import base64
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from boto3.dynamodb.types import Binary
from loguru import logger

from copy_client.errors import ConfigurationError, RecordKeyError
from copy_client.models import RedisLocation
from copy_client.pool import ClientPool

from ..codec import dumps_record
from ..types import Record
from .base import RecordSink


def field_text(value: Any) -> str:
    """Text form of one attribute value as stored in a Redis hash field."""
    if isinstance(value, str):
        return value
    if isinstance(value, Binary):
        value = value.value
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (Decimal, int, float)) and not isinstance(value, bool):
        return str(value)
    return dumps_record(value)


class RedisHashSink(RecordSink):
    """Stores each record as a Redis hash keyed by "<hash>:<range>".

    Writes overwrite fields, so replaying a record leaves the same hash.
    No retries: the store is treated as local and reliable.
    """

    name = "redis"
    KEY_DELIMITER = ":"

    def __init__(
        self,
        pool: ClientPool,
        location: RedisLocation,
        *,
        hash_key: str,
        range_key: Optional[str] = None,
    ):
        super().__init__()
        if not hash_key:
            raise ConfigurationError("hash_key is required")
        self.location = location
        self.hash_key = hash_key
        self.range_key = range_key
        self._client = pool.redis(location)
        logger.debug(f"Key schema is Hash: {hash_key}, Range: {range_key}")

    @classmethod
    def from_table_description(
        cls, pool: ClientPool, location: RedisLocation, description: Mapping[str, Any]
    ) -> "RedisHashSink":
        hash_key = range_key = None
        for element in description.get("KeySchema", []):
            if element["KeyType"] == "HASH":
                hash_key = element["AttributeName"]
            elif element["KeyType"] == "RANGE":
                range_key = element["AttributeName"]
        if hash_key is None:
            raise ConfigurationError("Table description has no HASH key")
        return cls(pool, location, hash_key=hash_key, range_key=range_key)

    def get_hash_key(self, record: Mapping[str, Any]) -> str:
        parts = [self.hash_key] + ([self.range_key] if self.range_key else [])
        values = []
        for attr in parts:
            if record.get(attr) is None:
                raise RecordKeyError(f"Record has no {attr!r} key attribute")
            values.append(field_text(record[attr]))
        return self.KEY_DELIMITER.join(values)

    async def write_item(self, record: Mapping[str, Any]) -> None:
        key = self.get_hash_key(record)
        mapping = {name: field_text(value) for name, value in record.items()}
        await self._client.hset(key, mapping=mapping)
        self._num_written += 1

    async def _write(self, batch: List[Record]) -> None:
        self._num_in_flight += len(batch)
        try:
            await asyncio.gather(*(self.write_item(record) for record in batch))
        finally:
            self._num_in_flight -= len(batch)
