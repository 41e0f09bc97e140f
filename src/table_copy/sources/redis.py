from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, List, Mapping, Optional

from loguru import logger

from copy_client.models import RedisLocation
from copy_client.pool import ClientPool

from ..types import Record
from .base import RecordSource


class RedisKeySource(RecordSource):
    """Reads Redis hashes whose keys match a SCAN pattern.

    Each page pulls up to `count` keys from the cursor scan and resolves them
    with concurrent HGETALLs; records keep key order within the page.
    No retries: errors end the stream.
    """

    name = "redis"
    DEFAULT_HIGH_WATERMARK = 100

    def __init__(
        self,
        pool: ClientPool,
        location: RedisLocation,
        *,
        key_pattern: Optional[str] = None,
        scan_count: int = 1000,
        coercion: Optional[Callable[[Mapping[str, Any]], Record]] = None,
        high_watermark: Optional[int] = None,
    ):
        super().__init__(high_watermark=high_watermark)
        self.location = location
        self.key_pattern = key_pattern or "*"
        self.scan_count = scan_count
        self._coercion = coercion
        self._client = pool.redis(location)
        self._keys: Optional[AsyncIterator[str]] = None

    async def _fetch(self, count: int) -> List[Record]:
        if self._keys is None:
            self._keys = self._client.scan_iter(match=self.key_pattern, count=self.scan_count)
        while not self._exhausted:
            keys = await self._next_keys(count)
            if not keys:
                break
            hashes = await asyncio.gather(*(self._client.hgetall(key) for key in keys))
            records = []
            for key, fields in zip(keys, hashes):
                if not fields:
                    logger.debug(f"Key {key} vanished before it could be read")
                    continue
                records.append(self._coercion(fields) if self._coercion else dict(fields))
            if records:
                return records
        return []

    async def _next_keys(self, count: int) -> List[str]:
        keys: List[str] = []
        while len(keys) < count:
            try:
                keys.append(await anext(self._keys))
            except StopAsyncIteration:
                self._exhausted = True
                break
        return keys
