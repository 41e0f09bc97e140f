"""
Unit tests for RedisKeySource.
"""

from decimal import Decimal

import pytest

from copy_client import RedisLocation
from copy_client.errors import StreamClosedError
from table_copy import FieldCoercion, RedisKeySource


@pytest.fixture
def hashes(fake_redis):
    for i in range(7):
        fake_redis.hashes[f"o-{i}:2024"] = {"id": f"o-{i}", "qty": str(i * 10)}
    fake_redis.hashes["session:abc"] = {"user": "u1"}
    return fake_redis


@pytest.mark.asyncio
async def test_reads_matching_hashes_in_pages(pool, hashes):
    source = RedisKeySource(pool, RedisLocation(), key_pattern="o-*", high_watermark=3)
    pages = []
    while True:
        page = await source.produce()
        if not page:
            break
        pages.append(page)
    assert [len(p) for p in pages] == [3, 3, 1]
    ids = [r["id"] for p in pages for r in p]
    assert ids == [f"o-{i}" for i in range(7)]
    assert source.exhausted


@pytest.mark.asyncio
async def test_coercion_restores_numbers(pool, hashes):
    coerce = FieldCoercion({"qty": "N"})
    source = RedisKeySource(pool, RedisLocation(), key_pattern="o-*", coercion=coerce)
    records = [r async for r in source]
    assert records[3]["qty"] == Decimal("30")


@pytest.mark.asyncio
async def test_default_pattern_reads_everything(pool, hashes):
    source = RedisKeySource(pool, RedisLocation())
    records = [r async for r in source]
    assert len(records) == 8


@pytest.mark.asyncio
async def test_error_ends_the_stream(pool, hashes):
    hashes.fail_hgetall = ConnectionError("redis went away")
    source = RedisKeySource(pool, RedisLocation())
    with pytest.raises(ConnectionError):
        await source.produce()
    with pytest.raises(StreamClosedError):
        await source.produce()
