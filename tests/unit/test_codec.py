"""
Unit tests for record codecs.
"""

import json
from decimal import Decimal

import pytest

from copy_client.errors import ObjectFormatError
from table_copy import (
    JsonArrayDecoder,
    JsonArrayEncoder,
    from_attribute_values,
    from_json_item,
    to_attribute_values,
    to_json_item,
)
from table_copy.codec import dumps_record


def test_attribute_values_conversion():
    item = to_attribute_values({"id": "a", "qty": 3, "price": 1.5, "tags": {"x"}})
    assert item["id"] == {"S": "a"}
    assert item["qty"] == {"N": "3"}
    assert item["price"] == {"N": "1.5"}
    assert item["tags"] == {"SS": ["x"]}
    record = from_attribute_values(item)
    assert record["price"] == Decimal("1.5")


def test_dumps_record_handles_dynamo_types():
    text = dumps_record({"n": Decimal("2"), "f": Decimal("2.5"), "b": b"\x00\x01", "s": {"b", "a"}})
    assert text == '{"n":2,"f":2.5,"b":"AAE=","s":["a","b"]}'


def test_json_item_keeps_dynamo_types():
    record = {
        "id": "a",
        "amount": Decimal("12345678901234567890.123456789"),
        "tags": {"x", "y"},
        "sizes": {Decimal("1"), Decimal("2.5")},
        "blob": b"\x00\x01",
        "nested": {"raw": b"\xff", "items": [b"\x02", "s"]},
    }
    item = to_json_item(record)
    assert item["amount"] == {"N": "12345678901234567890.123456789"}
    assert item["blob"] == {"B": "AAE="}
    assert item["nested"]["M"]["raw"] == {"B": "/w=="}
    assert sorted(item["tags"]["SS"]) == ["x", "y"]

    restored = from_json_item(json.loads(json.dumps(item)))
    assert restored == record
    assert isinstance(restored["tags"], set)


@pytest.mark.parametrize(
    "item",
    [
        {"id": "plain"},
        {"id": {"S": "a", "N": "1"}},
        {"id": {"X": "a"}},
        {"blob": {"B": "not base64!"}},
        ["id"],
    ],
)
def test_from_json_item_rejects_untyped_values(item):
    with pytest.raises(ObjectFormatError):
        from_json_item(item)


def test_encoder_produces_array():
    enc = JsonArrayEncoder()
    text = enc.begin() + enc.encode([{"a": 1}]) + enc.encode([{"a": 2}, {"a": 3}]) + enc.end()
    assert text == '[{"a":{"N":"1"}},{"a":{"N":"2"}},{"a":{"N":"3"}}]'
    assert enc.count == 3


def test_decoder_handles_arbitrary_chunk_boundaries():
    """Feeding one character at a time yields the same records in order."""
    body = ' [ {"id": "a", "n": 12}, {"id": "b", "nested": {"x": [1, 2]}} ,{"id":"c","n":3.25}]\n'
    dec = JsonArrayDecoder()
    out = []
    for ch in body:
        out.extend(dec.feed(ch))
    out.extend(dec.feed("", final=True))
    assert [r["id"] for r in out] == ["a", "b", "c"]
    assert out[2]["n"] == Decimal("3.25")
    assert dec.done


def test_decoder_empty_array():
    dec = JsonArrayDecoder()
    assert dec.feed("[]", final=True) == []
    assert dec.done


@pytest.mark.parametrize(
    "body",
    [
        '{"id": "a"}',
        '[{"id": "a"} {"id": "b"}]',
        "[1, 2]",
        '[{"id": "a"},',
        '[{"id": "a"}] trailing',
        '[{"id": ',
    ],
)
def test_decoder_rejects_malformed_bodies(body):
    dec = JsonArrayDecoder()
    with pytest.raises(ObjectFormatError):
        dec.feed(body)
        dec.feed("", final=True)
