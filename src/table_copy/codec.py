"""
Record codecs.

DynamoDB attribute-value conversion at the table boundary, and an incremental
JSON array codec for object bodies.
"""

from __future__ import annotations

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Iterable, List, Mapping

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

from copy_client.errors import ObjectFormatError

from .types import Record

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

_WHITESPACE = " \t\n\r"


def _to_dynamo_value(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: _to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo_value(v) for v in value]
    return value


def to_attribute_values(record: Mapping[str, Any]) -> dict:
    """Plain record -> DynamoDB wire item ({"name": {"S": "..."}})."""
    return {k: _serializer.serialize(_to_dynamo_value(v)) for k, v in record.items()}


def from_attribute_values(item: Mapping[str, Any]) -> Record:
    """DynamoDB wire item -> plain record (numbers as Decimal)."""
    return {k: _deserializer.deserialize(v) for k, v in item.items()}


def _b64(value: Any) -> str:
    if isinstance(value, Binary):
        value = value.value
    return base64.b64encode(bytes(value)).decode("ascii")


def _binary_to_text(av: Mapping[str, Any]) -> dict:
    (tag, value), = av.items()
    if tag == "B":
        return {"B": _b64(value)}
    if tag == "BS":
        return {"BS": [_b64(v) for v in value]}
    if tag == "M":
        return {"M": {k: _binary_to_text(v) for k, v in value.items()}}
    if tag == "L":
        return {"L": [_binary_to_text(v) for v in value]}
    return dict(av)


def _text_to_binary(av: Any) -> dict:
    if not isinstance(av, Mapping) or len(av) != 1:
        raise ObjectFormatError(f"Not a DynamoDB attribute value: {av!r}")
    (tag, value), = av.items()
    if tag == "B":
        return {"B": base64.b64decode(value, validate=True)}
    if tag == "BS":
        return {"BS": [base64.b64decode(v, validate=True) for v in value]}
    if tag == "M":
        return {"M": {k: _text_to_binary(v) for k, v in value.items()}}
    if tag == "L":
        return {"L": [_text_to_binary(v) for v in value]}
    return {tag: value}


def to_json_item(record: Mapping[str, Any]) -> dict:
    """Plain record -> DynamoDB JSON, binary values as base64 text.

    Numbers stay exact decimal text and sets keep their SS/NS/BS type, so
    from_json_item() restores the record unchanged.
    """
    return {k: _binary_to_text(v) for k, v in to_attribute_values(record).items()}


def from_json_item(item: Any) -> Record:
    if not isinstance(item, Mapping):
        raise ObjectFormatError(f"Array element is not an object: {item!r}")
    try:
        return from_attribute_values({k: _text_to_binary(v) for k, v in item.items()})
    except (TypeError, ValueError, AttributeError, ArithmeticError, binascii.Error) as e:
        raise ObjectFormatError(f"Not a DynamoDB JSON item: {e}") from e


def dumps_item(record: Mapping[str, Any]) -> str:
    return json.dumps(to_json_item(record), separators=(",", ":"))


def json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return float(obj)
    if isinstance(obj, Binary):
        return base64.b64encode(obj.value).decode("ascii")
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps_record(record: Mapping[str, Any]) -> str:
    return json.dumps(record, default=json_default, separators=(",", ":"))


class JsonArrayEncoder:
    """Writes records as the DynamoDB JSON elements of one top-level array."""

    def __init__(self) -> None:
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def begin(self) -> str:
        return "["

    def encode(self, records: Iterable[Mapping[str, Any]]) -> str:
        parts = []
        for record in records:
            parts.append(("," if self._count else "") + dumps_item(record))
            self._count += 1
        return "".join(parts)

    def end(self) -> str:
        return "]"


class JsonArrayDecoder:
    """Incremental parser for a top-level JSON array of objects.

    feed() returns every element completed so far; an element ending exactly
    at the end of the buffered text is held back until more text or the final
    feed arrives, since a number may continue in the next chunk.
    """

    _START, _FIRST, _VALUE, _SEPARATOR, _DONE = range(5)

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder(parse_float=Decimal)
        self._buf = ""
        self._state = self._START

    @property
    def done(self) -> bool:
        return self._state == self._DONE

    def feed(self, text: str, final: bool = False) -> List[Record]:
        buf = self._buf + text
        pos = 0
        out: List[Record] = []
        while True:
            while pos < len(buf) and buf[pos] in _WHITESPACE:
                pos += 1
            if pos == len(buf):
                break
            ch = buf[pos]
            if self._state == self._START:
                if ch != "[":
                    raise ObjectFormatError(f"Expected '[' at start of object body, got {ch!r}")
                pos += 1
                self._state = self._FIRST
            elif self._state in (self._FIRST, self._VALUE):
                if self._state == self._FIRST and ch == "]":
                    pos += 1
                    self._state = self._DONE
                    continue
                try:
                    obj, end = self._decoder.raw_decode(buf, pos)
                except json.JSONDecodeError as e:
                    if final:
                        raise ObjectFormatError(f"Malformed array element: {e}") from e
                    break
                if end == len(buf) and not final:
                    break
                if not isinstance(obj, dict):
                    raise ObjectFormatError(f"Array element is not an object: {obj!r}")
                out.append(obj)
                pos = end
                self._state = self._SEPARATOR
            elif self._state == self._SEPARATOR:
                if ch == ",":
                    self._state = self._VALUE
                elif ch == "]":
                    self._state = self._DONE
                else:
                    raise ObjectFormatError(f"Expected ',' or ']' between elements, got {ch!r}")
                pos += 1
            else:
                raise ObjectFormatError("Trailing data after end of array")
        self._buf = buf[pos:]
        if final and self._state != self._DONE:
            raise ObjectFormatError("Object body ended before the array was closed")
        return out
