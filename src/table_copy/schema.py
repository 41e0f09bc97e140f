"""
Schema-driven field coercion between a source and a sink.

Text-only backends (Redis hashes) lose attribute types; the destination
table's attribute definitions restore them.
"""

from __future__ import annotations

import base64
import binascii
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from copy_client.errors import SchemaCoercionError

from .types import Record


class FieldCoercion:
    """Converts declared N attributes to Decimal and B attributes to bytes."""

    def __init__(self, attribute_types: Mapping[str, str]):
        self.attribute_types = dict(attribute_types)

    @classmethod
    def from_table_description(cls, description: Mapping[str, Any]) -> "FieldCoercion":
        return cls(
            {
                attr["AttributeName"]: attr["AttributeType"]
                for attr in description.get("AttributeDefinitions", [])
            }
        )

    def __call__(self, record: Mapping[str, Any]) -> Record:
        out = dict(record)
        for name, attr_type in self.attribute_types.items():
            value = out.get(name)
            if not isinstance(value, str) or value == "":
                continue
            if attr_type == "N":
                out[name] = self._number(name, value)
            elif attr_type == "B":
                out[name] = self._binary(name, value)
        return out

    @staticmethod
    def _number(name: str, value: str) -> Decimal:
        try:
            number = Decimal(value)
        except InvalidOperation as e:
            raise SchemaCoercionError(f"Attribute {name!r} is not numeric: {value!r}") from e
        if not number.is_finite():
            raise SchemaCoercionError(f"Attribute {name!r} is not a finite number: {value!r}")
        return number

    @staticmethod
    def _binary(name: str, value: str) -> bytes:
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SchemaCoercionError(f"Attribute {name!r} is not base64: {value!r}") from e
