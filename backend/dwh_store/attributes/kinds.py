"""
Value kinds for project attributes.

Attribute values are persisted as text next to a kind tag. This module is
the closed registry of kinds and the codecs that move a value across that
text boundary:
- ValueKind: the tag set written to project_attribute.value_type
- KindCodec: serializer (native -> canonical text) and parser (text -> native)
- TypedValue: the tagged value handed back to readers

Invariants:
    - The tag set is closed; unknown tags are rejected, never passed through
    - parse(serialize(v, k), k) == v for every value accepted by serialize
    - str inputs are always read as the text form of the value
    - bool is never accepted as an integer or a float
    - Canonical text forms never change once a kind is released

How to change safely:
    - Add a new kind at the end of ValueKind with since=KIND_REGISTRY_VERSION + 1
      and bump KIND_REGISTRY_VERSION
    - Never remove a kind; rows written with it must stay readable
    - Never change an existing serializer's output format

Example:
    >>> serialize("1234.5", ValueKind.FLOAT)
    '1234.5'
    >>> parse("1234.5", "float")
    1234.5
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Bumped whenever a kind is added to the registry
KIND_REGISTRY_VERSION = 2

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")


class ValueKind(Enum):
    """Kind tags stored in project_attribute.value_type."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"  # ISO-8601, normalized to UTC
    JSON = "json"  # Compact JSON with sorted keys

    @classmethod
    def from_str(cls, value: str | ValueKind) -> ValueKind:
        """Convert a tag to ValueKind.

        Args:
            value: Tag string (or an existing ValueKind)

        Returns:
            Corresponding ValueKind

        Raises:
            ValueError: If value is not a registered kind tag
        """
        if isinstance(value, ValueKind):
            return value
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid value kind '{value}'. Valid kinds: {valid}")


@dataclass(frozen=True)
class KindCodec:
    """Serializer/parser pair for one kind.

    Attributes:
        kind: Kind handled by this codec
        since: Registry version that introduced the kind
        serialize: Converts a native value (or its text form) to canonical text
        parse: Converts stored text back to the native value
    """

    kind: ValueKind
    since: int
    serialize: Callable[[Any], str]
    parse: Callable[[str], Any]


@dataclass(frozen=True)
class TypedValue:
    """An attribute value materialized in its native type.

    Attributes:
        kind: Declared kind of the value
        payload: Native Python value (int, float, str, bool, datetime, JSON)
    """

    kind: ValueKind
    payload: Any

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        payload = self.payload
        if isinstance(payload, datetime):
            payload = payload.isoformat()
        return {"kind": self.kind.value, "payload": payload}


def _serialize_integer(value: Any) -> str:
    return str(_to_integer(value))


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not _INTEGER_RE.fullmatch(text):
            raise ValueError(f"'{value}' is not an integer")
        number = int(text)
    else:
        raise ValueError(f"{type(value).__name__} is not an integer")

    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"{number} is outside the signed 64-bit range")
    return number


def _parse_integer(text: str) -> int:
    if not _INTEGER_RE.fullmatch(text):
        raise ValueError(f"'{text}' is not an integer")
    return _to_integer(text)


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a float")
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            raise ValueError(f"{value} does not fit in a float")
    elif isinstance(value, str):
        text = value.strip()
        if not _FLOAT_RE.fullmatch(text):
            raise ValueError(f"'{value}' is not a float")
        number = float(text)
    else:
        raise ValueError(f"{type(value).__name__} is not a float")

    if not math.isfinite(number):
        raise ValueError(f"{value!r} is not a finite float")
    return number


def _serialize_float(value: Any) -> str:
    # repr() is the shortest text that round-trips to the same double
    return repr(_to_float(value))


def _serialize_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{type(value).__name__} is not a string")
    return value


def _parse_string(text: str) -> str:
    return text


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
        raise ValueError(f"'{value}' is not a boolean")
    raise ValueError(f"{type(value).__name__} is not a boolean")


def _serialize_boolean(value: Any) -> str:
    return "true" if _to_boolean(value) else "false"


def _parse_boolean(text: str) -> bool:
    if text not in ("true", "false"):
        raise ValueError(f"'{text}' is not a boolean")
    return text == "true"


def _to_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(f"'{value}' is not an ISO-8601 timestamp")
    if not isinstance(value, datetime):
        raise ValueError(f"{type(value).__name__} is not a timestamp")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("timestamp must carry a timezone offset")
    try:
        return value.astimezone(timezone.utc)
    except OverflowError:
        raise ValueError(f"{value.isoformat()} is outside the representable UTC range")


def _serialize_timestamp(value: Any) -> str:
    return _to_timestamp(value).isoformat()


def _parse_timestamp(text: str) -> datetime:
    return _to_timestamp(text)


def _serialize_json(value: Any) -> str:
    if isinstance(value, str):
        value = _parse_json(value)
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except RecursionError:
        raise ValueError("value is nested too deeply")
    except (TypeError, ValueError) as e:
        raise ValueError(f"value is not JSON serializable: {e}")


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON text: {e.msg}")
    except RecursionError:
        raise ValueError("JSON text is nested too deeply")


_CODECS: dict[ValueKind, KindCodec] = {
    codec.kind: codec
    for codec in (
        KindCodec(ValueKind.INTEGER, 1, _serialize_integer, _parse_integer),
        KindCodec(ValueKind.FLOAT, 1, _serialize_float, _to_float),
        KindCodec(ValueKind.STRING, 1, _serialize_string, _parse_string),
        KindCodec(ValueKind.BOOLEAN, 2, _serialize_boolean, _parse_boolean),
        KindCodec(ValueKind.TIMESTAMP, 2, _serialize_timestamp, _parse_timestamp),
        KindCodec(ValueKind.JSON, 2, _serialize_json, _parse_json),
    )
}


def get_codec(kind: str | ValueKind) -> KindCodec:
    """Look up the codec for a kind tag.

    Raises:
        ValueError: If the tag is not registered
    """
    return _CODECS[ValueKind.from_str(kind)]


def supported_kinds(version: int = KIND_REGISTRY_VERSION) -> list[ValueKind]:
    """List kinds available at a registry version."""
    return [codec.kind for codec in _CODECS.values() if codec.since <= version]


def serialize(value: Any, kind: str | ValueKind) -> str:
    """Serialize a value to the canonical text form of a kind.

    Args:
        value: Native value or its text form
        kind: Target kind

    Returns:
        Canonical text to store

    Raises:
        ValueError: If the kind is unknown or value is not representable
    """
    if value is None:
        raise ValueError("null is not a storable value")
    return get_codec(kind).serialize(value)


def parse(text: str, kind: str | ValueKind) -> Any:
    """Parse stored text back into the native value of a kind.

    Raises:
        ValueError: If the kind is unknown or text does not parse
    """
    if text is None:
        raise ValueError("stored value is null")
    return get_codec(kind).parse(text)


def infer_kind(value: Any) -> ValueKind:
    """Infer the kind of an untagged native (JSON-decoded) value.

    Args:
        value: Native value

    Returns:
        Inferred ValueKind

    Raises:
        ValueError: If value is None or of an unsupported type
    """
    if value is None:
        raise ValueError("cannot infer a kind for null")
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, datetime):
        return ValueKind.TIMESTAMP
    if isinstance(value, (list, dict)):
        return ValueKind.JSON
    raise ValueError(f"cannot infer a kind for {type(value).__name__}")
