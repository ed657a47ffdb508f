"""
Attributes module for dwh-store - the typed attribute store.

This module provides:
- The closed registry of value kinds and their text codecs
- AttributeStore: validated upserts and typed reads of project attributes

Invariants:
    - (project_id, key) is unique
    - value_type is the authoritative tag used to cast value on read
    - Unknown kind tags are rejected on write and reported as corruption on read
"""

from .kinds import (
    KIND_REGISTRY_VERSION,
    KindCodec,
    TypedValue,
    ValueKind,
    get_codec,
    infer_kind,
    parse,
    serialize,
    supported_kinds,
)
from .store import AttributeInput, AttributeStore

__all__ = [
    # Kinds
    "KIND_REGISTRY_VERSION",
    "KindCodec",
    "TypedValue",
    "ValueKind",
    "get_codec",
    "infer_kind",
    "parse",
    "serialize",
    "supported_kinds",
    # Store
    "AttributeInput",
    "AttributeStore",
]
