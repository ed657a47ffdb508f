"""
Typed attribute store for dwh-store.

Each project carries an open set of key/value attributes. Values are stored
as canonical text next to a kind tag so new metrics never require a schema
migration; all type safety lives here, validated on write and cast on read.

Invariants:
    - At most one row per (project_id, key); a repeated write is an update
    - Nothing is written unless the value serializes under its kind
    - Upserts are a single statement inside BEGIN IMMEDIATE, so concurrent
      writers to the same key serialize to last-write-wins
    - A key's kind only changes when the caller confirms it
    - Reads never return raw text: every value is parsed by its tag, and a
      row that fails to parse is reported as CorruptionError for that key

How to change safely:
    - Add kinds in kinds.py, never special-case tags here
    - Never write value/value_type outside set_attribute(s)
    - Keep list_attributes partial-failure tolerant
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..errors import CorruptionError, KindChangeError, NotFoundError, ValidationError
from ..storage import Database
from . import kinds
from .kinds import TypedValue, ValueKind

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 128


@dataclass(frozen=True)
class AttributeInput:
    """One attribute write in a batch.

    Attributes:
        key: Attribute key
        value: Native value or its text form
        kind: Kind tag (or ValueKind)
        allow_kind_change: Confirm replacing a different existing kind
    """

    key: str
    value: Any
    kind: str | ValueKind
    allow_kind_change: bool = False


@dataclass(frozen=True)
class _Prepared:
    key: str
    kind: ValueKind
    text: str
    typed: TypedValue
    allow_kind_change: bool


def _validate_key(key: Any) -> str:
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("Attribute key cannot be empty", field_name="key")
    if key != key.strip():
        raise ValidationError(
            f"Attribute key '{key}' has surrounding whitespace", field_name="key"
        )
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(
            f"Attribute key must be at most {MAX_KEY_LENGTH} characters", field_name="key"
        )
    return key


def _prepare(
    key: str,
    value: Any,
    value_type: str | ValueKind,
    allow_kind_change: bool = False,
) -> _Prepared:
    """Validate and serialize one write before touching storage."""
    key = _validate_key(key)
    try:
        kind = ValueKind.from_str(value_type)
    except ValueError as e:
        raise ValidationError(str(e), field_name=key) from e

    try:
        text = kinds.serialize(value, kind)
        payload = kinds.parse(text, kind)
    except ValueError as e:
        raise ValidationError(
            f"Attribute '{key}' cannot be stored as {kind.value}: {e}",
            field_name=key,
            errors=[str(e)],
        ) from e

    return _Prepared(
        key=key,
        kind=kind,
        text=text,
        typed=TypedValue(kind=kind, payload=payload),
        allow_kind_change=allow_kind_change,
    )


def _materialize(project_id: int, row: sqlite3.Row) -> TypedValue:
    """Parse a stored row back into its typed value.

    Raises:
        CorruptionError: If the tag is unknown or the text does not parse
    """
    try:
        kind = ValueKind.from_str(row["value_type"])
    except ValueError:
        raise CorruptionError(
            project_id,
            row["key"],
            row["value_type"],
            row["value"],
            reason=f"unknown value kind '{row['value_type']}'",
        )
    try:
        return TypedValue(kind=kind, payload=kinds.parse(row["value"], kind))
    except ValueError as e:
        raise CorruptionError(project_id, row["key"], kind.value, row["value"], reason=str(e))


class AttributeStore:
    """Typed key/value attributes attached to projects.

    Example:
        >>> store = AttributeStore(db)
        >>> await store.set_attribute(project.id, "tvl", "1234.5", "float")
        TypedValue(kind=<ValueKind.FLOAT: 'float'>, payload=1234.5)
        >>> await store.get_attribute(project.id, "tvl")
        TypedValue(kind=<ValueKind.FLOAT: 'float'>, payload=1234.5)
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def _require_project(self, tx: sqlite3.Connection, project_id: int) -> None:
        if not tx.execute("SELECT 1 FROM project WHERE id = ?", (project_id,)).fetchone():
            raise NotFoundError(
                f"Project not found: {project_id}",
                resource_type="project",
                resource_id=str(project_id),
            )

    def _upsert(self, tx: sqlite3.Connection, project_id: int, item: _Prepared) -> None:
        row = tx.execute(
            "SELECT value_type FROM project_attribute WHERE project_id = ? AND key = ?",
            (project_id, item.key),
        ).fetchone()

        if row and row["value_type"] != item.kind.value:
            if not item.allow_kind_change:
                raise KindChangeError(project_id, item.key, row["value_type"], item.kind.value)
            logger.warning(
                "Changing attribute kind",
                extra={
                    "project_id": project_id,
                    "key": item.key,
                    "old_kind": row["value_type"],
                    "new_kind": item.kind.value,
                },
            )

        tx.execute(
            """
            INSERT INTO project_attribute (project_id, key, value, value_type)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (project_id, key)
            DO UPDATE SET value = excluded.value, value_type = excluded.value_type
            """,
            (project_id, item.key, item.text, item.kind.value),
        )

    async def set_attribute(
        self,
        project_id: int,
        key: str,
        value: Any,
        value_type: str | ValueKind,
        *,
        allow_kind_change: bool = False,
        conn: sqlite3.Connection | None = None,
    ) -> TypedValue:
        """Insert or replace one attribute.

        Args:
            project_id: Owning project
            key: Attribute key
            value: Native value or its text form
            value_type: Kind tag
            allow_kind_change: Confirm replacing an existing key of another kind
            conn: Enclosing transaction to join

        Returns:
            The stored value, as a reader will see it

        Raises:
            ValidationError: If the value cannot be represented as value_type
            NotFoundError: If the project does not exist
            KindChangeError: If the key exists with another kind and the
                change was not confirmed
        """
        item = _prepare(key, value, value_type, allow_kind_change)

        with self.db.transaction(conn) as tx:
            self._require_project(tx, project_id)
            self._upsert(tx, project_id, item)

        logger.debug(
            "Set attribute",
            extra={"project_id": project_id, "key": item.key, "kind": item.kind.value},
        )
        return item.typed

    async def set_attributes(
        self,
        project_id: int,
        items: Iterable[AttributeInput],
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, TypedValue]:
        """Insert or replace several attributes atomically.

        Every item is validated before any row is written; either all of
        them are stored or none are.

        Returns:
            Mapping of key to stored value

        Raises:
            ValidationError: If any item is invalid or a key repeats
            NotFoundError: If the project does not exist
            KindChangeError: If any item changes a kind without confirmation
        """
        prepared = [
            _prepare(item.key, item.value, item.kind, item.allow_kind_change) for item in items
        ]
        seen: set[str] = set()
        for item in prepared:
            if item.key in seen:
                raise ValidationError(f"Attribute '{item.key}' given twice", field_name=item.key)
            seen.add(item.key)

        with self.db.transaction(conn) as tx:
            self._require_project(tx, project_id)
            for item in prepared:
                self._upsert(tx, project_id, item)

        logger.debug(
            "Set attributes",
            extra={"project_id": project_id, "keys": sorted(seen)},
        )
        return {item.key: item.typed for item in prepared}

    async def get_attribute(
        self,
        project_id: int,
        key: str,
        conn: sqlite3.Connection | None = None,
    ) -> TypedValue:
        """Get one attribute in its native type.

        Raises:
            NotFoundError: If the project or the key does not exist
            CorruptionError: If the stored text fails to parse as its kind
        """
        with self.db.snapshot(conn) as tx:
            row = tx.execute(
                """
                SELECT key, value, value_type FROM project_attribute
                WHERE project_id = ? AND key = ?
                """,
                (project_id, key),
            ).fetchone()
            if not row:
                self._require_project(tx, project_id)
                raise NotFoundError(
                    f"Attribute '{key}' not found for project {project_id}",
                    resource_type="project_attribute",
                    resource_id=f"{project_id}:{key}",
                )

        return _materialize(project_id, row)

    async def list_attributes(
        self,
        project_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, TypedValue | CorruptionError]:
        """Get every attribute of a project in its native type.

        A row that fails to parse does not abort the listing; its key maps
        to a CorruptionError instead of a value.

        Returns:
            Mapping of key to TypedValue or CorruptionError, ordered by key

        Raises:
            NotFoundError: If the project does not exist
        """
        with self.db.snapshot(conn) as tx:
            self._require_project(tx, project_id)
            rows = tx.execute(
                """
                SELECT key, value, value_type FROM project_attribute
                WHERE project_id = ?
                ORDER BY key
                """,
                (project_id,),
            ).fetchall()

        result: dict[str, TypedValue | CorruptionError] = {}
        for row in rows:
            try:
                result[row["key"]] = _materialize(project_id, row)
            except CorruptionError as e:
                logger.warning(
                    "Corrupted attribute",
                    extra={"project_id": project_id, "key": row["key"], "reason": e.reason},
                )
                result[row["key"]] = e
        return result

    async def delete_attribute(
        self,
        project_id: int,
        key: str,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Delete one attribute. Deleting an absent key is not an error.

        Returns:
            True if a row was removed, False if it was already absent
        """
        with self.db.transaction(conn) as tx:
            cursor = tx.execute(
                "DELETE FROM project_attribute WHERE project_id = ? AND key = ?",
                (project_id, key),
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.debug("Deleted attribute", extra={"project_id": project_id, "key": key})
        return deleted

    async def find_corrupt_attributes(
        self,
        project_id: int | None = None,
    ) -> list[CorruptionError]:
        """Scan stored attributes for rows that fail to parse.

        Args:
            project_id: Restrict the scan to one project

        Returns:
            One CorruptionError per corrupted row
        """
        query = "SELECT project_id, key, value, value_type FROM project_attribute"
        params: tuple[Any, ...] = ()
        if project_id is not None:
            query += " WHERE project_id = ?"
            params = (project_id,)
        query += " ORDER BY project_id, key"

        corrupted = []
        with self.db.snapshot() as tx:
            for row in tx.execute(query, params):
                try:
                    _materialize(row["project_id"], row)
                except CorruptionError as e:
                    corrupted.append(e)
        return corrupted
