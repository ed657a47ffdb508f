"""
Project registry for dwh-store.

Projects are tracked initiatives anchored to an account address. They carry
a fixed set of identifying columns; everything category-specific lives in
the attribute store.

Invariants:
    - contract_address always resolves to an existing account
    - Only name, token, category and contract_address are mutable
    - Deleting a project deletes all of its attributes (engine cascade)
    - updated_at is refreshed on every update

How to change safely:
    - New per-category data belongs in attributes, not new columns
    - Keep the address lookup inside the same transaction as the write
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from ..errors import NotFoundError, ValidationError
from ..identity import normalize_address
from ..storage import Database, now_ms

logger = logging.getLogger(__name__)

# Column widths carried over from the original relational schema
FIELD_LIMITS = {
    "name": 128,
    "token": 64,
    "category": 128,
}

MUTABLE_FIELDS = frozenset({"name", "token", "category", "contract_address"})


@dataclass
class Project:
    """A tracked project anchored to an account.

    Attributes:
        id: Surrogate identifier
        name: Project name
        token: Token symbol
        category: Free-form category (e.g. "DEX")
        contract_address: Address of the anchoring account
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: int
    name: str
    token: str
    category: str
    contract_address: str | None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Project:
        return cls(
            id=row["id"],
            name=row["name"],
            token=row["token"],
            category=row["category"],
            contract_address=row["contract_address"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _validate_text_field(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Project {field_name} cannot be empty", field_name=field_name)
    value = value.strip()
    limit = FIELD_LIMITS[field_name]
    if len(value) > limit:
        raise ValidationError(
            f"Project {field_name} must be at most {limit} characters",
            field_name=field_name,
        )
    return value


def _require_account(tx: sqlite3.Connection, address: str) -> None:
    if not tx.execute("SELECT 1 FROM account WHERE address = ?", (address,)).fetchone():
        raise NotFoundError(
            f"Account does not exist: {address}",
            resource_type="account",
            resource_id=address,
        )


class ProjectRegistry:
    """Project CRUD operations.

    Example:
        >>> registry = ProjectRegistry(db)
        >>> project = await registry.create_project("Swapper", "SWP", "DEX", "0xabc")
        >>> await registry.update_project(project.id, token="SWAP")
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create_project(
        self,
        name: str,
        token: str,
        category: str,
        contract_address: str,
        conn: sqlite3.Connection | None = None,
    ) -> Project:
        """Create a project anchored to an existing account.

        Args:
            name: Project name
            token: Token symbol
            category: Project category
            contract_address: Address of an existing account
            conn: Enclosing transaction to join

        Returns:
            Created Project

        Raises:
            ValidationError: If a field is empty or too long
            NotFoundError: If contract_address does not resolve to an account
        """
        name = _validate_text_field("name", name)
        token = _validate_text_field("token", token)
        category = _validate_text_field("category", category)
        contract_address = normalize_address(contract_address)

        with self.db.transaction(conn) as tx:
            _require_account(tx, contract_address)
            now = now_ms()
            cursor = tx.execute(
                """
                INSERT INTO project (name, token, category, contract_address,
                                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, token, category, contract_address, now, now),
            )
            project = Project(
                id=cursor.lastrowid,
                name=name,
                token=token,
                category=category,
                contract_address=contract_address,
                created_at=now,
                updated_at=now,
            )

        logger.debug(
            "Created project",
            extra={
                "project_id": project.id,
                "category": category,
                "contract_address": contract_address,
            },
        )
        return project

    async def get_project(
        self,
        project_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> Project:
        """Get a project by ID.

        Raises:
            NotFoundError: If the project does not exist
        """
        with self.db.snapshot(conn) as tx:
            row = tx.execute("SELECT * FROM project WHERE id = ?", (project_id,)).fetchone()
        if not row:
            raise NotFoundError(
                f"Project not found: {project_id}",
                resource_type="project",
                resource_id=str(project_id),
            )
        return Project.from_row(row)

    async def update_project(
        self,
        project_id: int,
        conn: sqlite3.Connection | None = None,
        **fields: Any,
    ) -> Project:
        """Update a project's fixed columns.

        Args:
            project_id: Project identifier
            conn: Enclosing transaction to join
            **fields: Any of name, token, category, contract_address

        Returns:
            Updated Project

        Raises:
            ValidationError: If a field is unknown, empty or too long
            NotFoundError: If the project or the new account does not exist
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown project fields: {sorted(unknown)}",
                errors=sorted(unknown),
            )

        changes: dict[str, str] = {}
        for field_name, value in fields.items():
            if field_name == "contract_address":
                changes[field_name] = normalize_address(value)
            else:
                changes[field_name] = _validate_text_field(field_name, value)

        with self.db.transaction(conn) as tx:
            row = tx.execute("SELECT * FROM project WHERE id = ?", (project_id,)).fetchone()
            if not row:
                raise NotFoundError(
                    f"Project not found: {project_id}",
                    resource_type="project",
                    resource_id=str(project_id),
                )
            if "contract_address" in changes:
                _require_account(tx, changes["contract_address"])

            project = Project.from_row(row)
            for field_name, value in changes.items():
                setattr(project, field_name, value)
            project.updated_at = now_ms()

            tx.execute(
                """
                UPDATE project
                SET name = ?, token = ?, category = ?, contract_address = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    project.name,
                    project.token,
                    project.category,
                    project.contract_address,
                    project.updated_at,
                    project_id,
                ),
            )

        logger.debug(
            "Updated project",
            extra={"project_id": project_id, "fields": sorted(changes)},
        )
        return project

    async def delete_project(
        self,
        project_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Delete a project and all of its attributes.

        Returns:
            True if deleted, False if not found
        """
        with self.db.transaction(conn) as tx:
            cursor = tx.execute("DELETE FROM project WHERE id = ?", (project_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Deleted project", extra={"project_id": project_id})
        return deleted

    async def list_projects(
        self,
        category: str | None = None,
        contract_address: str | None = None,
        limit: int = 100,
        offset: int = 0,
        conn: sqlite3.Connection | None = None,
    ) -> list[Project]:
        """List projects, newest first.

        Args:
            category: Optional filter by category
            contract_address: Optional filter by anchoring address
            limit: Maximum projects to return
            offset: Pagination offset

        Returns:
            List of projects
        """
        query = "SELECT * FROM project WHERE 1 = 1"
        params: list[Any] = []

        if category is not None:
            query += " AND category = ?"
            params.append(category)
        if contract_address is not None:
            query += " AND contract_address = ?"
            params.append(normalize_address(contract_address))

        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self.db.snapshot(conn) as tx:
            cursor = tx.execute(query, params)
            return [Project.from_row(row) for row in cursor.fetchall()]
