"""
Identity graph: entities and the on-chain accounts they own.

An Entity is a real-world organization or individual. An Account is an
on-chain address belonging to at most one entity. Projects reference
accounts by address, so deleting an entity or account cascades through
projects down to their attributes.

Invariants:
    - address is unique across all accounts
    - address never changes once written (projects join on it)
    - Deleting an entity removes its accounts, their projects and attributes
      in one transaction, or nothing at all
    - An account owned by one entity is never silently moved to another

How to change safely:
    - Keep upserts inside a single BEGIN IMMEDIATE transaction
    - Never add an address rename; create a new account instead
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from ..errors import ConflictError, NotFoundError, ValidationError, translate_integrity_error
from ..storage import Database, now_ms

logger = logging.getLogger(__name__)

MAX_ENTITY_NAME_LENGTH = 128
MAX_ADDRESS_LENGTH = 64


@dataclass
class Entity:
    """A real-world organization or individual.

    Attributes:
        id: Surrogate identifier
        name: Display name
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: int
    name: str
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Entity:
        return cls(
            id=row["id"],
            name=row["name"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class Account:
    """An on-chain address, optionally owned by an entity.

    Attributes:
        id: Surrogate identifier
        address: On-chain address (natural key)
        entity_id: Owning entity, if any
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: int
    address: str
    entity_id: int | None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Account:
        return cls(
            id=row["id"],
            address=row["address"],
            entity_id=row["entity_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def normalize_address(address: str) -> str:
    """Strip and validate an on-chain address.

    Raises:
        ValidationError: If the address is empty or too long
    """
    if not isinstance(address, str):
        raise ValidationError("Address must be a string", field_name="address")
    address = address.strip()
    if not address:
        raise ValidationError("Address cannot be empty", field_name="address")
    if len(address) > MAX_ADDRESS_LENGTH:
        raise ValidationError(
            f"Address must be at most {MAX_ADDRESS_LENGTH} characters",
            field_name="address",
        )
    return address


def _validate_entity_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Entity name cannot be empty", field_name="name")
    name = name.strip()
    if len(name) > MAX_ENTITY_NAME_LENGTH:
        raise ValidationError(
            f"Entity name must be at most {MAX_ENTITY_NAME_LENGTH} characters",
            field_name="name",
        )
    return name


class IdentityGraph:
    """Entity and account operations.

    Every public method accepts an optional ``conn`` so the access layer can
    compose several operations into one transaction.

    Example:
        >>> graph = IdentityGraph(db)
        >>> acme = await graph.upsert_entity("Acme Labs")
        >>> account = await graph.upsert_account("0xabc", acme.id)
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def upsert_entity(
        self,
        name: str,
        conn: sqlite3.Connection | None = None,
    ) -> Entity:
        """Return the entity with this name, creating it on first reference.

        Args:
            name: Entity name
            conn: Enclosing transaction to join

        Returns:
            Existing (oldest) or newly created Entity

        Raises:
            ValidationError: If the name is empty or too long
        """
        name = _validate_entity_name(name)

        with self.db.transaction(conn) as tx:
            row = tx.execute(
                "SELECT * FROM entity WHERE name = ? ORDER BY id LIMIT 1",
                (name,),
            ).fetchone()
            if row:
                return Entity.from_row(row)

            now = now_ms()
            cursor = tx.execute(
                "INSERT INTO entity (name, created_at, updated_at) VALUES (?, ?, ?)",
                (name, now, now),
            )
            entity = Entity(id=cursor.lastrowid, name=name, created_at=now, updated_at=now)

        logger.debug("Created entity", extra={"entity_id": entity.id, "entity_name": name})
        return entity

    async def get_entity(
        self,
        entity_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> Entity:
        """Get an entity by ID.

        Raises:
            NotFoundError: If the entity does not exist
        """
        with self.db.snapshot(conn) as tx:
            row = tx.execute("SELECT * FROM entity WHERE id = ?", (entity_id,)).fetchone()
        if not row:
            raise NotFoundError(
                f"Entity not found: {entity_id}",
                resource_type="entity",
                resource_id=str(entity_id),
            )
        return Entity.from_row(row)

    async def delete_entity(
        self,
        entity_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Delete an entity with its accounts, projects and attributes.

        The cascade is performed by the storage engine inside a single
        transaction, so it either completes fully or not at all.

        Returns:
            True if deleted, False if the entity was already absent
        """
        with self.db.transaction(conn) as tx:
            accounts = tx.execute(
                "SELECT COUNT(*) FROM account WHERE entity_id = ?", (entity_id,)
            ).fetchone()[0]
            cursor = tx.execute("DELETE FROM entity WHERE id = ?", (entity_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(
                "Deleted entity",
                extra={"entity_id": entity_id, "cascaded_accounts": accounts},
            )
        return deleted

    async def upsert_account(
        self,
        address: str,
        entity_id: int | None = None,
        *,
        reassign: bool = False,
        conn: sqlite3.Connection | None = None,
    ) -> Account:
        """Return the account for an address, creating it if absent.

        Args:
            address: On-chain address (natural key)
            entity_id: Owning entity to assign, if any
            reassign: Allow moving an account owned by another entity
            conn: Enclosing transaction to join

        Returns:
            Existing or newly created Account

        Raises:
            ValidationError: If the address is invalid
            NotFoundError: If entity_id does not exist
            ConflictError: If the address belongs to a different entity and
                reassign is False
        """
        address = normalize_address(address)

        with self.db.transaction(conn) as tx:
            if entity_id is not None:
                exists = tx.execute("SELECT 1 FROM entity WHERE id = ?", (entity_id,)).fetchone()
                if not exists:
                    raise NotFoundError(
                        f"Entity not found: {entity_id}",
                        resource_type="entity",
                        resource_id=str(entity_id),
                    )

            row = tx.execute("SELECT * FROM account WHERE address = ?", (address,)).fetchone()
            now = now_ms()

            if row is None:
                try:
                    cursor = tx.execute(
                        """
                        INSERT INTO account (address, entity_id, created_at, updated_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (address, entity_id, now, now),
                    )
                except sqlite3.IntegrityError as e:
                    raise translate_integrity_error(e, "account", address) from e
                account = Account(
                    id=cursor.lastrowid,
                    address=address,
                    entity_id=entity_id,
                    created_at=now,
                    updated_at=now,
                )
                logger.debug(
                    "Created account",
                    extra={"account_id": account.id, "address": address, "entity_id": entity_id},
                )
                return account

            account = Account.from_row(row)
            if entity_id is None or account.entity_id == entity_id:
                return account

            if account.entity_id is not None and not reassign:
                raise ConflictError(
                    f"Address {address} is already owned by entity {account.entity_id}",
                    resource_type="account",
                    resource_id=address,
                )

            tx.execute(
                "UPDATE account SET entity_id = ?, updated_at = ? WHERE id = ?",
                (entity_id, now, account.id),
            )
            if account.entity_id is not None:
                logger.info(
                    "Reassigned account",
                    extra={
                        "address": address,
                        "from_entity_id": account.entity_id,
                        "to_entity_id": entity_id,
                    },
                )
            account.entity_id = entity_id
            account.updated_at = now
            return account

    async def get_account(
        self,
        account_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> Account:
        """Get an account by surrogate ID.

        Raises:
            NotFoundError: If the account does not exist
        """
        with self.db.snapshot(conn) as tx:
            row = tx.execute("SELECT * FROM account WHERE id = ?", (account_id,)).fetchone()
        if not row:
            raise NotFoundError(
                f"Account not found: {account_id}",
                resource_type="account",
                resource_id=str(account_id),
            )
        return Account.from_row(row)

    async def get_account_by_address(
        self,
        address: str,
        conn: sqlite3.Connection | None = None,
    ) -> Account:
        """Get an account by address.

        Raises:
            NotFoundError: If no account has this address
        """
        address = normalize_address(address)
        with self.db.snapshot(conn) as tx:
            row = tx.execute("SELECT * FROM account WHERE address = ?", (address,)).fetchone()
        if not row:
            raise NotFoundError(
                f"Account not found: {address}",
                resource_type="account",
                resource_id=address,
            )
        return Account.from_row(row)

    async def list_accounts(
        self,
        entity_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> list[Account]:
        """List the accounts owned by an entity, oldest first."""
        with self.db.snapshot(conn) as tx:
            cursor = tx.execute(
                "SELECT * FROM account WHERE entity_id = ? ORDER BY id",
                (entity_id,),
            )
            return [Account.from_row(row) for row in cursor.fetchall()]

    async def delete_account(
        self,
        address: str,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Delete an account and, by cascade, its projects and attributes.

        Returns:
            True if deleted, False if the address was already absent
        """
        address = normalize_address(address)
        with self.db.transaction(conn) as tx:
            cursor = tx.execute("DELETE FROM account WHERE address = ?", (address,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Deleted account", extra={"address": address})
        return deleted
