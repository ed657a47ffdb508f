"""
SQLite database for dwh-store.

This module manages the single SQLite database that stores:
- app_user rows for the external user subsystem
- Entities and their accounts
- Projects anchored to an account address
- Typed project attributes

The relational engine enforces the hard invariants: address uniqueness,
(project_id, key) uniqueness and the entity -> account -> project ->
attribute cascade.

Invariants:
    - One connection per operation; the Database object is shareable
    - foreign_keys is ON for every connection (cascades depend on it)
    - All writes run inside BEGIN IMMEDIATE (single writer at a time)
    - Any exception inside a transaction rolls the whole transaction back
    - Concurrent initialize() calls from any process apply each migration once

How to change safely:
    - Add a migration step and bump SCHEMA_VERSION, never edit old steps
    - Keep the authoritative column sets stable
    - Use transactions for all write operations

Table schema:
    entity:
        - id INTEGER PRIMARY KEY
        - name TEXT
        - created_at, updated_at INTEGER (Unix ms)

    account:
        - id INTEGER PRIMARY KEY
        - address TEXT UNIQUE
        - entity_id INTEGER -> entity(id) ON DELETE CASCADE
        - created_at, updated_at INTEGER (Unix ms)

    project:
        - id INTEGER PRIMARY KEY
        - name, token, category TEXT
        - contract_address TEXT -> account(address) ON DELETE CASCADE
        - created_at, updated_at INTEGER (Unix ms)

    project_attribute:
        - id INTEGER PRIMARY KEY
        - project_id INTEGER -> project(id) ON DELETE CASCADE
        - key, value, value_type TEXT
        - UNIQUE (project_id, key)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

TABLES = ("app_user", "entity", "account", "project", "project_attribute")

_MIGRATIONS: dict[int, str] = {
    1: """
        CREATE TABLE IF NOT EXISTS app_user (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            hashed_password TEXT NOT NULL,
            role TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS entity (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_entity_name ON entity(name);

        CREATE TABLE IF NOT EXISTS account (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            address TEXT NOT NULL UNIQUE,
            entity_id INTEGER REFERENCES entity(id) ON DELETE CASCADE,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_account_entity ON account(entity_id);

        CREATE TABLE IF NOT EXISTS project (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            token TEXT NOT NULL,
            category TEXT NOT NULL,
            contract_address TEXT REFERENCES account(address) ON DELETE CASCADE,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_project_address ON project(contract_address);
        CREATE INDEX IF NOT EXISTS idx_project_category ON project(category);

        CREATE TABLE IF NOT EXISTS project_attribute (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL REFERENCES project(id) ON DELETE CASCADE,
            key TEXT NOT NULL,
            value TEXT,
            value_type TEXT NOT NULL,
            UNIQUE (project_id, key)
        );
    """,
}

SCHEMA_VERSION = max(_MIGRATIONS)


def now_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


class Database:
    """SQLite database holding the warehouse tables.

    Thread safety:
        Each operation opens its own connection. SQLite serializes writers
        (BEGIN IMMEDIATE + busy timeout) and WAL mode lets readers proceed
        during writes.

    Example:
        >>> db = Database("/var/lib/dwh/warehouse.db")
        >>> await db.initialize()
        >>> with db.transaction() as conn:
        ...     conn.execute("DELETE FROM entity WHERE id = ?", (1,))
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the database handle.

        Args:
            db_path: Path to the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._init_lock = threading.Lock()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection.

        Yields:
            SQLite connection in autocommit mode (explicit transactions)
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self, conn: sqlite3.Connection | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Run a block inside a write transaction.

        Args:
            conn: Connection of an enclosing transaction to join. When given,
                commit/rollback is left to the owner of that transaction.

        Yields:
            Connection with an open BEGIN IMMEDIATE transaction
        """
        if conn is not None:
            yield conn
            return

        with self.connect() as own:
            own.execute("BEGIN IMMEDIATE")
            try:
                yield own
                own.execute("COMMIT")
            except Exception:
                own.execute("ROLLBACK")
                raise

    @contextmanager
    def snapshot(
        self, conn: sqlite3.Connection | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Run a block of reads against one consistent snapshot."""
        if conn is not None:
            yield conn
            return

        with self.connect() as own:
            own.execute("BEGIN")
            try:
                yield own
            finally:
                own.execute("COMMIT")

    async def initialize(self) -> int:
        """Create or migrate the schema.

        Returns:
            Schema version after migration
        """
        with self._init_lock:
            with self.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at INTEGER NOT NULL
                    )
                    """
                )
                current = self._current_version(conn)
                for version in sorted(v for v in _MIGRATIONS if v > current):
                    conn.execute("BEGIN IMMEDIATE")
                    # Another process may have applied it since the read above
                    if self._current_version(conn) >= version:
                        conn.execute("COMMIT")
                        continue
                    try:
                        # executescript() would commit the open transaction
                        for statement in _MIGRATIONS[version].split(";"):
                            if statement.strip():
                                conn.execute(statement)
                        conn.execute(
                            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                            (version, now_ms()),
                        )
                        conn.execute("COMMIT")
                    except Exception:
                        conn.execute("ROLLBACK")
                        raise
                    logger.info(
                        "Applied schema migration",
                        extra={"db_path": str(self.db_path), "version": version},
                    )
                return self._current_version(conn)

    def _current_version(self, conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    async def schema_version(self) -> int:
        """Get the applied schema version (0 if uninitialized)."""
        if not self.db_path.exists():
            return 0
        with self.connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
            ).fetchone()
            if not exists:
                return 0
            return self._current_version(conn)

    async def get_stats(self) -> dict[str, int]:
        """Get row counts per table.

        Returns:
            Dictionary of table name to row count
        """
        stats = {}
        with self.snapshot() as conn:
            for table in TABLES:
                cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")
                stats[table] = cursor.fetchone()[0]
        return stats
