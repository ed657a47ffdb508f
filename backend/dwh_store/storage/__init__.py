"""
Storage module for dwh-store.

Owns the SQLite database file, its schema migrations and the transaction
helpers every component writes through.
"""

from .database import SCHEMA_VERSION, TABLES, Database, now_ms

__all__ = ["Database", "SCHEMA_VERSION", "TABLES", "now_ms"]
