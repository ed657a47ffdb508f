"""
dwh-store - Main entry point.

Prepares a warehouse database for the access layer:
- Loads configuration from the environment
- Configures logging
- Creates or migrates the SQLite schema
- Logs table statistics

Usage:
    python -m backend.dwh_store.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Schema migrations run before any service is handed out
    - Exit code is non-zero on configuration or migration failure
"""

from __future__ import annotations

import asyncio
import logging
import sys

import json_log_formatter

from .access import RoleAuthorizer, WarehouseService
from .config import ServiceConfig
from .storage import Database

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def open_database(config: ServiceConfig) -> Database:
    """Create a Database handle from configuration."""
    return Database(
        db_path=config.storage.db_path,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
        cache_size_pages=config.storage.cache_size_pages,
    )


async def build_service(config: ServiceConfig) -> WarehouseService:
    """Migrate the database and build the access-layer service.

    Args:
        config: Service configuration

    Returns:
        WarehouseService bound to the migrated database
    """
    db = open_database(config)
    version = await db.initialize()
    logger.info(
        "Warehouse database ready",
        extra={"db_path": config.storage.db_path, "schema_version": version},
    )
    return WarehouseService(
        db,
        authorizer=RoleAuthorizer(config.access.writer_roles),
        config=config.access,
    )


async def run(config: ServiceConfig) -> dict[str, int]:
    """Prepare the database and report its contents."""
    service = await build_service(config)
    stats = await service.db.get_stats()
    logger.info("Warehouse statistics", extra=stats)
    return stats


def main() -> None:
    """Main entry point."""
    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    try:
        asyncio.run(run(config))
    except Exception:
        logger.exception("Failed to prepare warehouse database")
        sys.exit(1)


if __name__ == "__main__":
    main()
