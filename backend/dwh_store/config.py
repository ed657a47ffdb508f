"""
Configuration management for dwh-store.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set an explicit DWH_DB_PATH
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """SQLite storage configuration.

    Attributes:
        db_path: Path to the warehouse SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    db_path: str = "./data/warehouse.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -64000  # 64MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("DWH_DB_PATH", "./data/warehouse.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-64000")),
        )


@dataclass(frozen=True)
class AccessConfig:
    """Access layer configuration.

    Attributes:
        writer_roles: app_user roles allowed to write
        enforce_category_kinds: Reject expected keys written with the wrong kind
    """

    writer_roles: tuple[str, ...] = ("admin", "writer")
    enforce_category_kinds: bool = True

    @classmethod
    def from_env(cls) -> AccessConfig:
        """Load configuration from environment variables."""
        roles = os.getenv("WRITER_ROLES", "admin,writer")
        return cls(
            writer_roles=tuple(r.strip() for r in roles.split(",") if r.strip()),
            enforce_category_kinds=_env_bool("ENFORCE_CATEGORY_KINDS", "true"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServiceConfig:
    """Complete service configuration.

    Attributes:
        storage: SQLite storage configuration
        access: Access layer configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServiceConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            access=AccessConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.db_path:
            raise ValueError("DWH_DB_PATH must not be empty")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must be >= 0")
        if not self.access.writer_roles:
            raise ValueError("WRITER_ROLES must name at least one role")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        db_dir = Path(self.storage.db_path).parent
        if not db_dir.exists():
            logger.warning(
                f"Database directory does not exist: {db_dir}. It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Service configuration loaded",
            extra={
                "db_path": self.storage.db_path,
                "wal_mode": self.storage.wal_mode,
                "busy_timeout_ms": self.storage.busy_timeout_ms,
                "writer_roles": list(self.access.writer_roles),
                "enforce_category_kinds": self.access.enforce_category_kinds,
                "log_level": self.observability.log_level,
            },
        )
