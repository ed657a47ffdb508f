"""
Unit tests for environment configuration.
"""

import pytest

from backend.dwh_store.config import (
    AccessConfig,
    ObservabilityConfig,
    ServiceConfig,
    StorageConfig,
)

ENV_VARS = [
    "DWH_DB_PATH",
    "SQLITE_WAL_MODE",
    "SQLITE_BUSY_TIMEOUT_MS",
    "SQLITE_CACHE_SIZE",
    "WRITER_ROLES",
    "ENFORCE_CATEGORY_KINDS",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all dwh-store variables from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestServiceConfig:
    """Tests for ServiceConfig.from_env."""

    def test_defaults(self, clean_env):
        """Defaults are usable for local development."""
        config = ServiceConfig.from_env()

        assert config.storage.db_path == "./data/warehouse.db"
        assert config.storage.wal_mode is True
        assert config.storage.busy_timeout_ms == 5000
        assert config.access.writer_roles == ("admin", "writer")
        assert config.access.enforce_category_kinds is True
        assert config.observability.log_format == "json"

    def test_overrides(self, clean_env, tmp_path):
        """Environment variables override defaults."""
        clean_env.setenv("DWH_DB_PATH", str(tmp_path / "wh.db"))
        clean_env.setenv("SQLITE_WAL_MODE", "false")
        clean_env.setenv("SQLITE_BUSY_TIMEOUT_MS", "250")
        clean_env.setenv("WRITER_ROLES", " admin , ops ,")
        clean_env.setenv("ENFORCE_CATEGORY_KINDS", "False")
        clean_env.setenv("LOG_FORMAT", "text")

        config = ServiceConfig.from_env()

        assert config.storage.db_path == str(tmp_path / "wh.db")
        assert config.storage.wal_mode is False
        assert config.storage.busy_timeout_ms == 250
        assert config.access.writer_roles == ("admin", "ops")
        assert config.access.enforce_category_kinds is False
        assert config.observability.log_format == "text"

    def test_invalid_log_format(self, clean_env):
        """Unknown log formats are rejected."""
        clean_env.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            ServiceConfig.from_env()

    def test_no_writer_roles(self, clean_env):
        """At least one writer role is required."""
        clean_env.setenv("WRITER_ROLES", " , ")
        with pytest.raises(ValueError, match="WRITER_ROLES"):
            ServiceConfig.from_env()

    def test_negative_busy_timeout(self):
        """Busy timeout cannot be negative."""
        config = ServiceConfig(storage=StorageConfig(busy_timeout_ms=-1))
        with pytest.raises(ValueError, match="SQLITE_BUSY_TIMEOUT_MS"):
            config.validate()

    def test_empty_db_path(self):
        """Database path cannot be empty."""
        config = ServiceConfig(storage=StorageConfig(db_path=""))
        with pytest.raises(ValueError, match="DWH_DB_PATH"):
            config.validate()

    def test_sections_are_frozen(self):
        """Config sections cannot be mutated after load."""
        config = AccessConfig()
        with pytest.raises(AttributeError):
            config.enforce_category_kinds = False
        assert ObservabilityConfig().log_level == "INFO"
