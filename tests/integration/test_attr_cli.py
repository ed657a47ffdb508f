"""
Integration tests for the attribute maintenance CLI and the init entry point.
"""

import asyncio
import json
import os
import tempfile

import pytest

from backend.dwh_store.config import ObservabilityConfig, ServiceConfig, StorageConfig
from backend.dwh_store.identity import IdentityGraph
from backend.dwh_store.main import main as init_main
from backend.dwh_store.main import run
from backend.dwh_store.projects import ProjectRegistry
from backend.dwh_store.storage import TABLES, Database
from backend.dwh_store.tools.attr_cli import main


class TestAttributeCLI:
    """Tests for the dwh-attr command."""

    @pytest.fixture
    def db_path(self):
        """Create temporary database path."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield os.path.join(tmpdir, "warehouse.db")

    @pytest.fixture
    def project_id(self, db_path):
        """Create a project in a fresh database."""

        async def create() -> int:
            db = Database(db_path)
            await db.initialize()
            await IdentityGraph(db).upsert_account("0xabc")
            project = await ProjectRegistry(db).create_project("Swapper", "SWP", "DEX", "0xabc")
            return project.id

        return asyncio.run(create())

    def _corrupt(self, db_path: str, project_id: int) -> None:
        with Database(db_path).transaction() as conn:
            conn.execute(
                "INSERT INTO project_attribute (project_id, key, value, value_type) "
                "VALUES (?, ?, ?, ?)",
                (project_id, "code_commits", "many", "integer"),
            )

    def test_set_and_get(self, db_path, project_id, capsys):
        """set stores a typed value that get prints back."""
        pid = str(project_id)

        assert main(["--db", db_path, "set", pid, "tvl", "1234.5", "--kind", "float"]) == 0
        assert json.loads(capsys.readouterr().out) == {"kind": "float", "payload": 1234.5}

        assert main(["--db", db_path, "get", pid, "tvl"]) == 0
        assert json.loads(capsys.readouterr().out) == {"kind": "float", "payload": 1234.5}

    def test_set_invalid_value(self, db_path, project_id, capsys):
        """Invalid values exit non-zero with the error code."""
        exit_code = main(
            ["--db", db_path, "set", str(project_id), "code_commits", "abc", "--kind", "integer"]
        )

        assert exit_code == 1
        assert capsys.readouterr().err.startswith("VALIDATION_ERROR:")

    def test_kind_change_needs_flag(self, db_path, project_id, capsys):
        """Changing a kind needs --confirm-kind-change."""
        pid = str(project_id)
        main(["--db", db_path, "set", pid, "tvl", "1.5", "--kind", "float"])
        capsys.readouterr()

        assert main(["--db", db_path, "set", pid, "tvl", "high", "--kind", "string"]) == 1
        assert capsys.readouterr().err.startswith("KIND_CHANGE:")

        assert (
            main(
                [
                    "--db",
                    db_path,
                    "set",
                    pid,
                    "tvl",
                    "high",
                    "--kind",
                    "string",
                    "--confirm-kind-change",
                ]
            )
            == 0
        )

    def test_get_missing(self, db_path, project_id, capsys):
        """Missing keys exit non-zero."""
        assert main(["--db", db_path, "get", str(project_id), "tvl"]) == 1
        assert capsys.readouterr().err.startswith("NOT_FOUND:")

    def test_list_includes_corruption(self, db_path, project_id, capsys):
        """list prints values and corruption markers together."""
        pid = str(project_id)
        main(["--db", db_path, "set", pid, "tvl", "1.5", "--kind", "float"])
        self._corrupt(db_path, project_id)
        capsys.readouterr()

        assert main(["--db", db_path, "list", pid]) == 0
        listing = json.loads(capsys.readouterr().out)

        assert listing["tvl"] == {"kind": "float", "payload": 1.5}
        assert listing["code_commits"]["error_code"] == "CORRUPTION"

    def test_delete(self, db_path, project_id, capsys):
        """delete reports whether a row was removed."""
        pid = str(project_id)
        main(["--db", db_path, "set", pid, "tvl", "1.5", "--kind", "float"])
        capsys.readouterr()

        assert main(["--db", db_path, "delete", pid, "tvl"]) == 0
        assert capsys.readouterr().out.strip() == "Deleted"
        assert main(["--db", db_path, "delete", pid, "tvl"]) == 0
        assert capsys.readouterr().out.strip() == "Already absent"

    def test_audit_clean(self, db_path, project_id, capsys):
        """audit exits zero when nothing is corrupted."""
        assert main(["--db", db_path, "audit"]) == 0
        assert "No corrupted attributes" in capsys.readouterr().out

    def test_audit_finds_corruption(self, db_path, project_id, capsys):
        """audit exits non-zero and lists corrupted rows."""
        self._corrupt(db_path, project_id)

        assert main(["--db", db_path, "audit", "--format", "json"]) == 1
        report = json.loads(capsys.readouterr().out)

        assert len(report) == 1
        assert report[0]["key"] == "code_commits"
        assert report[0]["raw_value"] == "many"

        assert main(["--db", db_path, "audit", "--project", str(project_id)]) == 1
        assert "Found 1 corrupted attribute(s)" in capsys.readouterr().out


class TestInitEntryPoint:
    """Tests for the dwh-store-init entry point."""

    def test_run_reports_empty_stats(self):
        """run() migrates a fresh database and reports zero rows."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = ServiceConfig(
                storage=StorageConfig(db_path=os.path.join(tmpdir, "nested", "warehouse.db")),
                observability=ObservabilityConfig(log_format="text"),
            )

            stats = asyncio.run(run(config))

            assert stats == {table: 0 for table in TABLES}

    def test_invalid_config_exits(self, monkeypatch):
        """Configuration errors exit with status 1."""
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(SystemExit) as exc_info:
            init_main()

        assert exc_info.value.code == 1
