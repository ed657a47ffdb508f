"""
Unit tests for the error taxonomy.
"""

import sqlite3

from backend.dwh_store.errors import (
    AccessDeniedError,
    ConflictError,
    CorruptionError,
    KindChangeError,
    NotFoundError,
    ValidationError,
    WarehouseError,
    translate_integrity_error,
)


class TestErrors:
    """Tests for error codes and details."""

    def test_all_errors_are_warehouse_errors(self):
        """Every error inherits from WarehouseError."""
        errors = [
            ValidationError("bad"),
            NotFoundError("missing", resource_type="project", resource_id="1"),
            ConflictError("taken"),
            KindChangeError(1, "tvl", "float", "string"),
            CorruptionError(1, "tvl", "float", "abc", reason="not a float"),
            AccessDeniedError("no", actor="user:1"),
        ]
        assert all(isinstance(e, WarehouseError) for e in errors)

    def test_validation_error_details(self):
        """ValidationError records the offending field."""
        error = ValidationError("bad value", field_name="tvl", errors=["not a float"])
        assert error.to_dict() == {
            "error": "bad value",
            "error_code": "VALIDATION_ERROR",
            "details": {"field": "tvl", "errors": ["not a float"]},
        }

    def test_kind_change_is_conflict(self):
        """KindChangeError is a ConflictError with its own code."""
        error = KindChangeError(7, "tvl", "float", "string")
        assert isinstance(error, ConflictError)
        assert error.code == "KIND_CHANGE"
        assert error.details["old_kind"] == "float"
        assert error.details["new_kind"] == "string"
        assert error.resource_id == "7:tvl"

    def test_corruption_error_details(self):
        """CorruptionError identifies the row and the failure."""
        error = CorruptionError(3, "code_commits", "integer", "many", reason="'many' is not an integer")
        assert error.code == "CORRUPTION"
        assert error.details == {
            "project_id": 3,
            "key": "code_commits",
            "value_type": "integer",
            "raw_value": "many",
            "reason": "'many' is not an integer",
        }
        assert "code_commits" in str(error)

    def test_access_denied_details(self):
        """AccessDeniedError names the actor and operation."""
        error = AccessDeniedError("denied", actor="user:9", operation="delete_project")
        assert error.code == "ACCESS_DENIED"
        assert error.details == {"actor": "user:9", "operation": "delete_project"}


class TestTranslateIntegrityError:
    """Tests for mapping sqlite3 constraint failures."""

    def test_foreign_key_maps_to_not_found(self):
        """Foreign key failures mean the referenced row is absent."""
        exc = sqlite3.IntegrityError("FOREIGN KEY constraint failed")
        error = translate_integrity_error(exc, "project", "0xabc")
        assert isinstance(error, NotFoundError)
        assert error.resource_type == "project"

    def test_unique_maps_to_conflict(self):
        """Uniqueness failures are conflicts."""
        exc = sqlite3.IntegrityError("UNIQUE constraint failed: account.address")
        error = translate_integrity_error(exc, "account", "0xabc")
        assert isinstance(error, ConflictError)
        assert error.code == "CONFLICT"
        assert error.resource_id == "0xabc"
