"""
Error types for dwh-store.

This module defines all exception types raised by the store:
- WarehouseError: Base exception
- ValidationError: Value/kind mismatch or invalid field at write time
- NotFoundError: Referenced entity/account/project/key is absent
- ConflictError: Uniqueness or ownership violation
- KindChangeError: Unconfirmed change of an attribute's declared kind
- CorruptionError: Stored text fails to parse as its declared kind
- AccessDeniedError: Writer is not authorized

Invariants:
    - All errors inherit from WarehouseError
    - Errors carry a stable code for programmatic handling
    - Error messages never include secrets
"""

from __future__ import annotations

import sqlite3
from typing import Any


class WarehouseError(Exception):
    """Base exception for all dwh-store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "WAREHOUSE_ERROR"
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly error body."""
        return {"error": self.message, "error_code": self.code, "details": self.details}


class ValidationError(WarehouseError):
    """A value or field failed validation.

    Raised when:
    - A value cannot be represented as the requested kind
    - A kind tag is not in the registry
    - A fixed field is empty, too long or unknown
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class NotFoundError(WarehouseError):
    """Resource not found.

    Raised when:
    - Entity, account or project doesn't exist
    - Attribute key doesn't exist for a project
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(WarehouseError):
    """Uniqueness or ownership conflict.

    Raised when:
    - An address is already owned by a different entity
    - The storage engine reports a uniqueness violation
    """

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        code: str = "CONFLICT",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class KindChangeError(ConflictError):
    """An attribute write would change the key's declared kind.

    Changing kinds must be confirmed explicitly by the caller.
    """

    def __init__(
        self,
        project_id: int,
        key: str,
        old_kind: str,
        new_kind: str,
    ) -> None:
        super().__init__(
            f"Attribute '{key}' of project {project_id} is declared '{old_kind}', "
            f"refusing to change it to '{new_kind}' without confirmation",
            resource_type="project_attribute",
            resource_id=f"{project_id}:{key}",
            code="KIND_CHANGE",
        )
        self.details.update({"old_kind": old_kind, "new_kind": new_kind})
        self.project_id = project_id
        self.key = key
        self.old_kind = old_kind
        self.new_kind = new_kind


class CorruptionError(WarehouseError):
    """Stored attribute text fails to parse as its declared kind.

    Indicates a prior validation bypass or type-tag drift.
    """

    def __init__(
        self,
        project_id: int,
        key: str,
        value_type: str,
        raw_value: str | None,
        reason: str,
    ) -> None:
        super().__init__(
            f"Attribute '{key}' of project {project_id} is corrupted: {reason}",
            code="CORRUPTION",
            details={
                "project_id": project_id,
                "key": key,
                "value_type": value_type,
                "raw_value": raw_value,
                "reason": reason,
            },
        )
        self.project_id = project_id
        self.key = key
        self.value_type = value_type
        self.raw_value = raw_value
        self.reason = reason


class AccessDeniedError(WarehouseError):
    """Writer lacks permission for the requested operation."""

    def __init__(
        self,
        message: str,
        actor: str,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="ACCESS_DENIED",
            details={"actor": actor, "operation": operation},
        )
        self.actor = actor
        self.operation = operation


def translate_integrity_error(
    exc: sqlite3.IntegrityError,
    resource_type: str,
    resource_id: str,
) -> WarehouseError:
    """Map a storage-engine constraint failure onto the error taxonomy.

    Args:
        exc: Error raised by sqlite3
        resource_type: Resource being written
        resource_id: Identifier of the resource being written

    Returns:
        ConflictError for uniqueness failures, NotFoundError for foreign keys
    """
    text = str(exc)
    if "FOREIGN KEY" in text.upper():
        return NotFoundError(
            f"Referenced row for {resource_type} '{resource_id}' does not exist",
            resource_type=resource_type,
            resource_id=resource_id,
        )
    return ConflictError(
        f"Constraint violated writing {resource_type} '{resource_id}': {text}",
        resource_type=resource_type,
        resource_id=resource_id,
    )
