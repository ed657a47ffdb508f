"""
Writer authorization for the access layer.

Authentication itself belongs to the external user subsystem; by the time a
request reaches the access layer the caller is a Writer (an actor plus the
role stored on its app_user row). This module decides whether that writer
may mutate the warehouse.

Invariants:
    - Every mutating access-layer call is authorized before any storage access
    - Reads are not authorized here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from ..errors import AccessDeniedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Writer:
    """An authenticated caller.

    Attributes:
        actor: Actor identifier (e.g. "user:42")
        role: Role from the caller's app_user row
    """

    actor: str
    role: str


class WriterAuthorizer(Protocol):
    """Contract for deciding whether a writer may perform an operation."""

    def authorize(self, writer: Writer, operation: str) -> None:
        """Raise AccessDeniedError if the writer may not perform operation."""
        ...


class RoleAuthorizer:
    """Allow writes from a fixed set of roles.

    Example:
        >>> authorizer = RoleAuthorizer(("admin", "writer"))
        >>> authorizer.authorize(Writer("user:1", "admin"), "create_project")
    """

    def __init__(self, roles: tuple[str, ...] = ("admin", "writer")) -> None:
        self.roles = frozenset(roles)

    def authorize(self, writer: Writer, operation: str) -> None:
        if writer.role not in self.roles:
            logger.warning(
                "Write denied",
                extra={"actor": writer.actor, "role": writer.role, "operation": operation},
            )
            raise AccessDeniedError(
                f"Access denied: {writer.actor} (role '{writer.role}') cannot {operation}",
                actor=writer.actor,
                operation=operation,
            )
