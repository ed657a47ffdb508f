"""
Unit tests for writer authorization.
"""

import pytest

from backend.dwh_store.access.auth import RoleAuthorizer, Writer
from backend.dwh_store.errors import AccessDeniedError


class TestRoleAuthorizer:
    """Tests for RoleAuthorizer."""

    def test_writer_roles_allowed(self):
        """Configured roles may write."""
        authorizer = RoleAuthorizer(("admin", "writer"))
        authorizer.authorize(Writer("user:1", "admin"), "create_project")
        authorizer.authorize(Writer("user:2", "writer"), "set_attribute")

    def test_other_roles_denied(self):
        """Any other role is denied with the operation recorded."""
        authorizer = RoleAuthorizer(("admin",))
        with pytest.raises(AccessDeniedError) as exc_info:
            authorizer.authorize(Writer("user:3", "viewer"), "delete_project")

        assert exc_info.value.actor == "user:3"
        assert exc_info.value.operation == "delete_project"

    def test_role_match_is_exact(self):
        """Role names are case-sensitive."""
        authorizer = RoleAuthorizer(("admin",))
        with pytest.raises(AccessDeniedError):
            authorizer.authorize(Writer("user:4", "Admin"), "create_entity")
