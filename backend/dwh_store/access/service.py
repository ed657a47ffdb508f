"""
Access layer service for dwh-store.

The service is what a transport (HTTP handlers, jobs, CLIs) calls. It
authorizes writers, applies category expectations and composes the
identity, project and attribute operations into single transactions.

Invariants:
    - Writes are authorized before any storage access
    - Attribute values only reach storage through AttributeStore
    - A project write (entity, account, project, attributes) is atomic
    - Read responses carry typed values, corruption markers and the
      category's missing expected keys

How to change safely:
    - Keep transport concerns (status codes, headers) out of this module
    - New request fields must be validated in dtos.py first
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from ..attributes import AttributeInput, AttributeStore, ValueKind, infer_kind
from ..config import AccessConfig
from ..errors import ValidationError
from ..identity import IdentityGraph
from ..projects import Project, ProjectRegistry
from ..storage import Database
from .auth import RoleAuthorizer, Writer, WriterAuthorizer
from .categories import CategoryRegistry, default_registry
from .dtos import (
    AccountResponse,
    AttributeResponse,
    AttributeWrite,
    EntityResponse,
    NewAccount,
    NewEntity,
    NewProject,
    ProjectResponse,
    UpdateProject,
)

logger = logging.getLogger(__name__)


class WarehouseService:
    """Authorized CRUD over entities, accounts, projects and attributes.

    Example:
        >>> service = WarehouseService(db)
        >>> writer = Writer(actor="user:1", role="admin")
        >>> project = await service.create_project(
        ...     writer,
        ...     NewProject(
        ...         name="Swapper", token="SWP", category="DEX",
        ...         contract_address="0xabc", entity_name="Swapper Labs",
        ...         attributes={"total_value_locked": 1234.5},
        ...     ),
        ... )
    """

    def __init__(
        self,
        db: Database,
        authorizer: WriterAuthorizer | None = None,
        categories: CategoryRegistry | None = None,
        config: AccessConfig | None = None,
    ) -> None:
        self.db = db
        self.config = config or AccessConfig()
        self.authorizer = authorizer or RoleAuthorizer(self.config.writer_roles)
        self.categories = categories or default_registry()
        self.identity = IdentityGraph(db)
        self.projects = ProjectRegistry(db)
        self.attributes = AttributeStore(db)

    def _resolve_kind(
        self,
        category: str,
        key: str,
        value: Any,
        explicit: str | None,
    ) -> ValueKind:
        """Pick the kind for an attribute write.

        Explicit kind first, then the category profile, then inference.
        """
        expected = self.categories.expected_kind(category, key)

        if explicit is not None:
            try:
                kind = ValueKind.from_str(explicit)
            except ValueError as e:
                raise ValidationError(str(e), field_name=key) from e
            if expected and kind != expected and self.config.enforce_category_kinds:
                raise ValidationError(
                    f"Attribute '{key}' must be {expected.value} for category '{category}', "
                    f"got {kind.value}",
                    field_name=key,
                )
            return kind

        if expected:
            return expected

        try:
            return infer_kind(value)
        except ValueError as e:
            raise ValidationError(f"Attribute '{key}': {e}", field_name=key) from e

    async def _project_response(
        self,
        project: Project,
        conn: sqlite3.Connection | None = None,
    ) -> ProjectResponse:
        listing = await self.attributes.list_attributes(project.id, conn=conn)
        missing = self.categories.missing_keys(project.category, set(listing))
        return ProjectResponse.build(project, listing, missing)

    # Entities and accounts

    async def create_entity(self, writer: Writer, request: NewEntity) -> EntityResponse:
        self.authorizer.authorize(writer, "create_entity")
        entity = await self.identity.upsert_entity(request.name)
        return EntityResponse.from_entity(entity)

    async def get_entity(self, entity_id: int) -> EntityResponse:
        return EntityResponse.from_entity(await self.identity.get_entity(entity_id))

    async def list_entity_accounts(self, entity_id: int) -> list[AccountResponse]:
        await self.identity.get_entity(entity_id)
        accounts = await self.identity.list_accounts(entity_id)
        return [AccountResponse.from_account(a) for a in accounts]

    async def delete_entity(self, writer: Writer, entity_id: int) -> bool:
        """Delete an entity with everything reachable from it."""
        self.authorizer.authorize(writer, "delete_entity")
        return await self.identity.delete_entity(entity_id)

    async def register_account(self, writer: Writer, request: NewAccount) -> AccountResponse:
        self.authorizer.authorize(writer, "register_account")
        if request.entity_id is not None and request.entity_name is not None:
            raise ValidationError(
                "Give either entity_id or entity_name, not both", field_name="entity_id"
            )

        with self.db.transaction() as conn:
            entity_id = request.entity_id
            if request.entity_name is not None:
                entity = await self.identity.upsert_entity(request.entity_name, conn=conn)
                entity_id = entity.id
            account = await self.identity.upsert_account(
                request.address, entity_id, reassign=request.reassign, conn=conn
            )
        return AccountResponse.from_account(account)

    async def get_account(self, address: str) -> AccountResponse:
        return AccountResponse.from_account(await self.identity.get_account_by_address(address))

    async def delete_account(self, writer: Writer, address: str) -> bool:
        self.authorizer.authorize(writer, "delete_account")
        return await self.identity.delete_account(address)

    # Projects

    async def create_project(self, writer: Writer, request: NewProject) -> ProjectResponse:
        """Create a project and its attributes in one transaction.

        With entity_name the owning entity and the account are resolved or
        created first; without it the contract address must already exist.
        """
        self.authorizer.authorize(writer, "create_project")

        items = []
        for key, value in request.attributes.items():
            if value is None:
                continue
            kind = self._resolve_kind(
                request.category, key, value, request.attribute_kinds.get(key)
            )
            items.append(AttributeInput(key=key, value=value, kind=kind))

        with self.db.transaction() as conn:
            if request.entity_name is not None:
                entity = await self.identity.upsert_entity(request.entity_name, conn=conn)
                await self.identity.upsert_account(request.contract_address, entity.id, conn=conn)

            project = await self.projects.create_project(
                request.name,
                request.token,
                request.category,
                request.contract_address,
                conn=conn,
            )
            if items:
                await self.attributes.set_attributes(project.id, items, conn=conn)
            response = await self._project_response(project, conn=conn)

        logger.info(
            "Project created",
            extra={
                "actor": writer.actor,
                "project_id": project.id,
                "category": project.category,
                "attribute_count": len(items),
            },
        )
        return response

    async def update_project(
        self,
        writer: Writer,
        project_id: int,
        request: UpdateProject,
    ) -> ProjectResponse:
        """Update fixed fields and upsert/delete attributes in one transaction."""
        self.authorizer.authorize(writer, "update_project")
        fields = request.fixed_fields()
        confirmed = set(request.confirm_kind_changes)

        with self.db.transaction() as conn:
            if fields:
                project = await self.projects.update_project(project_id, conn=conn, **fields)
            else:
                project = await self.projects.get_project(project_id, conn=conn)

            items = []
            removed = []
            for key, value in (request.attributes or {}).items():
                if value is None:
                    removed.append(key)
                    continue
                kind = self._resolve_kind(
                    project.category, key, value, request.attribute_kinds.get(key)
                )
                items.append(
                    AttributeInput(
                        key=key, value=value, kind=kind, allow_kind_change=key in confirmed
                    )
                )

            if items:
                await self.attributes.set_attributes(project.id, items, conn=conn)
            for key in removed:
                await self.attributes.delete_attribute(project.id, key, conn=conn)
            response = await self._project_response(project, conn=conn)

        logger.info(
            "Project updated",
            extra={
                "actor": writer.actor,
                "project_id": project_id,
                "fields": sorted(fields),
                "attributes_set": len(items),
                "attributes_removed": len(removed),
            },
        )
        return response

    async def get_project(self, project_id: int) -> ProjectResponse:
        with self.db.snapshot() as conn:
            project = await self.projects.get_project(project_id, conn=conn)
            return await self._project_response(project, conn=conn)

    async def list_projects(
        self,
        category: str | None = None,
        contract_address: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ProjectResponse]:
        with self.db.snapshot() as conn:
            projects = await self.projects.list_projects(
                category=category,
                contract_address=contract_address,
                limit=limit,
                offset=offset,
                conn=conn,
            )
            return [await self._project_response(p, conn=conn) for p in projects]

    async def delete_project(self, writer: Writer, project_id: int) -> bool:
        self.authorizer.authorize(writer, "delete_project")
        return await self.projects.delete_project(project_id)

    # Attributes

    async def set_attribute(
        self,
        writer: Writer,
        project_id: int,
        key: str,
        request: AttributeWrite,
    ) -> AttributeResponse:
        self.authorizer.authorize(writer, "set_attribute")
        project = await self.projects.get_project(project_id)
        kind = self._resolve_kind(project.category, key, request.value, request.kind)
        typed = await self.attributes.set_attribute(
            project_id,
            key,
            request.value,
            kind,
            allow_kind_change=request.confirm_kind_change,
        )
        return AttributeResponse.from_typed(key, typed)

    async def get_attribute(self, project_id: int, key: str) -> AttributeResponse:
        typed = await self.attributes.get_attribute(project_id, key)
        return AttributeResponse.from_typed(key, typed)

    async def delete_attribute(self, writer: Writer, project_id: int, key: str) -> bool:
        self.authorizer.authorize(writer, "delete_attribute")
        return await self.attributes.delete_attribute(project_id, key)
