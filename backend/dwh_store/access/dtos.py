"""
Request and response models for the access layer.

Requests are validated by pydantic before they reach the stores; responses
carry attributes already materialized into their native types.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..attributes import TypedValue
from ..errors import CorruptionError
from ..identity import Account, Entity
from ..projects import Project


class NewEntity(BaseModel):
    """Create (or resolve) an entity by name."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=128)


class NewAccount(BaseModel):
    """Register an account, optionally under an entity.

    entity_name resolves or creates the owning entity; entity_id must
    reference an existing one. At most one of them may be given.
    """

    model_config = ConfigDict(extra="forbid")

    address: str = Field(..., min_length=1, max_length=64)
    entity_id: int | None = None
    entity_name: str | None = Field(default=None, min_length=1, max_length=128)
    reassign: bool = False


class NewProject(BaseModel):
    """Create a project with its initial attributes.

    Attribute kinds come from attribute_kinds, then from the category
    profile, then are inferred from the JSON value.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=128)
    token: str = Field(..., min_length=1, max_length=64)
    category: str = Field(..., min_length=1, max_length=128)
    contract_address: str = Field(..., min_length=1, max_length=64)
    entity_name: str | None = Field(default=None, min_length=1, max_length=128)
    attributes: dict[str, Any] = Field(default_factory=dict)
    attribute_kinds: dict[str, str] = Field(default_factory=dict)


class UpdateProject(BaseModel):
    """Partially update a project.

    A null attribute value deletes that attribute. Keys listed in
    confirm_kind_changes may change their stored kind.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=128)
    token: str | None = Field(default=None, min_length=1, max_length=64)
    category: str | None = Field(default=None, min_length=1, max_length=128)
    contract_address: str | None = Field(default=None, min_length=1, max_length=64)
    attributes: dict[str, Any] | None = None
    attribute_kinds: dict[str, str] = Field(default_factory=dict)
    confirm_kind_changes: list[str] = Field(default_factory=list)

    def fixed_fields(self) -> dict[str, str]:
        """Fixed project columns present in the request."""
        return {
            name: value
            for name, value in (
                ("name", self.name),
                ("token", self.token),
                ("category", self.category),
                ("contract_address", self.contract_address),
            )
            if value is not None
        }


class AttributeWrite(BaseModel):
    """Set a single attribute."""

    model_config = ConfigDict(extra="forbid")

    value: Any
    kind: str | None = None
    confirm_kind_change: bool = False


class AttributeResponse(BaseModel):
    key: str
    kind: str
    value: Any

    @classmethod
    def from_typed(cls, key: str, typed: TypedValue) -> AttributeResponse:
        data = typed.to_dict()
        return cls(key=key, kind=data["kind"], value=data["payload"])


class CorruptAttributeResponse(BaseModel):
    """Marker for an attribute whose stored text failed to parse."""

    key: str
    error_code: str
    value_type: str
    raw_value: str | None
    reason: str

    @classmethod
    def from_error(cls, error: CorruptionError) -> CorruptAttributeResponse:
        return cls(
            key=error.key,
            error_code=error.code,
            value_type=error.value_type,
            raw_value=error.raw_value,
            reason=error.reason,
        )


class ProjectResponse(BaseModel):
    """A project joined with its full, typed attribute set."""

    id: int
    name: str
    token: str
    category: str
    contract_address: str | None
    created_at: int
    updated_at: int
    attributes: dict[str, Any] = Field(default_factory=dict)
    attribute_kinds: dict[str, str] = Field(default_factory=dict)
    corrupted: list[CorruptAttributeResponse] = Field(default_factory=list)
    missing_expected: list[str] = Field(default_factory=list)

    @classmethod
    def build(
        cls,
        project: Project,
        listing: dict[str, TypedValue | CorruptionError],
        missing_expected: list[str] | None = None,
    ) -> ProjectResponse:
        attributes: dict[str, Any] = {}
        kinds: dict[str, str] = {}
        corrupted = []
        for key, item in listing.items():
            if isinstance(item, CorruptionError):
                corrupted.append(CorruptAttributeResponse.from_error(item))
            else:
                data = item.to_dict()
                attributes[key] = data["payload"]
                kinds[key] = data["kind"]

        return cls(
            id=project.id,
            name=project.name,
            token=project.token,
            category=project.category,
            contract_address=project.contract_address,
            created_at=project.created_at,
            updated_at=project.updated_at,
            attributes=attributes,
            attribute_kinds=kinds,
            corrupted=corrupted,
            missing_expected=missing_expected or [],
        )


class EntityResponse(BaseModel):
    id: int
    name: str
    created_at: int
    updated_at: int

    @classmethod
    def from_entity(cls, entity: Entity) -> EntityResponse:
        return cls(
            id=entity.id,
            name=entity.name,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class AccountResponse(BaseModel):
    id: int
    address: str
    entity_id: int | None
    created_at: int
    updated_at: int

    @classmethod
    def from_account(cls, account: Account) -> AccountResponse:
        return cls(
            id=account.id,
            address=account.address,
            entity_id=account.entity_id,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
