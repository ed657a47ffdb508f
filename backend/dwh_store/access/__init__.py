"""
Access layer for dwh-store.

This module is the contract transports call into:
- WarehouseService: authorized CRUD composed into atomic transactions
- Request/response models (pydantic)
- Writer authorization
- Category profiles (expected attribute keys and kinds per category)

Invariants:
    - Transports never write attribute value/value_type directly
    - Category expectations are enforced here, not in the stores
"""

from .auth import RoleAuthorizer, Writer, WriterAuthorizer
from .categories import DEX_PROFILE, CategoryProfile, CategoryRegistry, default_registry
from .dtos import (
    AccountResponse,
    AttributeResponse,
    AttributeWrite,
    CorruptAttributeResponse,
    EntityResponse,
    NewAccount,
    NewEntity,
    NewProject,
    ProjectResponse,
    UpdateProject,
)
from .service import WarehouseService

__all__ = [
    # Service
    "WarehouseService",
    # Auth
    "RoleAuthorizer",
    "Writer",
    "WriterAuthorizer",
    # Categories
    "CategoryProfile",
    "CategoryRegistry",
    "DEX_PROFILE",
    "default_registry",
    # Models
    "AccountResponse",
    "AttributeResponse",
    "AttributeWrite",
    "CorruptAttributeResponse",
    "EntityResponse",
    "NewAccount",
    "NewEntity",
    "NewProject",
    "ProjectResponse",
    "UpdateProject",
]
