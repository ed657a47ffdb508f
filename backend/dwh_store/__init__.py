"""
dwh-store - typed attribute store for a decentralized data warehouse.

This package persists the warehouse's relational core:
- Entities (organizations/individuals) and their on-chain Accounts
- Projects anchored to an account address
- An open set of typed attributes per project (metrics that vary by
  category and evolve without schema migrations)

Architecture:
    ┌──────────────┐     ┌───────────────────────────────────────────┐
    │ Access Layer │────▶│ IdentityGraph / ProjectRegistry /         │
    │  (service)   │     │ AttributeStore                            │
    └──────────────┘     └─────────────────────┬─────────────────────┘
                                               │
                                               ▼
                                        ┌─────────────┐
                                        │   SQLite    │
                                        │ (Database)  │
                                        └─────────────┘

Invariants:
    - address is unique across accounts and never renamed
    - (project_id, key) is unique across project attributes
    - value_type is the authoritative tag for casting stored text
    - Cascades (entity -> account -> project -> attribute) are atomic

How to change safely:
    - New value kinds are appended to the kind registry with a new version
    - Never change the canonical text form of an existing kind
    - Schema changes go through Database migrations, never ad-hoc DDL
"""

from ._version import __version__

__all__ = ["__version__"]
