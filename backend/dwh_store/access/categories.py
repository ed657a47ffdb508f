"""
Category profiles for the access layer.

A project's category conventionally determines which attribute keys it is
expected to carry and with which kinds (a DEX reports TVL, fees, users...).
The attribute store itself accepts any key; these expectations are checked
here, at the access layer.

Invariants:
    - A category name maps to at most one profile
    - An expected key has exactly one kind
    - Missing expected keys are reported, never rejected

How to change safely:
    - Add keys to a profile freely; existing rows stay readable
    - Changing an expected key's kind requires migrating stored rows first
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from ..attributes import ValueKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryProfile:
    """Expected attribute keys for a category.

    Attributes:
        category: Category name, matched exactly
        expected: Mapping of attribute key to expected kind
        description: Human-readable description
    """

    category: str
    expected: dict[str, ValueKind] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self) -> None:
        if not self.category:
            raise ValueError("Category name cannot be empty")

    def expected_kind(self, key: str) -> ValueKind | None:
        """Get the expected kind for a key, if the profile declares one."""
        return self.expected.get(key)

    def missing_keys(self, present: set[str]) -> list[str]:
        """List expected keys absent from a project's attributes."""
        return sorted(set(self.expected) - present)


class CategoryRegistry:
    """Registry of category profiles.

    Example:
        >>> registry = CategoryRegistry()
        >>> registry.register(CategoryProfile("NFT", {"floor_price": ValueKind.FLOAT}))
        >>> registry.expected_kind("NFT", "floor_price")
        <ValueKind.FLOAT: 'float'>
    """

    def __init__(self) -> None:
        self._profiles: dict[str, CategoryProfile] = {}
        self._lock = threading.Lock()

    def register(self, profile: CategoryProfile) -> None:
        """Register a profile.

        Raises:
            ValueError: If the category is already registered
        """
        with self._lock:
            if profile.category in self._profiles:
                raise ValueError(f"Category '{profile.category}' already registered")
            self._profiles[profile.category] = profile
            logger.debug(
                f"Registered category profile: {profile.category} "
                f"({len(profile.expected)} expected keys)"
            )

    def get(self, category: str) -> CategoryProfile | None:
        """Get the profile for a category."""
        return self._profiles.get(category)

    def categories(self) -> list[str]:
        """List registered category names."""
        return sorted(self._profiles)

    def expected_kind(self, category: str, key: str) -> ValueKind | None:
        """Get the expected kind of a key under a category."""
        profile = self._profiles.get(category)
        return profile.expected_kind(key) if profile else None

    def missing_keys(self, category: str, present: set[str]) -> list[str]:
        """List expected keys a project of this category does not carry."""
        profile = self._profiles.get(category)
        return profile.missing_keys(present) if profile else []


_I = ValueKind.INTEGER
_F = ValueKind.FLOAT
_S = ValueKind.STRING

DEX_PROFILE = CategoryProfile(
    category="DEX",
    description="Decentralized exchange metrics",
    expected={
        "num_chains": _I,
        "core_developers": _I,
        "code_commits": _I,
        "total_value_locked": _F,
        "token_max_supply": _I,
        "ath": _S,
        "ath_last": _S,
        "atl": _S,
        "atl_last": _S,
        "revenue_30d": _S,
        "revenue_annualized": _S,
        "expenses_30d": _S,
        "earnings_30d": _S,
        "fees_30d": _S,
        "fees_annualized": _S,
        "daily_fees": _F,
        "token_incentives_30d": _S,
        "monthly_active_users": _S,
        "afpu": _S,
        "arpu": _S,
        "token_trading_volume_30d": _S,
        "market_cap_fully_diluted": _F,
        "market_cap_circulating": _F,
        "token_supply": _F,
        "num_token_holders": _I,
        "trading_volume": _F,
        "daily_active_users": _I,
        "weekly_active_users": _I,
    },
)


def default_registry() -> CategoryRegistry:
    """Build a registry with the built-in category profiles."""
    registry = CategoryRegistry()
    registry.register(DEX_PROFILE)
    return registry
