"""
Unit tests for category profiles.
"""

import pytest

from backend.dwh_store.access.categories import (
    DEX_PROFILE,
    CategoryProfile,
    CategoryRegistry,
    default_registry,
)
from backend.dwh_store.attributes import ValueKind


class TestCategoryRegistry:
    """Tests for CategoryRegistry."""

    def test_default_registry_has_dex(self):
        """The DEX profile ships by default."""
        registry = default_registry()
        assert registry.categories() == ["DEX"]
        assert registry.get("DEX") is DEX_PROFILE

    def test_expected_kinds(self):
        """DEX keys carry their expected kinds."""
        registry = default_registry()
        assert registry.expected_kind("DEX", "total_value_locked") == ValueKind.FLOAT
        assert registry.expected_kind("DEX", "code_commits") == ValueKind.INTEGER
        assert registry.expected_kind("DEX", "revenue_30d") == ValueKind.STRING

    def test_unknown_key_or_category(self):
        """Keys outside a profile have no expectation."""
        registry = default_registry()
        assert registry.expected_kind("DEX", "website") is None
        assert registry.expected_kind("Lending", "total_value_locked") is None
        assert registry.missing_keys("Lending", set()) == []

    def test_missing_keys(self):
        """Missing keys are listed in sorted order."""
        profile = CategoryProfile(
            "NFT",
            {"floor_price": ValueKind.FLOAT, "holders": ValueKind.INTEGER},
        )
        assert profile.missing_keys({"holders", "website"}) == ["floor_price"]
        assert profile.missing_keys(set()) == ["floor_price", "holders"]

    def test_duplicate_category_raises(self):
        """A category can only be registered once."""
        registry = CategoryRegistry()
        registry.register(CategoryProfile("NFT"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(CategoryProfile("NFT"))

    def test_empty_category_raises(self):
        """Profiles need a category name."""
        with pytest.raises(ValueError):
            CategoryProfile("")
