"""
Unit tests for the identity graph.

Tests cover:
- Entity upsert by name
- Account upsert, ownership conflicts and reassignment
- Cascading deletes through projects and attributes
"""

import os
import tempfile

import pytest

from backend.dwh_store.attributes import AttributeStore
from backend.dwh_store.errors import ConflictError, NotFoundError, ValidationError
from backend.dwh_store.identity import IdentityGraph, normalize_address
from backend.dwh_store.projects import ProjectRegistry
from backend.dwh_store.storage import Database


class TestIdentityGraph:
    """Tests for IdentityGraph."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def db(self, data_dir):
        """Create database handle."""
        return Database(os.path.join(data_dir, "warehouse.db"))

    @pytest.fixture
    def graph(self, db):
        """Create identity graph."""
        return IdentityGraph(db)

    @pytest.mark.asyncio
    async def test_upsert_entity_idempotent(self, db, graph):
        """The same name resolves to the same entity."""
        await db.initialize()

        first = await graph.upsert_entity("Acme Labs")
        second = await graph.upsert_entity("  Acme Labs ")

        assert first.id == second.id
        assert second.name == "Acme Labs"
        assert (await db.get_stats())["entity"] == 1

    @pytest.mark.asyncio
    async def test_upsert_entity_empty_name(self, db, graph):
        """Entity names cannot be blank."""
        await db.initialize()

        with pytest.raises(ValidationError):
            await graph.upsert_entity("   ")

    @pytest.mark.asyncio
    async def test_get_entity_missing(self, db, graph):
        """Unknown entity IDs raise NotFoundError."""
        await db.initialize()

        with pytest.raises(NotFoundError):
            await graph.get_entity(999)

    @pytest.mark.asyncio
    async def test_upsert_account_creates_once(self, db, graph):
        """Repeated upserts of an address keep one account."""
        await db.initialize()
        acme = await graph.upsert_entity("Acme Labs")

        created = await graph.upsert_account("0xabc", acme.id)
        again = await graph.upsert_account(" 0xabc ", acme.id)
        unowned = await graph.upsert_account("0xabc")

        assert created.id == again.id == unowned.id
        assert unowned.entity_id == acme.id
        assert (await db.get_stats())["account"] == 1

    @pytest.mark.asyncio
    async def test_upsert_account_unknown_entity(self, db, graph):
        """Assigning to a missing entity fails without writing."""
        await db.initialize()

        with pytest.raises(NotFoundError):
            await graph.upsert_account("0xabc", 42)
        assert (await db.get_stats())["account"] == 0

    @pytest.mark.asyncio
    async def test_upsert_account_ownership_conflict(self, db, graph):
        """An owned address is not silently moved."""
        await db.initialize()
        acme = await graph.upsert_entity("Acme Labs")
        other = await graph.upsert_entity("Other Labs")
        await graph.upsert_account("0xabc", acme.id)

        with pytest.raises(ConflictError):
            await graph.upsert_account("0xabc", other.id)

        account = await graph.get_account_by_address("0xabc")
        assert account.entity_id == acme.id

    @pytest.mark.asyncio
    async def test_upsert_account_reassign(self, db, graph):
        """Reassignment moves the account when requested."""
        await db.initialize()
        acme = await graph.upsert_entity("Acme Labs")
        other = await graph.upsert_entity("Other Labs")
        await graph.upsert_account("0xabc", acme.id)

        moved = await graph.upsert_account("0xabc", other.id, reassign=True)

        assert moved.entity_id == other.id
        assert await graph.list_accounts(acme.id) == []
        assert [a.address for a in await graph.list_accounts(other.id)] == ["0xabc"]

    @pytest.mark.asyncio
    async def test_unowned_account_can_be_claimed(self, db, graph):
        """An account without an entity is assigned on first claim."""
        await db.initialize()
        await graph.upsert_account("0xabc")
        acme = await graph.upsert_entity("Acme Labs")

        claimed = await graph.upsert_account("0xabc", acme.id)

        assert claimed.entity_id == acme.id
        assert (await graph.get_account(claimed.id)).entity_id == acme.id

    @pytest.mark.asyncio
    async def test_delete_entity_cascades(self, db, graph):
        """Deleting an entity removes accounts, projects and attributes."""
        await db.initialize()
        acme = await graph.upsert_entity("Acme Labs")
        await graph.upsert_account("0xabc", acme.id)
        await graph.upsert_account("0xdef", acme.id)
        projects = ProjectRegistry(db)
        attributes = AttributeStore(db)
        for address in ("0xabc", "0xdef"):
            project = await projects.create_project("Swapper", "SWP", "DEX", address)
            await attributes.set_attribute(project.id, "code_commits", 10, "integer")

        assert await graph.delete_entity(acme.id) is True

        stats = await db.get_stats()
        assert stats["entity"] == 0
        assert stats["account"] == 0
        assert stats["project"] == 0
        assert stats["project_attribute"] == 0

    @pytest.mark.asyncio
    async def test_delete_entity_missing(self, db, graph):
        """Deleting an absent entity reports False."""
        await db.initialize()

        assert await graph.delete_entity(999) is False

    @pytest.mark.asyncio
    async def test_delete_account_cascades(self, db, graph):
        """Deleting an account removes its projects but keeps the entity."""
        await db.initialize()
        acme = await graph.upsert_entity("Acme Labs")
        await graph.upsert_account("0xabc", acme.id)
        await ProjectRegistry(db).create_project("Swapper", "SWP", "DEX", "0xabc")

        assert await graph.delete_account("0xabc") is True
        assert await graph.delete_account("0xabc") is False

        stats = await db.get_stats()
        assert stats["entity"] == 1
        assert stats["project"] == 0


class TestNormalizeAddress:
    """Tests for normalize_address."""

    def test_strips_whitespace(self):
        """Addresses are stripped."""
        assert normalize_address("  0xabc\n") == "0xabc"

    def test_rejects_blank(self):
        """Blank addresses are invalid."""
        with pytest.raises(ValidationError):
            normalize_address("  ")

    def test_rejects_too_long(self):
        """Addresses over 64 characters are invalid."""
        with pytest.raises(ValidationError):
            normalize_address("0x" + "f" * 63)
