"""Tests for the Category Store."""

import asyncio
from decimal import Decimal

import pytest

from expense_tracker.exceptions import ConflictError, InvalidOperationError, NotFoundError
from expense_tracker.ledger import SYSTEM_CATEGORY_CATALOG, CategoryStore
from expense_tracker.ledger.categories import categories_cache_key
from expense_tracker.ledger.summary import summary_cache_key
from expense_tracker.models import (
    AuditEventType,
    CategoryCreate,
    CategoryUpdate,
    ExpenseCreate,
)

from conftest import OTHER_OWNER, OWNER, BrokenCache


class TestSystemCatalog:
    """Tests for seeding the shared catalog."""

    async def test_seed_inserts_catalog_once(self, categories):
        """Test that seeding is idempotent."""
        assert await categories.seed_system_defaults() == len(SYSTEM_CATEGORY_CATALOG)
        assert await categories.seed_system_defaults() == 0
        assert len(await categories.list(OWNER)) == len(SYSTEM_CATEGORY_CATALOG)

    async def test_concurrent_seeding_does_not_duplicate(self, categories):
        """Test that racing seeders insert each system category once."""
        counts = await asyncio.gather(*(categories.seed_system_defaults() for _ in range(5)))
        assert sum(counts) == len(SYSTEM_CATEGORY_CATALOG)

    async def test_system_categories_are_shared(self, categories, system_categories):
        """Test that every owner sees the catalog."""
        names = {c.name for c in await categories.list(OTHER_OWNER)}
        assert names == set(system_categories)

    async def test_catalog_order(self, system_categories):
        """Test that the catalog keeps its display order."""
        ordered = sorted(system_categories.values(), key=lambda c: c.order_index)
        assert [c.name for c in ordered] == [entry["name"] for entry in SYSTEM_CATEGORY_CATALOG]


class TestCreateAndList:
    """Tests for creating and listing categories."""

    async def test_create_owned_category(self, categories):
        """Test that created categories belong to the caller."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        assert category.owner_id == OWNER
        assert category.is_system is False

    async def test_duplicate_name_conflicts(self, categories):
        """Test per-owner name uniqueness."""
        await categories.create(OWNER, CategoryCreate(name="Pets"))
        with pytest.raises(ConflictError):
            await categories.create(OWNER, CategoryCreate(name="Pets"))

    async def test_same_name_for_different_owners(self, categories):
        """Test that uniqueness is scoped to one owner."""
        await categories.create(OWNER, CategoryCreate(name="Pets"))
        other = await categories.create(OTHER_OWNER, CategoryCreate(name="Pets"))
        assert other.owner_id == OTHER_OWNER

    async def test_user_category_may_shadow_system_name(self, categories, system_categories):
        """Test that a user category may reuse a system category name."""
        category = await categories.create(OWNER, CategoryCreate(name="Food"))
        assert category.id != system_categories["Food"].id

    async def test_concurrent_creates_with_same_name(self, categories):
        """Test that racing creates leave exactly one category."""
        results = await asyncio.gather(
            *(categories.create(OWNER, CategoryCreate(name="Pets")) for _ in range(3)),
            return_exceptions=True,
        )
        assert sum(1 for r in results if isinstance(r, ConflictError)) == 2
        assert [c.name for c in await categories.list(OWNER)].count("Pets") == 1

    async def test_list_orders_by_index_then_name(self, categories):
        """Test list ordering."""
        await categories.create(OWNER, CategoryCreate(name="Zoo", order_index=0))
        await categories.create(OWNER, CategoryCreate(name="Art", order_index=0))
        await categories.create(OWNER, CategoryCreate(name="Bar", order_index=1))
        assert [c.name for c in await categories.list(OWNER)] == ["Art", "Zoo", "Bar"]

    async def test_list_excludes_other_owners(self, categories):
        """Test that foreign categories are invisible."""
        await categories.create(OTHER_OWNER, CategoryCreate(name="Secret"))
        assert await categories.list(OWNER) == []

    async def test_list_is_cached_and_invalidated(self, categories, cache):
        """Test that mutations evict the cached list."""
        await categories.list(OWNER)
        assert categories_cache_key(OWNER) in cache.keys()
        await categories.create(OWNER, CategoryCreate(name="Pets"))
        assert categories_cache_key(OWNER) not in cache.keys()
        assert [c.name for c in await categories.list(OWNER)] == ["Pets"]

    async def test_broken_cache_is_not_fatal(self, storage):
        """Test that cache failures fall through to storage."""
        store = CategoryStore(storage, cache=BrokenCache())
        await store.create(OWNER, CategoryCreate(name="Pets"))
        assert [c.name for c in await store.list(OWNER)] == ["Pets"]


class TestGetAndUpdate:
    """Tests for resolving and changing categories."""

    async def test_get_foreign_category_is_not_found(self, categories):
        """Test that other owners' categories are not found."""
        foreign = await categories.create(OTHER_OWNER, CategoryCreate(name="Secret"))
        with pytest.raises(NotFoundError):
            await categories.get(OWNER, foreign.id)

    async def test_get_system_category(self, categories, food):
        """Test that system categories resolve for any owner."""
        assert (await categories.get(OWNER, food.id)).name == "Food"

    async def test_update_changes_fields(self, categories):
        """Test a plain update."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        updated = await categories.update(
            OWNER, category.id, CategoryUpdate(name="Animals", color="#112233")
        )
        assert updated.name == "Animals"
        assert updated.color == "#112233"

    async def test_update_can_clear_description(self, categories):
        """Test that an explicit None clears nullable fields."""
        category = await categories.create(
            OWNER, CategoryCreate(name="Pets", description="Dog food")
        )
        updated = await categories.update(OWNER, category.id, CategoryUpdate(description=None))
        assert updated.description is None

    async def test_update_to_taken_name_conflicts(self, categories):
        """Test renaming onto an existing name."""
        await categories.create(OWNER, CategoryCreate(name="Pets"))
        other = await categories.create(OWNER, CategoryCreate(name="Kids"))
        with pytest.raises(ConflictError):
            await categories.update(OWNER, other.id, CategoryUpdate(name="Pets"))

    async def test_update_keeping_own_name(self, categories):
        """Test that re-sending the current name is not a conflict."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        updated = await categories.update(OWNER, category.id, CategoryUpdate(name="Pets"))
        assert updated.name == "Pets"

    async def test_update_system_category_is_rejected(self, categories, food):
        """Test that system categories are immutable."""
        with pytest.raises(InvalidOperationError):
            await categories.update(OWNER, food.id, CategoryUpdate(name="Meals"))

    async def test_update_foreign_category_is_not_found(self, categories):
        """Test that other owners' categories cannot be changed."""
        foreign = await categories.create(OTHER_OWNER, CategoryCreate(name="Secret"))
        with pytest.raises(NotFoundError):
            await categories.update(OWNER, foreign.id, CategoryUpdate(name="Mine"))

    async def test_rename_refreshes_cached_summary(self, categories, ledger, summary, cash, cache):
        """Test that the summary breakdown shows the new name and color."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        await ledger.create(OWNER, ExpenseCreate(
            amount=Decimal("10.00"),
            description="Dog food",
            category_id=category.id,
            payment_method_id=cash.id,
        ))
        assert (await summary.get_summary(OWNER)).by_category[0].category_name == "Pets"

        await categories.update(OWNER, category.id, CategoryUpdate(name="Animals", color="#112233"))

        assert summary_cache_key(OWNER) not in cache.keys()
        [breakdown] = (await summary.get_summary(OWNER)).by_category
        assert breakdown.category_name == "Animals"
        assert breakdown.color == "#112233"


class TestDelete:
    """Tests for deleting categories."""

    async def test_delete_unused_category(self, categories):
        """Test deleting an unreferenced category."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        await categories.delete(OWNER, category.id)
        with pytest.raises(NotFoundError):
            await categories.get(OWNER, category.id)

    async def test_delete_system_category_is_rejected(self, categories, food):
        """Test that system categories cannot be deleted."""
        with pytest.raises(InvalidOperationError):
            await categories.delete(OWNER, food.id)

    async def test_delete_referenced_category_is_rejected(self, categories, ledger, cash):
        """Test that a category with a live expense survives, and so does the expense."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        expense = await ledger.create(OWNER, ExpenseCreate(
            amount=Decimal("10.00"),
            description="Dog food",
            category_id=category.id,
            payment_method_id=cash.id,
        ))

        with pytest.raises(InvalidOperationError):
            await categories.delete(OWNER, category.id)

        assert (await categories.get(OWNER, category.id)).name == "Pets"
        assert (await ledger.get(OWNER, expense.id)).category_id == category.id

    async def test_delete_records_audit_event(self, categories, audit_storage):
        """Test that deletions are audited."""
        category = await categories.create(OWNER, CategoryCreate(name="Pets"))
        await categories.delete(OWNER, category.id)
        events = await audit_storage.get_events_by_entity("category", category.id)
        assert [e.event_type for e in events] == [
            AuditEventType.CATEGORY_CREATED,
            AuditEventType.CATEGORY_DELETED,
        ]


class TestReorder:
    """Tests for reordering categories."""

    async def test_reorder_sets_positions(self, categories):
        """Test that order_index follows list position."""
        a = await categories.create(OWNER, CategoryCreate(name="A"))
        b = await categories.create(OWNER, CategoryCreate(name="B"))
        c = await categories.create(OWNER, CategoryCreate(name="C"))

        skipped = await categories.reorder(OWNER, [c.id, a.id, b.id])

        assert skipped == []
        assert [x.name for x in await categories.list(OWNER)] == ["C", "A", "B"]

    async def test_reorder_skips_ids_not_owned(self, categories, food):
        """Test that foreign, system and unknown ids are skipped and reported."""
        own = await categories.create(OWNER, CategoryCreate(name="Mine"))
        foreign = await categories.create(OTHER_OWNER, CategoryCreate(name="Theirs"))

        skipped = await categories.reorder(OWNER, [foreign.id, food.id, "missing", own.id])

        assert skipped == [foreign.id, food.id, "missing"]
        assert (await categories.get(OWNER, own.id)).order_index == 3
        assert (await categories.get(OTHER_OWNER, foreign.id)).order_index == 0


class TestStats:
    """Tests for category statistics."""

    async def test_list_with_stats(self, categories, ledger, cash, food):
        """Test counts, sums and the last expense date."""
        for amount, day in (("10.00", 1), ("5.50", 3)):
            await ledger.create(OWNER, ExpenseCreate(
                amount=Decimal(amount),
                description="Lunch",
                date=f"2024-03-0{day}",
                category_id=food.id,
                payment_method_id=cash.id,
            ))

        stats = {c.name: c for c in await categories.list_with_stats(OWNER)}

        assert stats["Food"].total_expenses == 2
        assert stats["Food"].total_amount == Decimal("15.50")
        assert str(stats["Food"].last_expense_date) == "2024-03-03"
        assert stats["Transport"].total_expenses == 0
        assert stats["Transport"].last_expense_date is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
