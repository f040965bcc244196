"""
Category Store

Owners see their own categories plus the shared system catalog. They may
change or delete only their own, and never a category an expense still
references.

CRITICAL: (owner_id, name) is unique among user categories. The check and
the write happen under the owner's lock.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import structlog
from pydantic import ValidationError

from expense_tracker.audit import AuditLogger
from expense_tracker.exceptions import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)
from expense_tracker.ledger.locks import OwnerLocks
from expense_tracker.ledger.summary import summary_cache_key
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.models.category import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryWithStats,
)
from expense_tracker.models.common import ZERO, to_money
from expense_tracker.services.cache import CacheInterface, SafeCache
from expense_tracker.services.storage import LedgerStorageInterface

logger = structlog.get_logger(__name__)


# The shared catalog, in display order
SYSTEM_CATEGORY_CATALOG = [
    {"name": "Food", "icon": "restaurant", "color": "#FF6B6B"},
    {"name": "Transport", "icon": "directions_car", "color": "#4ECDC4"},
    {"name": "Entertainment", "icon": "movie", "color": "#FFA07A"},
    {"name": "Shopping", "icon": "shopping_cart", "color": "#9B59B6"},
    {"name": "Health", "icon": "local_hospital", "color": "#2ECC71"},
    {"name": "Education", "icon": "school", "color": "#3498DB"},
    {"name": "Services", "icon": "build", "color": "#F39C12"},
    {"name": "Other", "icon": "more_horiz", "color": "#95A5A6"},
]


# Fields an update may clear by sending None
NULLABLE_FIELDS = {"description", "icon"}


def categories_cache_key(owner_id: str) -> str:
    return f"categories:{owner_id}"


def sort_categories(categories: list[Category]) -> list[Category]:
    return sorted(categories, key=lambda c: (c.order_index, c.name))


class CategoryStore:
    """
    Category operations scoped to one owner per call.

    Args:
        storage: Backend holding categories and expenses
        cache: Optional cache for category lists
        locks: Per-owner lock registry shared with the other stores
        audit_logger: Optional audit trail
        cache_ttl_seconds: Lifetime of a cached list
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        cache: Optional[CacheInterface] = None,
        locks: Optional[OwnerLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        cache_ttl_seconds: int = 3600,
    ):
        self._storage = storage
        self._cache = SafeCache(cache) if cache and not isinstance(cache, SafeCache) else cache
        self._locks = locks or OwnerLocks()
        self._audit_logger = audit_logger
        self._cache_ttl_seconds = cache_ttl_seconds

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _invalidate(self, owner_id: str) -> None:
        if self._cache:
            await self._cache.delete(categories_cache_key(owner_id))

    async def _invalidate_summary(self, owner_id: str) -> None:
        # Breakdowns carry category names and colors
        if self._cache:
            await self._cache.delete(summary_cache_key(owner_id))

    async def _require_unique_name(
        self,
        owner_id: str,
        name: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        existing = await self._storage.find_category_by_name(owner_id, name)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(f"A category named '{name}' already exists")

    async def _require_owned(self, owner_id: str, category_id: str) -> Category:
        """Resolve a category the owner may change."""
        category = await self.get(owner_id, category_id)
        if category.is_system:
            raise InvalidOperationError("System categories cannot be modified")
        if category.owner_id != owner_id:
            raise InvalidOperationError("Category belongs to another owner")
        return category

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list(self, owner_id: str) -> list[Category]:
        """Own and system categories ordered by (order_index, name)."""
        key = categories_cache_key(owner_id)
        if self._cache:
            cached = await self._cache.get(key)
            if cached is not None:
                try:
                    return [Category.model_validate(item) for item in cached]
                except ValidationError as e:
                    logger.warning("category_cache_corrupt", owner_id=owner_id, error=str(e))

        categories = sort_categories(await self._storage.list_categories(owner_id))

        if self._cache:
            await self._cache.set(
                key,
                [c.model_dump(mode="json") for c in categories],
                self._cache_ttl_seconds,
            )
        return categories

    async def get(self, owner_id: str, category_id: str) -> Category:
        """
        Resolve an owned or system category.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        category = await self._storage.get_category(category_id)
        if category is None or not category.is_visible_to(owner_id):
            raise NotFoundError("Category", category_id)
        return category

    async def list_with_stats(self, owner_id: str) -> list[CategoryWithStats]:
        """Every visible category with counts and sums over the owner's expenses."""
        categories = sort_categories(await self._storage.list_categories(owner_id))
        owner_expenses = await self._storage.list_all_expenses(owner_id)

        results = []
        for category in categories:
            linked = [e for e in owner_expenses if e.category_id == category.id]
            total: Decimal = sum((e.amount for e in linked), ZERO)
            results.append(CategoryWithStats(
                **category.model_dump(),
                total_expenses=len(linked),
                total_amount=to_money(total),
                last_expense_date=max((e.date for e in linked), default=None),
            ))
        return results

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create(self, owner_id: str, data: CategoryCreate) -> Category:
        """
        Create a user category.

        Raises:
            ConflictError: If the owner already has a category with this name
        """
        async with self._locks.hold(owner_id):
            await self._require_unique_name(owner_id, data.name)
            category = Category(
                **data.model_dump(),
                owner_id=owner_id,
                is_system=False,
            )
            category = await self._storage.insert_category(category)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.category_created(owner_id, category.id, category.name))
        return category

    async def update(self, owner_id: str, category_id: str, data: CategoryUpdate) -> Category:
        """
        Change a user category.

        Raises:
            NotFoundError: If the category is not visible
            InvalidOperationError: If it is a system category
            ConflictError: If the new name is taken
        """
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_FIELDS
        }

        async with self._locks.hold(owner_id):
            category = await self._require_owned(owner_id, category_id)
            new_name = changes.get("name")
            if new_name and new_name != category.name:
                await self._require_unique_name(owner_id, new_name, exclude_id=category.id)

            updated = Category.model_validate({**category.model_dump(), **changes})
            updated = await self._storage.update_category(updated)

        await self._invalidate(owner_id)
        await self._invalidate_summary(owner_id)
        await self._audit(AuditEventBuilder.category_updated(owner_id, category_id, list(changes)))
        return updated

    async def delete(self, owner_id: str, category_id: str) -> None:
        """
        Delete an unreferenced user category.

        Raises:
            NotFoundError: If the category is not visible
            InvalidOperationError: If it is a system category or still in use
        """
        async with self._locks.hold(owner_id):
            category = await self._require_owned(owner_id, category_id)
            references = await self._storage.count_expenses_by_category(category_id)
            if references > 0:
                raise InvalidOperationError(
                    f"Category is used by {references} expense(s) and cannot be deleted"
                )
            await self._storage.delete_category(category_id)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.category_deleted(owner_id, category_id, category.name))

    async def reorder(self, owner_id: str, ordered_ids: list[str]) -> list[str]:
        """
        Set order_index to each id's position in the list.

        Ids the owner does not own (foreign, system, unknown) are skipped.

        Returns:
            The skipped ids
        """
        skipped: list[str] = []
        reordered: list[str] = []

        async with self._locks.hold(owner_id):
            for position, category_id in enumerate(ordered_ids):
                category = await self._storage.get_category(category_id)
                if category is None or category.is_system or category.owner_id != owner_id:
                    skipped.append(category_id)
                    continue
                if category.order_index != position:
                    category.order_index = position
                    await self._storage.update_category(category)
                reordered.append(category_id)

        if skipped:
            logger.warning("reorder_skipped_ids", owner_id=owner_id, skipped=skipped)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.categories_reordered(owner_id, reordered, skipped))
        return skipped

    async def seed_system_defaults(self) -> int:
        """
        Ensure the system catalog exists. Safe to call repeatedly and concurrently.

        Cached owner lists pick up new system categories when they expire.

        Returns:
            Number of categories inserted
        """
        inserted: list[str] = []
        async with self._locks.hold(None):
            for order_index, entry in enumerate(SYSTEM_CATEGORY_CATALOG):
                category = Category(
                    **entry,
                    owner_id=None,
                    is_system=True,
                    order_index=order_index,
                )
                if await self._storage.insert_system_category_if_absent(category):
                    inserted.append(category.name)

        if inserted:
            await self._audit(AuditEventBuilder.system_categories_seeded(inserted))
        return len(inserted)
