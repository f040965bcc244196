"""
In-Memory Storage Implementation

Keeps every entity in process-local dictionaries. Used by the test suite
and as the default backend for local runs.

CRITICAL: No method awaits anything, so under asyncio each call runs to
completion without interleaving. That is what makes `set_default`,
`adjust_balance` and `insert_system_category_if_absent` atomic here.

Stored objects are copied on the way in and on the way out, so callers
can never mutate storage by holding on to a returned model.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.category import Category
from expense_tracker.models.common import to_money, utc_now
from expense_tracker.models.expense import Expense, ExpenseQuery, SortOrder
from expense_tracker.models.payment_method import PaymentMethod
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageError,
)


def apply_expense_query(
    expenses: list[Expense],
    query: ExpenseQuery,
) -> tuple[list[Expense], int]:
    """
    Filter, sort and slice expenses according to a query.

    Date bounds are inclusive. Ties on the sort field are broken by
    creation time and then id, so pages are stable.
    """
    matches = [
        expense for expense in expenses
        if (query.start_date is None or expense.date >= query.start_date)
        and (query.end_date is None or expense.date <= query.end_date)
        and (query.category_id is None or expense.category_id == query.category_id)
        and (
            query.payment_method_id is None
            or expense.payment_method_id == query.payment_method_id
        )
    ]

    sort_field = query.sort_by.value
    matches.sort(
        key=lambda e: (getattr(e, sort_field), e.created_at, e.id),
        reverse=query.sort_order == SortOrder.DESC,
    )

    offset = (query.page - 1) * query.page_size
    return matches[offset:offset + query.page_size], len(matches)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self):
        self._categories: dict[str, Category] = {}
        self._payment_methods: dict[str, PaymentMethod] = {}
        self._expenses: dict[str, Expense] = {}

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def insert_category(self, category: Category) -> Category:
        if category.id in self._categories:
            raise StorageError(f"Category already stored: {category.id}")
        self._categories[category.id] = category.model_copy(deep=True)
        return category.model_copy(deep=True)

    async def insert_system_category_if_absent(self, category: Category) -> bool:
        for existing in self._categories.values():
            if existing.is_system and existing.name == category.name:
                return False
        self._categories[category.id] = category.model_copy(deep=True)
        return True

    async def get_category(self, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy(deep=True) if category else None

    async def find_category_by_name(
        self,
        owner_id: Optional[str],
        name: str,
    ) -> Optional[Category]:
        for category in self._categories.values():
            if category.name != name:
                continue
            if owner_id is None and category.is_system:
                return category.model_copy(deep=True)
            if owner_id is not None and category.owner_id == owner_id:
                return category.model_copy(deep=True)
        return None

    async def list_categories(self, owner_id: str) -> list[Category]:
        return [
            category.model_copy(deep=True)
            for category in self._categories.values()
            if category.is_visible_to(owner_id)
        ]

    async def update_category(self, category: Category) -> Category:
        if category.id not in self._categories:
            raise StorageError(f"Category not stored: {category.id}")
        stored = category.model_copy(update={"updated_at": utc_now()}, deep=True)
        self._categories[category.id] = stored
        return stored.model_copy(deep=True)

    async def delete_category(self, category_id: str) -> bool:
        return self._categories.pop(category_id, None) is not None

    # =========================================================================
    # PAYMENT METHODS
    # =========================================================================

    async def insert_payment_method(self, payment_method: PaymentMethod) -> PaymentMethod:
        if payment_method.id in self._payment_methods:
            raise StorageError(f"Payment method already stored: {payment_method.id}")
        self._payment_methods[payment_method.id] = payment_method.model_copy(deep=True)
        return payment_method.model_copy(deep=True)

    async def get_payment_method(self, payment_method_id: str) -> Optional[PaymentMethod]:
        payment_method = self._payment_methods.get(payment_method_id)
        return payment_method.model_copy(deep=True) if payment_method else None

    async def find_payment_method_by_name(
        self,
        owner_id: str,
        name: str,
    ) -> Optional[PaymentMethod]:
        for payment_method in self._payment_methods.values():
            if payment_method.owner_id == owner_id and payment_method.name == name:
                return payment_method.model_copy(deep=True)
        return None

    async def list_payment_methods(
        self,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[PaymentMethod]:
        return [
            payment_method.model_copy(deep=True)
            for payment_method in self._payment_methods.values()
            if payment_method.owner_id == owner_id
            and (include_inactive or payment_method.is_active)
        ]

    async def update_payment_method(self, payment_method: PaymentMethod) -> PaymentMethod:
        current = self._payment_methods.get(payment_method.id)
        if current is None:
            raise StorageError(f"Payment method not stored: {payment_method.id}")
        stored = payment_method.model_copy(
            update={"balance": current.balance, "updated_at": utc_now()},
            deep=True,
        )
        self._payment_methods[payment_method.id] = stored
        return stored.model_copy(deep=True)

    async def delete_payment_method(self, payment_method_id: str) -> bool:
        return self._payment_methods.pop(payment_method_id, None) is not None

    async def set_default(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        target = self._payment_methods.get(payment_method_id)
        if target is None or target.owner_id != owner_id:
            raise StorageError(f"Payment method not stored: {payment_method_id}")

        now = utc_now()
        for payment_method in self._payment_methods.values():
            if payment_method.owner_id == owner_id and payment_method.is_default:
                payment_method.is_default = False
                payment_method.updated_at = now
        target.is_default = True
        target.updated_at = now
        return target.model_copy(deep=True)

    async def adjust_balance(self, payment_method_id: str, delta: Decimal) -> PaymentMethod:
        payment_method = self._payment_methods.get(payment_method_id)
        if payment_method is None:
            raise StorageError(f"Payment method not stored: {payment_method_id}")
        payment_method.balance = to_money(payment_method.balance + delta)
        payment_method.updated_at = utc_now()
        return payment_method.model_copy(deep=True)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def insert_expense(self, expense: Expense) -> Expense:
        if expense.id in self._expenses:
            raise StorageError(f"Expense already stored: {expense.id}")
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return expense.model_copy(deep=True)

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    async def update_expense(self, expense: Expense) -> Expense:
        if expense.id not in self._expenses:
            raise StorageError(f"Expense not stored: {expense.id}")
        stored = expense.model_copy(update={"updated_at": utc_now()}, deep=True)
        self._expenses[expense.id] = stored
        return stored.model_copy(deep=True)

    async def delete_expense(self, expense_id: str) -> bool:
        return self._expenses.pop(expense_id, None) is not None

    async def list_expenses(
        self,
        owner_id: str,
        query: ExpenseQuery,
    ) -> tuple[list[Expense], int]:
        page, total = apply_expense_query(await self.list_all_expenses(owner_id), query)
        return page, total

    async def list_all_expenses(self, owner_id: str) -> list[Expense]:
        return [
            expense.model_copy(deep=True)
            for expense in self._expenses.values()
            if expense.owner_id == owner_id
        ]

    async def count_expenses_by_category(self, category_id: str) -> int:
        return sum(
            1 for expense in self._expenses.values()
            if expense.category_id == category_id
        )

    async def count_expenses_by_payment_method(self, payment_method_id: str) -> int:
        return sum(
            1 for expense in self._expenses.values()
            if expense.payment_method_id == payment_method_id
        )


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit trail held in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
