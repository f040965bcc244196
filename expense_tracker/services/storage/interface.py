"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Use in-memory storage for tests and local runs
2. Keep Google Sheets as a zero-setup persistent backend
3. Swap in a real database later without touching business logic

The interface is intentionally simple - we're not building a full ORM.
Ownership and uniqueness rules live in the ledger stores; storage only
guarantees that each method is a single atomic step.

CRITICAL: `set_default` and `adjust_balance` must each behave as one
indivisible operation. Callers rely on this to keep the at-most-one-default
and no-lost-update guarantees.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.category import Category
from expense_tracker.models.expense import Expense, ExpenseQuery
from expense_tracker.models.payment_method import PaymentMethod


class CategoryStorageInterface(ABC):
    """Storage operations for categories."""

    @abstractmethod
    async def insert_category(self, category: Category) -> Category:
        """
        Persist a new category.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def insert_system_category_if_absent(self, category: Category) -> bool:
        """
        Insert a system category unless one with the same name exists.

        The existence check and the insert happen as one step, so concurrent
        seeders never create duplicates.

        Returns:
            True if the category was inserted
        """
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def find_category_by_name(
        self,
        owner_id: Optional[str],
        name: str,
    ) -> Optional[Category]:
        """
        Find a category by exact name.

        Args:
            owner_id: Owner to search, None to search system categories
            name: Category name
        """
        pass

    @abstractmethod
    async def list_categories(self, owner_id: str) -> list[Category]:
        """
        List the owner's categories together with all system categories.

        Ordering is left to the caller.
        """
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> Category:
        """
        Replace a stored category.

        Raises:
            StorageError: If the category does not exist
        """
        pass

    @abstractmethod
    async def delete_category(self, category_id: str) -> bool:
        pass


class PaymentMethodStorageInterface(ABC):
    """Storage operations for payment methods."""

    @abstractmethod
    async def insert_payment_method(self, payment_method: PaymentMethod) -> PaymentMethod:
        pass

    @abstractmethod
    async def get_payment_method(self, payment_method_id: str) -> Optional[PaymentMethod]:
        pass

    @abstractmethod
    async def find_payment_method_by_name(
        self,
        owner_id: str,
        name: str,
    ) -> Optional[PaymentMethod]:
        pass

    @abstractmethod
    async def list_payment_methods(
        self,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[PaymentMethod]:
        pass

    @abstractmethod
    async def update_payment_method(self, payment_method: PaymentMethod) -> PaymentMethod:
        """
        Replace a stored payment method.

        The stored balance is kept: balances only change via adjust_balance.

        Raises:
            StorageError: If the payment method does not exist
        """
        pass

    @abstractmethod
    async def delete_payment_method(self, payment_method_id: str) -> bool:
        pass

    @abstractmethod
    async def set_default(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        """
        Clear the default flag on every method of the owner and set it on one.

        Args:
            owner_id: Owner whose methods are touched
            payment_method_id: Method that becomes the default

        Returns:
            The new default payment method

        Raises:
            StorageError: If the payment method does not exist
        """
        pass

    @abstractmethod
    async def adjust_balance(self, payment_method_id: str, delta: Decimal) -> PaymentMethod:
        """
        Add a signed delta to the stored balance.

        Returns:
            The payment method with its new balance

        Raises:
            StorageError: If the payment method does not exist
        """
        pass


class ExpenseStorageInterface(ABC):
    """Storage operations for expenses."""

    @abstractmethod
    async def insert_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> Expense:
        """
        Replace a stored expense.

        Raises:
            StorageError: If the expense does not exist
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> bool:
        pass

    @abstractmethod
    async def list_expenses(
        self,
        owner_id: str,
        query: ExpenseQuery,
    ) -> tuple[list[Expense], int]:
        """
        Filter, sort and paginate the owner's expenses.

        Returns:
            The requested page and the total number of matches
        """
        pass

    @abstractmethod
    async def list_all_expenses(self, owner_id: str) -> list[Expense]:
        """Every expense of the owner, unordered."""
        pass

    @abstractmethod
    async def count_expenses_by_category(self, category_id: str) -> int:
        pass

    @abstractmethod
    async def count_expenses_by_payment_method(self, payment_method_id: str) -> int:
        pass


class LedgerStorageInterface(
    CategoryStorageInterface,
    PaymentMethodStorageInterface,
    ExpenseStorageInterface,
):
    """A backend that stores every ledger entity."""
    pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one flow in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events for a specific entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
