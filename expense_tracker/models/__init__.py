"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker.
All data flowing through the ledger must conform to these schemas.
"""

from expense_tracker.models.common import (
    CENT,
    ZERO,
    new_id,
    to_money,
    utc_now,
)
from expense_tracker.models.category import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryWithStats,
)
from expense_tracker.models.payment_method import (
    BalanceDirection,
    PaymentMethod,
    PaymentMethodCreate,
    PaymentMethodType,
    PaymentMethodUpdate,
    PaymentMethodWithStats,
)
from expense_tracker.models.expense import (
    Expense,
    ExpenseCreate,
    ExpenseDraft,
    ExpensePage,
    ExpenseQuery,
    ExpenseSource,
    ExpenseUpdate,
    SortField,
    SortOrder,
    UploadResult,
    ValidationIssue,
    ValidationResult,
)
from expense_tracker.models.summary import (
    CategoryBreakdown,
    ExpenseSummary,
    PaymentMethodBreakdown,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Helpers
    "CENT",
    "ZERO",
    "new_id",
    "to_money",
    "utc_now",
    # Categories
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryWithStats",
    # Payment methods
    "BalanceDirection",
    "PaymentMethod",
    "PaymentMethodCreate",
    "PaymentMethodType",
    "PaymentMethodUpdate",
    "PaymentMethodWithStats",
    # Expenses
    "Expense",
    "ExpenseCreate",
    "ExpenseDraft",
    "ExpensePage",
    "ExpenseQuery",
    "ExpenseSource",
    "ExpenseUpdate",
    "SortField",
    "SortOrder",
    "UploadResult",
    "ValidationIssue",
    "ValidationResult",
    # Summary
    "CategoryBreakdown",
    "ExpenseSummary",
    "PaymentMethodBreakdown",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
