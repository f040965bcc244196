"""
Ledger core: category and payment method stores, the expense ledger and
the summary aggregator.
"""

from expense_tracker.ledger.categories import SYSTEM_CATEGORY_CATALOG, CategoryStore
from expense_tracker.ledger.compensation import CompensationStack
from expense_tracker.ledger.expenses import ExpenseLedger, require_positive_amount
from expense_tracker.ledger.locks import OwnerLocks
from expense_tracker.ledger.payment_methods import PaymentMethodStore
from expense_tracker.ledger.suggestions import (
    CANONICAL_CATEGORY_NAMES,
    CategoryHint,
    parse_hint,
    resolve_hint,
)
from expense_tracker.ledger.summary import SummaryAggregator, summary_cache_key

__all__ = [
    # Stores
    "CategoryStore",
    "PaymentMethodStore",
    "ExpenseLedger",
    "SummaryAggregator",
    # Building blocks
    "CompensationStack",
    "OwnerLocks",
    "SYSTEM_CATEGORY_CATALOG",
    "require_positive_amount",
    "summary_cache_key",
    # Category hints
    "CANONICAL_CATEGORY_NAMES",
    "CategoryHint",
    "parse_hint",
    "resolve_hint",
]
