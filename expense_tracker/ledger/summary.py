"""
Summary Aggregator

Computes owner-wide totals, month-over-month change and per-category /
per-payment-method breakdowns. Results are cached per owner and evicted
by every ledger mutation.

CRITICAL: Percentages are guarded against division by zero. An owner with
no spending gets 0 everywhere, never NaN.
"""

import datetime as dt
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from expense_tracker.models.common import ZERO, to_money
from expense_tracker.models.expense import Expense
from expense_tracker.models.summary import (
    CategoryBreakdown,
    ExpenseSummary,
    PaymentMethodBreakdown,
)
from expense_tracker.services.cache import CacheInterface, SafeCache
from expense_tracker.services.storage import LedgerStorageInterface

logger = structlog.get_logger(__name__)

UNKNOWN_NAME = "Unknown"


def summary_cache_key(owner_id: str) -> str:
    return f"expenses:summary:{owner_id}"


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def percentage_of(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        return 0.0
    return round(float(part / whole * 100), 2)


def percentage_change(current: Decimal, previous: Decimal) -> float:
    if previous <= 0:
        return 0.0
    return round(float((current - previous) / previous * 100), 2)


def _month_total(expenses: list[Expense], year: int, month: int) -> Decimal:
    return to_money(sum(
        (e.amount for e in expenses if e.date.year == year and e.date.month == month),
        ZERO,
    ))


def _group(expenses: list[Expense], key: Callable[[Expense], str]) -> dict[str, list[Expense]]:
    groups: dict[str, list[Expense]] = defaultdict(list)
    for expense in expenses:
        groups[key(expense)].append(expense)
    return groups


class SummaryAggregator:
    """
    Cached per-owner expense summary.

    Args:
        storage: Backend holding categories, payment methods and expenses
        cache: Optional cache for computed summaries
        cache_ttl_seconds: Lifetime of a cached summary
        today: Clock used to pick the current month
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        cache: Optional[CacheInterface] = None,
        cache_ttl_seconds: int = 300,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._storage = storage
        self._cache = SafeCache(cache) if cache and not isinstance(cache, SafeCache) else cache
        self._cache_ttl_seconds = cache_ttl_seconds
        self._today = today

    async def invalidate(self, owner_id: str) -> None:
        if self._cache:
            await self._cache.delete(summary_cache_key(owner_id))

    async def get_summary(self, owner_id: str) -> ExpenseSummary:
        key = summary_cache_key(owner_id)
        if self._cache:
            cached = await self._cache.get(key)
            if cached is not None:
                try:
                    return ExpenseSummary.model_validate(cached)
                except ValidationError as e:
                    logger.warning("summary_cache_corrupt", owner_id=owner_id, error=str(e))

        summary = await self._compute(owner_id)

        if self._cache:
            await self._cache.set(key, summary.model_dump(mode="json"), self._cache_ttl_seconds)
        return summary

    async def _compute(self, owner_id: str) -> ExpenseSummary:
        expenses = await self._storage.list_all_expenses(owner_id)
        categories = {c.id: c for c in await self._storage.list_categories(owner_id)}
        payment_methods = {
            pm.id: pm
            for pm in await self._storage.list_payment_methods(owner_id, include_inactive=True)
        }

        total_amount = to_money(sum((e.amount for e in expenses), ZERO))
        count = len(expenses)
        average = to_money(total_amount / count) if count else ZERO

        today = self._today()
        current_total = _month_total(expenses, today.year, today.month)
        last_total = _month_total(expenses, *previous_month(today.year, today.month))

        by_category = []
        for category_id, linked in _group(expenses, lambda e: e.category_id).items():
            category = categories.get(category_id)
            subtotal = to_money(sum((e.amount for e in linked), ZERO))
            by_category.append(CategoryBreakdown(
                category_id=category_id,
                category_name=category.name if category else UNKNOWN_NAME,
                color=category.color if category else None,
                count=len(linked),
                total=subtotal,
                percentage=percentage_of(subtotal, total_amount),
            ))
        by_category.sort(key=lambda b: b.total, reverse=True)

        by_payment_method = []
        for pm_id, linked in _group(expenses, lambda e: e.payment_method_id).items():
            payment_method = payment_methods.get(pm_id)
            subtotal = to_money(sum((e.amount for e in linked), ZERO))
            by_payment_method.append(PaymentMethodBreakdown(
                payment_method_id=pm_id,
                payment_method_name=payment_method.name if payment_method else UNKNOWN_NAME,
                type=payment_method.type if payment_method else None,
                count=len(linked),
                total=subtotal,
                percentage=percentage_of(subtotal, total_amount),
            ))
        by_payment_method.sort(key=lambda b: b.total, reverse=True)

        return ExpenseSummary(
            total_expenses=count,
            total_amount=total_amount,
            average_expense=average,
            current_month_total=current_total,
            last_month_total=last_total,
            percentage_change=percentage_change(current_total, last_total),
            by_category=by_category,
            by_payment_method=by_payment_method,
        )
