"""Aggregate summary models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from expense_tracker.models.common import ZERO, utc_now
from expense_tracker.models.payment_method import PaymentMethodType


class CategoryBreakdown(BaseModel):
    category_id: str
    category_name: str
    color: Optional[str] = None
    count: int = Field(..., ge=0)
    total: Decimal
    percentage: float = Field(..., description="Share of the grand total, 0-100")


class PaymentMethodBreakdown(BaseModel):
    payment_method_id: str
    payment_method_name: str
    type: Optional[PaymentMethodType] = None
    count: int = Field(..., ge=0)
    total: Decimal
    percentage: float


class ExpenseSummary(BaseModel):
    """
    Totals over every expense of one owner.

    Percentages are never NaN: an empty ledger reports 0 everywhere.
    """

    total_expenses: int = Field(default=0, ge=0)
    total_amount: Decimal = ZERO
    average_expense: Decimal = ZERO

    current_month_total: Decimal = ZERO
    last_month_total: Decimal = ZERO
    percentage_change: float = 0.0

    by_category: list[CategoryBreakdown] = Field(default_factory=list)
    by_payment_method: list[PaymentMethodBreakdown] = Field(default_factory=list)

    generated_at: datetime = Field(default_factory=utc_now)
