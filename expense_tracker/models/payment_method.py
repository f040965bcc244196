"""
Payment Method Models

Every payment method carries a running balance. The balance is set once
at creation and afterwards changes only through ledger debits and credits.

CRITICAL: At most one payment method per owner is the default.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from expense_tracker.models.common import (
    HEX_COLOR_PATTERN,
    ZERO,
    new_id,
    utc_now,
)


# =============================================================================
# ENUMS
# =============================================================================

class PaymentMethodType(str, Enum):
    """Kinds of payment instrument."""
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    TRANSFER = "transfer"
    DIGITAL_WALLET = "digital_wallet"


class BalanceDirection(str, Enum):
    """
    Direction of a balance adjustment.

    CREDIT adds to the balance (expense reversed), DEBIT subtracts
    (expense charged).
    """
    CREDIT = "credit"
    DEBIT = "debit"


# =============================================================================
# PAYMENT METHOD MODELS
# =============================================================================

class PaymentMethod(BaseModel):
    """A stored payment method."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Payment method name (unique per owner)"
    )
    type: PaymentMethodType
    last_four_digits: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}$"
    )
    bank_name: Optional[str] = Field(default=None, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)

    # Signed: debits may push it below zero
    balance: Decimal = Field(default=ZERO)
    credit_limit: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Informational only, never enforced"
    )
    expiration_date: Optional[date] = None

    is_active: bool = True
    is_default: bool = False

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_credit_limit(self) -> 'PaymentMethod':
        if self.credit_limit is not None and self.type != PaymentMethodType.CREDIT_CARD:
            raise ValueError("Only credit cards can have a credit limit")
        return self


class PaymentMethodCreate(BaseModel):
    """Input for creating a payment method."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: PaymentMethodType
    last_four_digits: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    bank_name: Optional[str] = Field(default=None, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    balance: Decimal = Field(
        default=ZERO,
        ge=0,
        decimal_places=2,
        description="Initial balance"
    )
    credit_limit: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    expiration_date: Optional[date] = None
    is_default: bool = False

    @model_validator(mode='after')
    def validate_credit_limit(self) -> 'PaymentMethodCreate':
        if self.credit_limit is not None and self.type != PaymentMethodType.CREDIT_CARD:
            raise ValueError("Only credit cards can have a credit limit")
        return self


class PaymentMethodUpdate(BaseModel):
    """
    Partial update. Only fields that were explicitly set are applied.

    No balance field: balances only move through the ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[PaymentMethodType] = None
    last_four_digits: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    bank_name: Optional[str] = Field(default=None, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    credit_limit: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    expiration_date: Optional[date] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class PaymentMethodWithStats(PaymentMethod):
    """A payment method with usage figures."""

    total_expenses: int = Field(default=0, ge=0)
    total_amount: Decimal = Field(default=ZERO)
    available_credit: Optional[Decimal] = Field(
        default=None,
        description="credit_limit - total_amount, credit cards with a limit only"
    )
