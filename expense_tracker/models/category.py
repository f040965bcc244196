"""
Category Models

A category is either owned by exactly one user or is a system category
shared by everybody.

CRITICAL: System categories have no owner and are never mutated by users.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from expense_tracker.models.common import (
    DEFAULT_COLOR,
    HEX_COLOR_PATTERN,
    ZERO,
    new_id,
    utc_now,
)


class Category(BaseModel):
    """A stored category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Opaque category identifier"
    )
    owner_id: Optional[str] = Field(
        default=None,
        description="Owning user, None for system categories"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Category name (unique per owner)"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=200
    )
    icon: Optional[str] = Field(
        default=None,
        max_length=50
    )
    color: str = Field(
        default=DEFAULT_COLOR,
        pattern=HEX_COLOR_PATTERN,
        description="Display color as #RRGGBB"
    )
    is_system: bool = Field(
        default=False,
        description="Shared, immutable category"
    )
    order_index: int = Field(
        default=0,
        ge=0,
        description="Display position"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_ownership(self) -> 'Category':
        """System categories are unowned, user categories are owned."""
        if self.is_system and self.owner_id is not None:
            raise ValueError("System categories cannot have an owner")
        if not self.is_system and not self.owner_id:
            raise ValueError("User categories must have an owner")
        return self

    def is_visible_to(self, owner_id: str) -> bool:
        return self.is_system or self.owner_id == owner_id


class CategoryCreate(BaseModel):
    """Input for creating a user category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: str = Field(default=DEFAULT_COLOR, pattern=HEX_COLOR_PATTERN)
    order_index: int = Field(default=0, ge=0)


class CategoryUpdate(BaseModel):
    """Partial update. Only fields that were explicitly set are applied."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    order_index: Optional[int] = Field(default=None, ge=0)


class CategoryWithStats(Category):
    """A category with usage figures over one owner's expenses."""

    total_expenses: int = Field(default=0, ge=0)
    total_amount: Decimal = Field(default=ZERO)
    last_expense_date: Optional[date] = None
