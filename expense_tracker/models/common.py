"""
Shared helpers for the data models.

Money is always a Decimal quantized to cents, identifiers are opaque
hex strings, timestamps are timezone-aware UTC.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Union
from uuid import uuid4

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
DEFAULT_COLOR = "#95A5A6"


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Quantize a value to a 2-decimal currency amount."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex
