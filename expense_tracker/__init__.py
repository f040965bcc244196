"""
Expense Tracker - Source Package

A personal-finance tracking backend. Expenses are recorded manually,
from receipt photos (OCR) or from voice recordings, and are charged
against a payment method whose running balance is kept consistent
with the ledger.

DESIGN PRINCIPLES:
1. A payment method's balance always reflects the live expenses against it
2. Every mutation is scoped to a single owner
3. Fail early, fail visibly
4. Side effects are ordered and can be compensated
5. Storage, cache and blob backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
