"""
Expense Models

These models define the expense record and everything that flows into
and out of the ledger:
1. Stored expenses and their create/update inputs
2. List queries and result pages
3. Drafts produced by the OCR and voice adapters
4. Blob upload results
5. Draft validation outcomes

DESIGN DECISION: The `datetime` module is imported under an alias because
expenses carry a field literally named `date`.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from expense_tracker.models.common import new_id, to_money, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class ExpenseSource(str, Enum):
    """How an expense entered the ledger."""
    MANUAL = "manual"
    VOICE = "voice"
    OCR = "ocr"


class SortField(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    A stored expense.

    CRITICAL: Every expense debits exactly one payment method and is tagged
    with exactly one category, both visible to the same owner.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)

    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount, 2 decimals"
    )
    description: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)
    date: dt.date = Field(..., description="Calendar date of the expense")
    source: ExpenseSource = ExpenseSource.MANUAL

    category_id: str = Field(..., min_length=1)
    payment_method_id: str = Field(..., min_length=1)

    # Receipt attachment (OCR path)
    receipt_url: Optional[str] = None
    receipt_key: Optional[str] = None
    ocr_data: Optional[dict[str, Any]] = None

    # Voice attachment
    voice_transcription: Optional[str] = None
    voice_audio_url: Optional[str] = None
    voice_audio_key: Optional[str] = None

    created_at: dt.datetime = Field(default_factory=utc_now)
    updated_at: dt.datetime = Field(default_factory=utc_now)

    @property
    def blob_keys(self) -> list[str]:
        """Keys of every attached blob."""
        return [key for key in (self.receipt_key, self.voice_audio_key) if key]


class ExpenseCreate(BaseModel):
    """
    Input for a manual expense.

    Amount positivity is enforced by the ledger so that every creation
    path reports it the same way.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)
    date: dt.date = Field(default_factory=dt.date.today)
    category_id: str = Field(..., min_length=1)
    payment_method_id: str = Field(..., min_length=1)


class ExpenseUpdate(BaseModel):
    """Partial update. Only fields that were explicitly set are applied."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)
    date: Optional[dt.date] = None
    category_id: Optional[str] = Field(default=None, min_length=1)
    payment_method_id: Optional[str] = Field(default=None, min_length=1)


# =============================================================================
# LISTING
# =============================================================================

class ExpenseQuery(BaseModel):
    """Filters, pagination and sorting for listing expenses."""

    start_date: Optional[dt.date] = Field(
        default=None,
        description="Inclusive lower bound"
    )
    end_date: Optional[dt.date] = Field(
        default=None,
        description="Inclusive upper bound"
    )
    category_id: Optional[str] = None
    payment_method_id: Optional[str] = None

    page: int = Field(default=1, ge=1, description="1-based page number")
    page_size: int = Field(default=20, ge=1, le=100)

    sort_by: SortField = SortField.DATE
    sort_order: SortOrder = SortOrder.DESC


class ExpensePage(BaseModel):
    """One page of expenses."""

    items: list[Expense] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)


# =============================================================================
# INGESTION
# =============================================================================

class ExpenseDraft(BaseModel):
    """
    Normalized output of an ingestion adapter.

    CRITICAL: This is PROPOSED data. Fields are optional because OCR and
    voice extraction may miss them; the validator and the ledger decide
    whether it can become an Expense.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    draft_id: str = Field(default_factory=new_id)
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    date: Optional[dt.date] = None
    category_hint: Optional[str] = None
    merchant_name: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    transcription: Optional[str] = Field(
        default=None,
        description="Voice drafts only"
    )
    raw_source_metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator('amount')
    @classmethod
    def round_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """Adapters report floats; keep cents only."""
        if v is None:
            return v
        return to_money(v)


class UploadResult(BaseModel):
    """A blob stored by the blob storage collaborator."""

    key: str = Field(..., description="Storage key used for deletion")
    url: str = Field(..., description="Public URL")
    folder: str
    file_name: Optional[str] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage draft validation.

    Stage 1: Schema validation (required fields, types)
    Stage 2: Semantic validation (dates, amounts, confidence)
    """

    draft_id: str
    validated_at: dt.datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")
