"""
Tests for Expense Tracker models

Test strategy:
1. Unit tests for individual components (models, validators, helpers)
2. Integration tests for stores and flows (in-memory backends, fake adapters)
3. No real API calls in tests
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from expense_tracker.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Category,
    CategoryCreate,
    Expense,
    ExpenseCreate,
    ExpenseDraft,
    ExpenseQuery,
    PaymentMethod,
    PaymentMethodCreate,
    PaymentMethodType,
    SortField,
    SortOrder,
    ValidationIssue,
    ValidationResult,
    to_money,
)


class TestMoneyHelpers:
    """Tests for money rounding."""

    def test_to_money_rounds_half_up(self):
        """Test that amounts are rounded to cents, half up."""
        assert to_money(Decimal("1.005")) == Decimal("1.01")
        assert to_money(Decimal("1.004")) == Decimal("1.00")

    def test_to_money_accepts_floats_without_binary_noise(self):
        """Test that floats go through their string form."""
        assert to_money(12.5) == Decimal("12.50")
        assert to_money(0.1 + 0.2) == Decimal("0.30")


class TestCategoryModels:
    """Tests for category models."""

    def test_user_category_requires_owner(self):
        """Test that a non-system category must be owned."""
        with pytest.raises(ValidationError):
            Category(name="Pets")

    def test_system_category_cannot_have_owner(self):
        """Test that a system category cannot be owned."""
        with pytest.raises(ValidationError):
            Category(name="Food", owner_id="alice", is_system=True)

    def test_visibility(self):
        """Test that system categories are visible to everybody, user ones only to the owner."""
        system = Category(name="Food", is_system=True)
        own = Category(name="Pets", owner_id="alice")
        assert system.is_visible_to("bob")
        assert own.is_visible_to("alice")
        assert not own.is_visible_to("bob")

    def test_color_must_be_hex(self):
        """Test color format validation."""
        with pytest.raises(ValidationError):
            CategoryCreate(name="Pets", color="red")
        assert CategoryCreate(name="Pets", color="#00ff00").color == "#00ff00"

    def test_name_is_stripped(self):
        """Test that whitespace is stripped from names."""
        assert CategoryCreate(name="  Pets  ").name == "Pets"


class TestPaymentMethodModels:
    """Tests for payment method models."""

    def test_defaults(self):
        """Test that a new payment method starts active with a zero balance."""
        pm = PaymentMethod(owner_id="alice", name="Cash", type=PaymentMethodType.CASH)
        assert pm.balance == Decimal("0.00")
        assert pm.is_active is True
        assert pm.is_default is False

    def test_credit_limit_only_for_credit_cards(self):
        """Test that only credit cards accept a credit limit."""
        with pytest.raises(ValidationError):
            PaymentMethodCreate(
                name="Cash",
                type=PaymentMethodType.CASH,
                credit_limit=Decimal("100.00"),
            )
        card = PaymentMethodCreate(
            name="Visa",
            type=PaymentMethodType.CREDIT_CARD,
            credit_limit=Decimal("100.00"),
        )
        assert card.credit_limit == Decimal("100.00")

    def test_initial_balance_cannot_be_negative(self):
        """Test that the opening balance is non-negative."""
        with pytest.raises(ValidationError):
            PaymentMethodCreate(name="Cash", type=PaymentMethodType.CASH, balance=Decimal("-1"))

    def test_last_four_digits_format(self):
        """Test that only four digits are accepted."""
        with pytest.raises(ValidationError):
            PaymentMethodCreate(name="Visa", type=PaymentMethodType.DEBIT_CARD, last_four_digits="12a4")


class TestExpenseModels:
    """Tests for expense models."""

    def test_stored_expense_rejects_non_positive_amount(self):
        """Test that a stored expense always has a positive amount."""
        with pytest.raises(ValidationError):
            Expense(
                owner_id="alice",
                amount=Decimal("0"),
                description="Nothing",
                date=date(2024, 1, 1),
                category_id="c",
                payment_method_id="p",
            )

    def test_create_input_rejects_more_than_two_decimals(self):
        """Test that amounts carry at most two decimals."""
        with pytest.raises(ValidationError):
            ExpenseCreate(
                amount=Decimal("1.234"),
                description="Coffee",
                category_id="c",
                payment_method_id="p",
            )

    def test_blob_keys(self):
        """Test that blob_keys lists every attachment key."""
        expense = Expense(
            owner_id="alice",
            amount=Decimal("5.00"),
            description="Coffee",
            date=date(2024, 1, 1),
            category_id="c",
            payment_method_id="p",
            receipt_key="r",
            voice_audio_key="v",
        )
        assert expense.blob_keys == ["r", "v"]

    def test_query_defaults(self):
        """Test default pagination and sorting."""
        query = ExpenseQuery()
        assert query.page == 1
        assert query.page_size == 20
        assert query.sort_by == SortField.DATE
        assert query.sort_order == SortOrder.DESC

    def test_query_page_size_bounds(self):
        """Test that page_size is capped at 100."""
        with pytest.raises(ValidationError):
            ExpenseQuery(page_size=101)
        with pytest.raises(ValidationError):
            ExpenseQuery(page=0)

    def test_draft_rounds_amount(self):
        """Test that draft amounts are rounded to cents."""
        draft = ExpenseDraft(amount=Decimal("12.345"))
        assert draft.amount == Decimal("12.35")

    def test_draft_confidence_bounds(self):
        """Test that confidence must be between 0 and 1."""
        with pytest.raises(ValidationError):
            ExpenseDraft(confidence=1.5)


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            description="Expense created",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEventBuilder.expense_created(
            "alice", "e1", Decimal("30.00"), "manual", correlation_id=correlation_id
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "expense_created"
        assert log_dict["owner_id"] == "alice"
        assert log_dict["entity_id"] == "e1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_audit_event_to_sheets_row(self):
        """Test conversion to Sheets row."""
        event = AuditEventBuilder.balance_adjusted(
            "alice", "pm1", "debit", Decimal("30.00"), Decimal("70.00")
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "balance_adjusted"
        assert json.loads(row[9])["new_balance"] == "70.00"

    def test_compensation_severity_depends_on_failures(self):
        """Test that failed undo steps escalate the event to an error."""
        clean = AuditEventBuilder.compensation_executed("alice", "create_expense", ["a"], "boom")
        dirty = AuditEventBuilder.compensation_executed(
            "alice", "create_expense", [], "boom", failed_steps=["a"]
        )
        assert clean.severity == AuditSeverity.WARNING
        assert dirty.severity == AuditSeverity.ERROR

    def test_ingestion_event_type_follows_source(self):
        """Test that OCR and voice ingestion map to distinct event types."""
        correlation_id = uuid4()
        ocr = AuditEventBuilder.ingestion_processed("alice", "ocr", "e1", 0.9, correlation_id)
        voice = AuditEventBuilder.ingestion_processed("alice", "voice", "e2", 0.9, correlation_id)
        assert ocr.event_type == AuditEventType.RECEIPT_PROCESSED
        assert voice.event_type == AuditEventType.VOICE_PROCESSED


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            draft_id="d1",
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Amount required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            draft_id="d1",
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0

    def test_issue_severity_is_restricted(self):
        """Test that only known severities are accepted."""
        with pytest.raises(ValidationError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
