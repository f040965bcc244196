"""Tests for two-stage draft validation."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from expense_tracker.models import ExpenseCreate, ExpenseDraft
from expense_tracker.services.storage import StorageError
from expense_tracker.validation import DraftValidator

from conftest import OWNER, TODAY


def _issue_types(result) -> set[str]:
    return {(issue.field, issue.issue_type) for issue in result.issues}


class TestSchemaStage:
    """Stage 1 checks."""

    async def test_complete_draft_passes(self, validator):
        """Test that a clean draft passes without issues."""
        draft = ExpenseDraft(amount=Decimal("12.00"), description="Lunch", date=TODAY)
        result = await validator.validate(draft)
        assert result.is_valid is True
        assert result.issues == []
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed!"

    async def test_missing_amount_is_an_error(self, validator):
        """Test that drafts without an amount are blocked."""
        result = await validator.validate(ExpenseDraft(description="Lunch"))
        assert result.schema_valid is False
        assert result.is_valid is False
        assert ("amount", "missing") in _issue_types(result)

    async def test_non_positive_amount_is_an_error(self, validator):
        """Test that zero amounts are blocked."""
        result = await validator.validate(ExpenseDraft(amount=Decimal("0"), description="Lunch"))
        assert ("amount", "invalid_value") in _issue_types(result)
        assert result.has_errors

    async def test_semantic_stage_skipped_after_schema_errors(self, validator):
        """Test that stage 2 does not run when stage 1 fails."""
        draft = ExpenseDraft(description="Lunch", date=TODAY + timedelta(days=60))
        result = await validator.validate(draft)
        assert result.semantic_valid is False
        assert ("date", "future_date") not in _issue_types(result)

    async def test_missing_description_and_date(self, validator):
        """Test the warning and info issues for sparse drafts."""
        result = await validator.validate(ExpenseDraft(amount=Decimal("5.00")))
        assert result.is_valid is True
        assert ("description", "missing") in _issue_types(result)
        assert ("date", "missing") in _issue_types(result)
        assert len(result.warnings) == 1

    async def test_low_confidence_is_a_warning(self, validator):
        """Test the confidence threshold."""
        draft = ExpenseDraft(amount=Decimal("5.00"), description="Lunch", date=TODAY, confidence=0.3)
        result = await validator.validate(draft)
        assert result.is_valid is True
        assert ("confidence", "low_confidence") in _issue_types(result)


class TestSemanticStage:
    """Stage 2 checks."""

    async def test_future_date_beyond_tolerance(self, validator):
        """Test that dates past the tolerance window are flagged."""
        near = ExpenseDraft(amount=Decimal("5"), description="Lunch", date=TODAY + timedelta(days=7))
        far = ExpenseDraft(amount=Decimal("5"), description="Lunch", date=TODAY + timedelta(days=8))
        assert ("date", "future_date") not in _issue_types(await validator.validate(near))
        assert ("date", "future_date") in _issue_types(await validator.validate(far))

    async def test_very_old_date(self, validator):
        """Test that dates older than two years are flagged."""
        draft = ExpenseDraft(amount=Decimal("5"), description="Lunch", date=date(2020, 1, 1))
        assert ("date", "suspicious_date") in _issue_types(await validator.validate(draft))

    async def test_huge_amount(self, validator):
        """Test the amount sanity ceiling."""
        draft = ExpenseDraft(amount=Decimal("2000000"), description="Yacht", date=TODAY)
        result = await validator.validate(draft)
        assert ("amount", "suspicious_value") in _issue_types(result)
        assert result.is_valid is True

    async def test_symbol_heavy_description(self, validator):
        """Test that descriptions made mostly of digits are flagged."""
        draft = ExpenseDraft(amount=Decimal("5"), description="#1234-5678", date=TODAY)
        assert ("description", "suspicious_value") in _issue_types(await validator.validate(draft))

    async def test_summary_lists_warnings(self, validator):
        """Test the dashboard text for a draft with warnings."""
        draft = ExpenseDraft(amount=Decimal("2000000"), description="Yacht", date=TODAY)
        summary = validator.get_user_friendly_summary(await validator.validate(draft))
        assert "Please verify the following" in summary
        assert "unusually high" in summary


class TestDuplicates:
    """Duplicate detection against stored expenses."""

    async def test_same_amount_same_day_is_flagged(self, validator, ledger, cash, food):
        """Test that a repeat of an existing expense gets a warning."""
        await ledger.create(OWNER, ExpenseCreate(
            amount=Decimal("18.40"),
            description="Corner Deli",
            date=TODAY,
            category_id=food.id,
            payment_method_id=cash.id,
        ))

        draft = ExpenseDraft(amount=Decimal("18.40"), merchant_name="Corner Deli")
        result = await validator.validate(draft, owner_id=OWNER)

        assert ("duplicate", "potential_duplicate") in _issue_types(result)
        assert result.is_valid is True

    async def test_duplicate_check_needs_owner(self, validator, ledger, cash, food):
        """Test that the check only runs for a known owner."""
        await ledger.create(OWNER, ExpenseCreate(
            amount=Decimal("18.40"),
            description="Corner Deli",
            date=TODAY,
            category_id=food.id,
            payment_method_id=cash.id,
        ))
        result = await validator.validate(ExpenseDraft(amount=Decimal("18.40"), date=TODAY))
        assert ("duplicate", "potential_duplicate") not in _issue_types(result)

    async def test_storage_failure_skips_check(self, storage, app_settings, monkeypatch):
        """Test that a failing backend does not fail validation."""
        async def broken_list(owner_id):
            raise StorageError("sheet unavailable")

        monkeypatch.setattr(storage, "list_all_expenses", broken_list)
        validator = DraftValidator(storage, settings=app_settings, today=lambda: TODAY)

        result = await validator.validate(
            ExpenseDraft(amount=Decimal("5"), description="Lunch", date=TODAY), owner_id=OWNER
        )
        assert result.is_valid is True
        assert result.issues == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
