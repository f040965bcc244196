"""
Two-Stage Draft Validation

DESIGN DECISION: Drafts produced by OCR and voice extraction are checked
in two distinct stages before they may become expenses:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount)
- Amount positivity
- Extraction confidence
- This catches extraction failures and empty results

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection
- Description sanity checks
- Duplicate detection
- This catches logically impossible or suspicious data

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues. Errors block the draft,
warnings are reported for the user to review.
"""

import datetime as dt
from decimal import Decimal
from typing import Callable, Optional

import structlog

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.models.expense import (
    ExpenseDraft,
    ValidationIssue,
    ValidationResult,
)
from expense_tracker.services.storage import ExpenseStorageInterface, StorageError

logger = structlog.get_logger(__name__)


class DraftValidator:
    """
    Validates expense drafts through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (uses storage for duplicate checks)
    """

    def __init__(
        self,
        expense_storage: Optional[ExpenseStorageInterface] = None,
        settings: Optional[AppSettings] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        """
        Initialize validator.

        Args:
            expense_storage: Storage for duplicate checking.
                             If None, duplicate checking is skipped.
            settings: Thresholds; loaded from the environment when omitted
            today: Clock used for date checks
        """
        self._storage = expense_storage
        self._settings = settings or get_settings().app
        self._today = today

    def _validate_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required but was not extracted",
                severity="error",
                suggested_fix="Make sure the total is clearly visible or spoken",
            ))
        elif draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Check if the amount was read correctly",
            ))

        if not (draft.description or draft.merchant_name or draft.transcription):
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No description or merchant could be extracted",
                severity="warning",
                suggested_fix="A generic description will be used",
            ))

        if draft.date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="No date was extracted, today will be used",
                severity="info",
            ))

        if draft.confidence < self._settings.min_ocr_confidence:
            issues.append(ValidationIssue(
                field="confidence",
                issue_type="low_confidence",
                message=f"Extraction confidence is low ({draft.confidence:.0%})",
                severity="warning",
                suggested_fix="Please review all fields carefully",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        today = self._today()

        max_future_date = today + dt.timedelta(days=self._settings.future_date_tolerance_days)
        if draft.date and draft.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Expense date ({draft.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        # Very old dates are usually misread years
        min_reasonable_date = today - dt.timedelta(days=365 * 2)
        if draft.date and draft.date < min_reasonable_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_date",
                message=f"Expense date ({draft.date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the date was read correctly",
            ))

        max_amount = Decimal(str(self._settings.max_expense_amount))
        if draft.amount and draft.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        description = draft.description or draft.merchant_name
        if description:
            alpha_count = sum(1 for c in description if c.isalpha())
            if alpha_count / len(description) < 0.3:
                issues.append(ValidationIssue(
                    field="description",
                    issue_type="suspicious_value",
                    message="Description looks unusual (too many numbers/symbols)",
                    severity="warning",
                    suggested_fix="Please verify the description",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_duplicates(
        self,
        owner_id: str,
        draft: ExpenseDraft,
    ) -> list[ValidationIssue]:
        """An expense with the same amount on the same date may be a repeat upload."""
        if self._storage is None or draft.amount is None:
            return []

        expense_date = draft.date or self._today()
        try:
            existing = await self._storage.list_all_expenses(owner_id)
        except StorageError as e:
            logger.warning("duplicate_check_failed", owner_id=owner_id, error=str(e))
            return []

        if any(e.date == expense_date and e.amount == draft.amount for e in existing):
            return [ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=f"An expense of {draft.amount} on {expense_date} already exists",
                severity="warning",
                suggested_fix="Please verify this isn't a duplicate entry",
            )]
        return []

    async def validate(
        self,
        draft: ExpenseDraft,
        owner_id: Optional[str] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            draft: The draft to validate
            owner_id: Enables the duplicate check against this owner's expenses

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft)
            all_issues.extend(semantic_issues)
            if owner_id is not None:
                all_issues.extend(await self._check_duplicates(owner_id, draft))

        return ValidationResult(
            draft_id=draft.draft_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[issue.message for issue in all_issues if issue.severity == "warning"],
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the dashboard shows.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append("❌ The expense could not be recorded:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines).strip()
