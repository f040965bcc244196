"""
Audit Models for Expense Tracker

Every ledger mutation and every ingestion step is logged for audit purposes.
This provides:
1. Traceability of balance changes
2. Debugging information when compensation runs
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from expense_tracker.models.common import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"
    CATEGORIES_REORDERED = "categories_reordered"
    SYSTEM_CATEGORIES_SEEDED = "system_categories_seeded"

    # Payment methods
    PAYMENT_METHOD_CREATED = "payment_method_created"
    PAYMENT_METHOD_UPDATED = "payment_method_updated"
    PAYMENT_METHOD_DELETED = "payment_method_deleted"
    DEFAULT_PAYMENT_METHOD_CHANGED = "default_payment_method_changed"
    BALANCE_ADJUSTED = "balance_adjusted"

    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    COMPENSATION_EXECUTED = "compensation_executed"
    BLOB_CLEANUP_FAILED = "blob_cleanup_failed"

    # Ingestion
    RECEIPT_PROCESSED = "receipt_processed"
    VOICE_PROCESSED = "voice_processed"
    DRAFT_VALIDATION_FAILED = "draft_validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context
    owner_id: Optional[str] = Field(
        default=None,
        description="Owner whose data was touched, None for system actions"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'payment_method', 'category')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one receipt upload)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(owner_id, expense_id, "30.00", "manual")
        event = AuditEventBuilder.balance_adjusted(owner_id, pm_id, "debit", "30.00", "70.00")
    """

    @staticmethod
    def category_created(owner_id: str, category_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            owner_id=owner_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category created: {name}",
            details={"name": name},
        )

    @staticmethod
    def category_updated(owner_id: str, category_id: str, changes: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_UPDATED,
            owner_id=owner_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category updated: {', '.join(changes) or 'no changes'}",
            details={"changed_fields": changes},
        )

    @staticmethod
    def category_deleted(owner_id: str, category_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            owner_id=owner_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category deleted: {name}",
            details={"name": name},
        )

    @staticmethod
    def categories_reordered(
        owner_id: str,
        reordered: list[str],
        skipped: list[str]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_REORDERED,
            severity=AuditSeverity.WARNING if skipped else AuditSeverity.INFO,
            owner_id=owner_id,
            entity_type="category",
            description=f"Reordered {len(reordered)} categories, skipped {len(skipped)}",
            details={"reordered": reordered, "skipped": skipped},
        )

    @staticmethod
    def system_categories_seeded(inserted: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_CATEGORIES_SEEDED,
            entity_type="category",
            description=f"Seeded {len(inserted)} system categories",
            details={"inserted": inserted},
        )

    @staticmethod
    def payment_method_created(
        owner_id: str,
        payment_method_id: str,
        name: str,
        initial_balance: Decimal
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_METHOD_CREATED,
            owner_id=owner_id,
            entity_type="payment_method",
            entity_id=payment_method_id,
            description=f"Payment method created: {name}",
            details={"name": name, "initial_balance": str(initial_balance)},
        )

    @staticmethod
    def payment_method_updated(
        owner_id: str,
        payment_method_id: str,
        changes: list[str]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_METHOD_UPDATED,
            owner_id=owner_id,
            entity_type="payment_method",
            entity_id=payment_method_id,
            description=f"Payment method updated: {', '.join(changes) or 'no changes'}",
            details={"changed_fields": changes},
        )

    @staticmethod
    def payment_method_deleted(owner_id: str, payment_method_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_METHOD_DELETED,
            owner_id=owner_id,
            entity_type="payment_method",
            entity_id=payment_method_id,
            description=f"Payment method deleted: {name}",
            details={"name": name},
        )

    @staticmethod
    def default_changed(owner_id: str, payment_method_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_PAYMENT_METHOD_CHANGED,
            owner_id=owner_id,
            entity_type="payment_method",
            entity_id=payment_method_id,
            description="Default payment method changed",
        )

    @staticmethod
    def balance_adjusted(
        owner_id: str,
        payment_method_id: str,
        direction: str,
        amount: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            owner_id=owner_id,
            entity_type="payment_method",
            entity_id=payment_method_id,
            correlation_id=correlation_id,
            description=f"Balance {direction} of {amount}, now {new_balance}",
            details={
                "direction": direction,
                "amount": str(amount),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def expense_created(
        owner_id: str,
        expense_id: str,
        amount: Decimal,
        source: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense created ({source}): {amount}",
            details={"amount": str(amount), "source": source},
        )

    @staticmethod
    def expense_updated(
        owner_id: str,
        expense_id: str,
        changes: list[str],
        balance_reconciled: bool
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense updated: {', '.join(changes) or 'no changes'}",
            details={
                "changed_fields": changes,
                "balance_reconciled": balance_reconciled,
            },
        )

    @staticmethod
    def expense_deleted(owner_id: str, expense_id: str, amount: Decimal) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense deleted, {amount} credited back",
            details={"amount": str(amount)},
        )

    @staticmethod
    def compensation_executed(
        owner_id: str,
        operation: str,
        steps: list[str],
        error_message: str,
        failed_steps: Optional[list[str]] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMPENSATION_EXECUTED,
            severity=AuditSeverity.ERROR if failed_steps else AuditSeverity.WARNING,
            owner_id=owner_id,
            description=f"{operation} failed, undid {len(steps)} steps",
            details={
                "operation": operation,
                "undone": steps,
                "undo_failures": failed_steps or [],
            },
            error_message=error_message,
        )

    @staticmethod
    def blob_cleanup_failed(
        owner_id: str,
        expense_id: str,
        key: str,
        error_message: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BLOB_CLEANUP_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Could not delete attachment {key}",
            details={"key": key},
            error_message=error_message,
        )

    @staticmethod
    def ingestion_processed(
        owner_id: str,
        source: str,
        expense_id: str,
        confidence: float,
        correlation_id: UUID
    ) -> AuditEvent:
        event_type = (
            AuditEventType.RECEIPT_PROCESSED
            if source == "ocr"
            else AuditEventType.VOICE_PROCESSED
        )
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"{source.upper()} draft recorded with {confidence:.0%} confidence",
            details={"source": source, "confidence": confidence},
        )

    @staticmethod
    def validation_failed(
        owner_id: str,
        draft_id: str,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="draft",
            entity_id=draft_id,
            correlation_id=correlation_id,
            description=f"Draft validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
