"""
Main Orchestrator for Expense Tracker

This module ties together all the components and defines the
end-to-end ingestion flows:
1. Receipt (photo → OCR draft → validate → resolve category → record)
2. Voice (recording → voice draft → validate → resolve category → record)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Adapters only produce drafts, the ledger alone records expenses
- A draft with validation errors never reaches the ledger
- Every step of one flow shares a correlation id in the audit trail
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.config import Settings, get_settings
from expense_tracker.exceptions import InvalidOperationError, UpstreamFailureError
from expense_tracker.ledger import (
    CategoryStore,
    ExpenseLedger,
    OwnerLocks,
    PaymentMethodStore,
    SummaryAggregator,
)
from expense_tracker.models.expense import (
    Expense,
    ExpenseDraft,
    ExpenseSource,
    ValidationResult,
)
from expense_tracker.services.blob import BlobStorageInterface, CloudinaryBlobStorage
from expense_tracker.services.cache import CacheInterface, InMemoryCache, RedisCache
from expense_tracker.services.ocr import MindeeReceiptService
from expense_tracker.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
)
from expense_tracker.services.voice import GeminiVoiceService
from expense_tracker.validation import DraftValidator

logger = structlog.get_logger(__name__)


class _DraftFlow:
    """Shared steps of the receipt and voice flows."""

    source: ExpenseSource

    def __init__(
        self,
        ledger: ExpenseLedger,
        validator: Optional[DraftValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._validator = validator or DraftValidator()
        self._audit_logger = audit_logger

    async def _report_upstream_failure(
        self,
        error: UpstreamFailureError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_external_service_error(
                service=error.service,
                error_message=str(error),
                correlation_id=correlation_id,
            )

    async def validate_draft(
        self,
        owner_id: str,
        draft: ExpenseDraft,
        correlation_id: UUID,
    ) -> ValidationResult:
        """
        Run the two-stage validation.

        Raises:
            InvalidOperationError: With the issues attached, if any error was found
        """
        result = await self._validator.validate(draft, owner_id=owner_id)
        if result.has_errors:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    owner_id=owner_id,
                    draft_id=draft.draft_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in result.issues
                    ],
                    correlation_id=correlation_id,
                )
            raise InvalidOperationError(
                self._validator.get_user_friendly_summary(result),
                issues=result.issues,
            )
        return result

    async def _record_processed(
        self,
        owner_id: str,
        expense: Expense,
        draft: ExpenseDraft,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_ingestion_processed(
                owner_id=owner_id,
                source=self.source.value,
                expense_id=expense.id,
                confidence=draft.confidence,
                correlation_id=correlation_id,
            )


class ReceiptExpenseFlow(_DraftFlow):
    """
    Orchestrates the receipt photo flow.

    Flow:
    1. Extract → Mindee reads the photo into a draft
    2. Validate → Two-stage validation, errors stop here
    3. Categorize → Explicit category, or the one suggested by the draft hint
    4. Record → Ledger uploads the photo, stores the expense, debits the method
    """

    source = ExpenseSource.OCR

    def __init__(
        self,
        ledger: ExpenseLedger,
        ocr_service: Optional[MindeeReceiptService] = None,
        validator: Optional[DraftValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(ledger, validator, audit_logger)
        self._ocr_service = ocr_service or MindeeReceiptService()

    async def extract(
        self,
        image: bytes,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseDraft:
        """Read a receipt photo into a draft without recording anything."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            return await self._ocr_service.extract_draft(image, filename)
        except UpstreamFailureError as e:
            await self._report_upstream_failure(e, correlation_id)
            raise

    async def process(
        self,
        owner_id: str,
        image: bytes,
        filename: str,
        content_type: Optional[str],
        payment_method_id: str,
        category_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Expense, ValidationResult]:
        """
        Turn a receipt photo into a recorded expense.

        Returns:
            (expense, validation_result) - the result carries any warnings

        Raises:
            OCRError: If the photo cannot be read
            InvalidOperationError: If the draft fails validation
            NotFoundError: If a reference is not visible to the owner
        """
        correlation_id = correlation_id or create_correlation_id()

        draft = await self.extract(image, filename, correlation_id)
        result = await self.validate_draft(owner_id, draft, correlation_id)

        category_id = category_id or await self._ledger.suggest_category(
            owner_id, draft.category_hint
        )
        try:
            expense = await self._ledger.create_from_ocr(
                owner_id,
                draft,
                payment_method_id=payment_method_id,
                category_id=category_id,
                receipt_image=image,
                filename=filename,
                content_type=content_type,
                correlation_id=correlation_id,
            )
        except UpstreamFailureError as e:
            await self._report_upstream_failure(e, correlation_id)
            raise

        await self._record_processed(owner_id, expense, draft, correlation_id)
        return expense, result


class VoiceExpenseFlow(_DraftFlow):
    """
    Orchestrates the voice note flow.

    Flow:
    1. Extract → Gemini transcribes and reads the recording into a draft
    2. Validate → Two-stage validation, errors stop here
    3. Categorize → Explicit category, or the one suggested by the draft hint
    4. Record → Ledger stores the recording and the expense, debits the method
    """

    source = ExpenseSource.VOICE

    def __init__(
        self,
        ledger: ExpenseLedger,
        voice_service: Optional[GeminiVoiceService] = None,
        validator: Optional[DraftValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(ledger, validator, audit_logger)
        self._voice_service = voice_service or GeminiVoiceService()

    async def extract(
        self,
        audio: bytes,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseDraft:
        """Read a recording into a draft without recording anything."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            return await self._voice_service.extract_draft(audio, filename)
        except UpstreamFailureError as e:
            await self._report_upstream_failure(e, correlation_id)
            raise

    async def process(
        self,
        owner_id: str,
        audio: bytes,
        filename: str,
        content_type: Optional[str],
        payment_method_id: str,
        category_id: Optional[str] = None,
        store_audio: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Expense, ValidationResult]:
        """
        Turn a voice note into a recorded expense.

        Returns:
            (expense, validation_result) - the result carries any warnings

        Raises:
            VoiceProcessingError: If the recording cannot be processed
            InvalidOperationError: If the draft fails validation
            NotFoundError: If a reference is not visible to the owner
        """
        correlation_id = correlation_id or create_correlation_id()

        draft = await self.extract(audio, filename, correlation_id)
        result = await self.validate_draft(owner_id, draft, correlation_id)

        category_id = category_id or await self._ledger.suggest_category(
            owner_id, draft.category_hint
        )
        try:
            expense = await self._ledger.create_from_voice(
                owner_id,
                draft,
                payment_method_id=payment_method_id,
                category_id=category_id,
                audio=audio if store_audio else None,
                filename=filename,
                content_type=content_type,
                correlation_id=correlation_id,
            )
        except UpstreamFailureError as e:
            await self._report_upstream_failure(e, correlation_id)
            raise

        await self._record_processed(owner_id, expense, draft, correlation_id)
        return expense, result


@dataclass
class AppComponents:
    """Everything the dashboard (or any other caller) needs."""

    storage: LedgerStorageInterface
    audit_storage: AuditStorageInterface
    cache: CacheInterface
    audit_logger: AuditLogger
    categories: CategoryStore
    payment_methods: PaymentMethodStore
    summary: SummaryAggregator
    ledger: ExpenseLedger
    validator: DraftValidator
    blob_storage: Optional[BlobStorageInterface] = None
    receipt_flow: Optional[ReceiptExpenseFlow] = None
    voice_flow: Optional[VoiceExpenseFlow] = None


def _optional_integration(name: str, factory):
    """Build an integration, or return None when its settings are missing."""
    try:
        return factory()
    except ValidationError as e:
        logger.warning("integration_not_configured", integration=name, error=str(e))
        return None


def create_app_components(settings: Optional[Settings] = None) -> AppComponents:
    """
    Factory function to create all application components.

    Storage and cache backends follow AppSettings. Cloudinary, Mindee and
    Gemini are optional: without them receipts are not stored and the
    matching flow is None.
    """
    settings = settings or get_settings()
    app_settings = settings.app

    if app_settings.storage_backend == "google_sheets":
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        storage = GoogleSheetsLedgerStorage(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)
    else:
        storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()

    if app_settings.cache_backend == "redis":
        cache = RedisCache(settings.redis)
    else:
        cache = InMemoryCache()

    audit_logger = AuditLogger(audit_storage)
    locks = OwnerLocks()

    blob_storage = _optional_integration(
        "cloudinary", lambda: CloudinaryBlobStorage(settings.cloudinary)
    )

    categories = CategoryStore(
        storage,
        cache=cache,
        locks=locks,
        audit_logger=audit_logger,
        cache_ttl_seconds=app_settings.categories_cache_ttl_seconds,
    )
    payment_methods = PaymentMethodStore(
        storage,
        cache=cache,
        locks=locks,
        audit_logger=audit_logger,
        cache_ttl_seconds=app_settings.payment_methods_cache_ttl_seconds,
    )
    summary = SummaryAggregator(
        storage,
        cache=cache,
        cache_ttl_seconds=app_settings.summary_cache_ttl_seconds,
    )
    ledger = ExpenseLedger(
        storage,
        categories,
        payment_methods,
        summary=summary,
        blob_storage=blob_storage,
        locks=locks,
        audit_logger=audit_logger,
    )
    validator = DraftValidator(storage, settings=app_settings)

    ocr_service = _optional_integration(
        "mindee", lambda: MindeeReceiptService(settings.mindee)
    )
    voice_service = _optional_integration(
        "gemini", lambda: GeminiVoiceService(settings.gemini)
    )

    return AppComponents(
        storage=storage,
        audit_storage=audit_storage,
        cache=cache,
        audit_logger=audit_logger,
        categories=categories,
        payment_methods=payment_methods,
        summary=summary,
        ledger=ledger,
        validator=validator,
        blob_storage=blob_storage,
        receipt_flow=(
            ReceiptExpenseFlow(ledger, ocr_service, validator, audit_logger)
            if ocr_service else None
        ),
        voice_flow=(
            VoiceExpenseFlow(ledger, voice_service, validator, audit_logger)
            if voice_service else None
        ),
    )
