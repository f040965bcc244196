"""
Tests for the receipt and voice flows.

OCR and voice services are fakes; the ledger, validator and audit trail
are real and run in memory.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_tracker.exceptions import InvalidOperationError
from expense_tracker.models import AuditEventType, ExpenseDraft, ExpenseSource
from expense_tracker.orchestrator import ReceiptExpenseFlow, VoiceExpenseFlow
from expense_tracker.services.ocr import OCRError
from expense_tracker.services.voice import VoiceProcessingError

from conftest import OWNER, TODAY, FakeOCRService, FakeVoiceService


def _receipt_draft(**kwargs) -> ExpenseDraft:
    defaults = dict(
        amount=Decimal("23.10"),
        date=TODAY,
        merchant_name="Fresh Market",
        category_hint="food",
        confidence=0.95,
    )
    defaults.update(kwargs)
    return ExpenseDraft(**defaults)


@pytest.fixture
def receipt_flow(ledger, validator, audit_logger):
    def build(ocr_service):
        return ReceiptExpenseFlow(ledger, ocr_service, validator, audit_logger)
    return build


@pytest.fixture
def voice_flow(ledger, validator, audit_logger):
    def build(voice_service):
        return VoiceExpenseFlow(ledger, voice_service, validator, audit_logger)
    return build


class TestReceiptFlow:
    """Tests for photo to expense."""

    async def test_receipt_becomes_expense(self, receipt_flow, payment_methods, blob_storage, cash, system_categories):
        """Test the happy path with category resolved from the hint."""
        flow = receipt_flow(FakeOCRService(_receipt_draft()))

        expense, result = await flow.process(
            OWNER, b"jpeg", "receipt.jpg", "image/jpeg", payment_method_id=cash.id
        )

        assert result.is_valid is True
        assert expense.source == ExpenseSource.OCR
        assert expense.category_id == system_categories["Food"].id
        assert expense.amount == Decimal("23.10")
        assert expense.receipt_key in blob_storage.blobs
        assert (await payment_methods.get(OWNER, cash.id)).balance == Decimal("76.90")

    async def test_explicit_category_wins(self, receipt_flow, cash, system_categories):
        """Test that a caller-chosen category overrides the hint."""
        flow = receipt_flow(FakeOCRService(_receipt_draft()))
        shopping = system_categories["Shopping"]

        expense, _ = await flow.process(
            OWNER, b"jpeg", "r.jpg", None, payment_method_id=cash.id, category_id=shopping.id
        )

        assert expense.category_id == shopping.id

    async def test_invalid_draft_is_not_recorded(self, receipt_flow, ledger, audit_storage, cash, system_categories):
        """Test that validation errors stop the flow and are audited."""
        flow = receipt_flow(FakeOCRService(_receipt_draft(amount=None)))

        with pytest.raises(InvalidOperationError) as excinfo:
            await flow.process(OWNER, b"jpeg", "r.jpg", None, payment_method_id=cash.id)

        assert any(issue.field == "amount" for issue in excinfo.value.issues)
        assert (await ledger.list(OWNER)).total == 0
        events = await audit_storage.get_recent_events()
        assert AuditEventType.DRAFT_VALIDATION_FAILED in [e.event_type for e in events]

    async def test_warnings_are_returned(self, receipt_flow, cash, system_categories):
        """Test that warnings do not block the flow but are reported."""
        flow = receipt_flow(FakeOCRService(_receipt_draft(confidence=0.2)))

        _, result = await flow.process(OWNER, b"jpeg", "r.jpg", None, payment_method_id=cash.id)

        assert result.is_valid is True
        assert len(result.warnings) == 1

    async def test_ocr_failure_is_audited(self, receipt_flow, ledger, audit_storage, cash, system_categories):
        """Test that upstream failures propagate and leave an audit event."""
        flow = receipt_flow(FakeOCRService(error=OCRError("unreadable image")))
        correlation_id = uuid4()

        with pytest.raises(OCRError):
            await flow.process(
                OWNER, b"jpeg", "r.jpg", None, payment_method_id=cash.id, correlation_id=correlation_id
            )

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.EXTERNAL_SERVICE_ERROR]
        assert (await ledger.list(OWNER)).total == 0

    async def test_events_share_correlation_id(self, receipt_flow, audit_storage, cash, system_categories):
        """Test that every event of one flow carries its correlation id."""
        flow = receipt_flow(FakeOCRService(_receipt_draft()))
        correlation_id = uuid4()

        await flow.process(
            OWNER, b"jpeg", "r.jpg", None, payment_method_id=cash.id, correlation_id=correlation_id
        )

        types = {e.event_type for e in await audit_storage.get_events_by_correlation_id(correlation_id)}
        assert {
            AuditEventType.BALANCE_ADJUSTED,
            AuditEventType.EXPENSE_CREATED,
            AuditEventType.RECEIPT_PROCESSED,
        } <= types

    async def test_extract_only_records_nothing(self, receipt_flow, ledger, system_categories):
        """Test that extraction alone has no ledger effect."""
        ocr = FakeOCRService(_receipt_draft())
        draft = await receipt_flow(ocr).extract(b"jpeg", "r.jpg")
        assert draft.merchant_name == "Fresh Market"
        assert ocr.calls == 1
        assert (await ledger.list(OWNER)).total == 0


class TestVoiceFlow:
    """Tests for voice note to expense."""

    async def test_voice_note_becomes_expense(self, voice_flow, cash, system_categories):
        """Test the happy path, with the date defaulting to today."""
        draft = ExpenseDraft(
            amount=Decimal("14.00"),
            description="Taxi to the airport",
            category_hint="transport",
            transcription="fourteen dollars taxi to the airport",
        )
        flow = voice_flow(FakeVoiceService(draft))

        expense, _ = await flow.process(
            OWNER, b"ogg", "note.ogg", "audio/ogg", payment_method_id=cash.id
        )

        assert expense.source == ExpenseSource.VOICE
        assert expense.category_id == system_categories["Transport"].id
        assert expense.date == TODAY
        assert expense.voice_audio_key is not None

    async def test_audio_can_be_discarded(self, voice_flow, blob_storage, cash, system_categories):
        """Test that store_audio=False keeps only the transcription."""
        draft = ExpenseDraft(amount=Decimal("3.50"), transcription="coffee three fifty", date=date(2024, 3, 14))
        flow = voice_flow(FakeVoiceService(draft))

        expense, _ = await flow.process(
            OWNER, b"ogg", "note.ogg", None, payment_method_id=cash.id, store_audio=False
        )

        assert expense.voice_audio_key is None
        assert expense.voice_transcription == "coffee three fifty"
        assert blob_storage.blobs == {}

    async def test_unknown_hint_goes_to_other(self, voice_flow, cash, system_categories):
        """Test the Other fallback for unrecognised hints."""
        draft = ExpenseDraft(amount=Decimal("1.00"), description="Gum", category_hint="candy", date=TODAY)
        expense, _ = await voice_flow(FakeVoiceService(draft)).process(
            OWNER, b"ogg", "n.ogg", None, payment_method_id=cash.id
        )
        assert expense.category_id == system_categories["Other"].id

    async def test_voice_failure_propagates(self, voice_flow, cash, system_categories):
        """Test that a failed transcription raises the adapter error."""
        flow = voice_flow(FakeVoiceService(error=VoiceProcessingError("no speech")))
        with pytest.raises(VoiceProcessingError):
            await flow.process(OWNER, b"ogg", "n.ogg", None, payment_method_id=cash.id)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
