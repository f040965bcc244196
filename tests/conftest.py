"""
Shared fixtures.

Every store runs against the in-memory backends. External services
(blob storage, OCR, voice) are replaced with small fakes, so no test
touches the network.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings
from expense_tracker.ledger import (
    CategoryStore,
    ExpenseLedger,
    OwnerLocks,
    PaymentMethodStore,
    SummaryAggregator,
)
from expense_tracker.models import (
    Category,
    ExpenseDraft,
    PaymentMethod,
    PaymentMethodCreate,
    PaymentMethodType,
    UploadResult,
)
from expense_tracker.services.blob import BlobStorageError, BlobStorageInterface
from expense_tracker.services.cache import CacheError, CacheInterface, InMemoryCache
from expense_tracker.services.ocr import OCRError
from expense_tracker.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage
from expense_tracker.services.voice import VoiceProcessingError
from expense_tracker.validation import DraftValidator

OWNER = "alice"
OTHER_OWNER = "bob"
TODAY = dt.date(2024, 3, 15)


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeBlobStorage(BlobStorageInterface):
    """Keeps uploads in a dict; failures can be switched on."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_upload = False
        self.fail_delete = False
        self._counter = 0

    async def upload(
        self,
        data: bytes,
        folder: str,
        owner_id: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        if self.fail_upload:
            raise BlobStorageError("upload refused")
        self._counter += 1
        key = f"expense_tracker/{folder}/{owner_id}/blob{self._counter}"
        self.blobs[key] = data
        return UploadResult(
            key=key,
            url=f"https://blobs.test/{key}",
            folder=folder,
            file_name=filename,
        )

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise BlobStorageError("delete refused")
        self.blobs.pop(key, None)
        self.deleted.append(key)


class FakeOCRService:
    """Returns a preset draft, or raises the preset error."""

    def __init__(self, draft: Optional[ExpenseDraft] = None, error: Optional[Exception] = None):
        self.draft = draft
        self.error = error
        self.calls = 0

    async def extract_draft(self, image_bytes: bytes, filename: str) -> ExpenseDraft:
        self.calls += 1
        if self.error:
            raise self.error
        return self.draft


class FakeVoiceService(FakeOCRService):
    async def extract_draft(self, audio_bytes: bytes, filename: str) -> ExpenseDraft:
        return await super().extract_draft(audio_bytes, filename)


class BrokenCache(CacheInterface):
    """A cache whose every call fails."""

    async def get(self, key):
        raise CacheError("cache down")

    async def set(self, key, value, ttl_seconds):
        raise CacheError("cache down")

    async def delete(self, key):
        raise CacheError("cache down")


# =============================================================================
# BACKENDS
# =============================================================================

@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def locks():
    return OwnerLocks()


@pytest.fixture
def blob_storage():
    return FakeBlobStorage()


@pytest.fixture
def app_settings():
    return AppSettings()


# =============================================================================
# STORES
# =============================================================================

@pytest.fixture
def categories(storage, cache, locks, audit_logger):
    return CategoryStore(storage, cache=cache, locks=locks, audit_logger=audit_logger)


@pytest.fixture
def payment_methods(storage, cache, locks, audit_logger):
    return PaymentMethodStore(storage, cache=cache, locks=locks, audit_logger=audit_logger)


@pytest.fixture
def summary(storage, cache):
    return SummaryAggregator(storage, cache=cache, today=lambda: TODAY)


@pytest.fixture
def ledger(storage, categories, payment_methods, summary, blob_storage, locks, audit_logger):
    return ExpenseLedger(
        storage,
        categories,
        payment_methods,
        summary=summary,
        blob_storage=blob_storage,
        locks=locks,
        audit_logger=audit_logger,
        today=lambda: TODAY,
    )


@pytest.fixture
def validator(storage, app_settings):
    return DraftValidator(storage, settings=app_settings, today=lambda: TODAY)


# =============================================================================
# SEEDED DATA
# =============================================================================

@pytest.fixture
async def system_categories(categories) -> dict[str, Category]:
    """The system catalog, keyed by name."""
    await categories.seed_system_defaults()
    return {c.name: c for c in await categories.list(OWNER)}


@pytest.fixture
async def food(system_categories) -> Category:
    return system_categories["Food"]


@pytest.fixture
async def cash(payment_methods) -> PaymentMethod:
    return await payment_methods.create(
        OWNER,
        PaymentMethodCreate(
            name="Cash",
            type=PaymentMethodType.CASH,
            balance=Decimal("100.00"),
        ),
    )


@pytest.fixture
async def card(payment_methods) -> PaymentMethod:
    return await payment_methods.create(
        OWNER,
        PaymentMethodCreate(
            name="Visa",
            type=PaymentMethodType.CREDIT_CARD,
            balance=Decimal("500.00"),
            credit_limit=Decimal("1000.00"),
        ),
    )
