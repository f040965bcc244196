"""Services package."""

from expense_tracker.services.blob import (
    BlobStorageError,
    BlobStorageInterface,
    CloudinaryBlobStorage,
)
from expense_tracker.services.cache import (
    CacheInterface,
    InMemoryCache,
    RedisCache,
    SafeCache,
)
from expense_tracker.services.ocr import (
    ExtractionFailedError,
    MindeeReceiptService,
    OCRError,
)
from expense_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)
from expense_tracker.services.voice import (
    GeminiVoiceService,
    VoiceProcessingError,
)

__all__ = [
    # Attachment storage
    "BlobStorageError",
    "BlobStorageInterface",
    "CloudinaryBlobStorage",
    # Cache
    "CacheInterface",
    "InMemoryCache",
    "RedisCache",
    "SafeCache",
    # OCR services
    "ExtractionFailedError",
    "MindeeReceiptService",
    "OCRError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "StorageError",
    # Voice services
    "GeminiVoiceService",
    "VoiceProcessingError",
]
