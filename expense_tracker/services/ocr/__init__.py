"""OCR services package."""

from expense_tracker.services.ocr.mindee_service import (
    ExtractionFailedError,
    MindeeReceiptService,
    OCRError,
    map_receipt_category,
    prediction_to_draft,
)

__all__ = [
    "ExtractionFailedError",
    "MindeeReceiptService",
    "OCRError",
    "map_receipt_category",
    "prediction_to_draft",
]
