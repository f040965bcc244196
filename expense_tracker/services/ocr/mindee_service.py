"""
Receipt OCR Service using Mindee

DESIGN DECISION: We use Mindee because:
1. Specialized for receipts
2. Returns STRUCTURED data, not just raw text
3. Provides confidence scores per field
4. Classifies receipts into spending categories

This service handles:
1. Checking that the upload really is an image
2. Sending it to Mindee's receipt product
3. Converting the prediction into an ExpenseDraft

CRITICAL: This service only proposes data. It never writes to the ledger;
the draft goes through validation and then the ledger's OCR creation path.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Optional

import structlog
from mindee import Client
from mindee.product import ReceiptV5
from PIL import Image, UnidentifiedImageError
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.config import MindeeSettings, get_settings
from expense_tracker.exceptions import UpstreamFailureError
from expense_tracker.models.common import to_money
from expense_tracker.models.expense import ExpenseDraft

logger = structlog.get_logger(__name__)


class OCRError(UpstreamFailureError):
    """Base exception for OCR errors."""

    def __init__(self, message: str):
        super().__init__("ocr", message)


class ExtractionFailedError(OCRError):
    """The receipt was read but no usable total was found."""
    pass


# Mindee receipt categories -> category hints understood by the ledger
MINDEE_CATEGORY_HINTS = {
    "food": "food",
    "gasoline": "transport",
    "parking": "transport",
    "toll": "transport",
    "transport": "transport",
    "shopping": "shopping",
    "accommodation": "services",
    "telecom": "services",
    "energy": "services",
    "software": "services",
}

DEFAULT_RECEIPT_DESCRIPTION = "Receipt expense"


def _field_value(field: Any) -> Any:
    return getattr(field, "value", None) if field is not None else None


def _safe_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_decimal(value: Any) -> Optional[Decimal]:
    """Safely convert a value to a cents Decimal."""
    if value is None:
        return None
    try:
        return to_money(value)
    except (InvalidOperation, TypeError, ValueError):
        return None


def _safe_date(value: Any) -> Optional[date]:
    """Mindee reports dates as ISO strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None


def map_receipt_category(mindee_category: Optional[str]) -> Optional[str]:
    """Map a Mindee receipt category onto a ledger category hint."""
    if not mindee_category:
        return None
    return MINDEE_CATEGORY_HINTS.get(mindee_category.strip().lower())


def prediction_to_draft(prediction: Any) -> ExpenseDraft:
    """
    Convert a Mindee receipt prediction to a draft.

    Confidence is the mean confidence of total, date and supplier, over
    the ones Mindee actually found.

    Raises:
        ExtractionFailedError: If no positive total could be read
    """
    total_field = getattr(prediction, "total_amount", None)
    date_field = getattr(prediction, "date", None)
    supplier_field = getattr(prediction, "supplier_name", None)
    category_field = getattr(prediction, "category", None)

    amount = _safe_decimal(_field_value(total_field))
    if amount is None or amount <= 0:
        raise ExtractionFailedError(
            "Could not read the total from this receipt. "
            "Please make sure the total is clearly visible."
        )

    confidences = [
        float(getattr(field, "confidence", 0.0) or 0.0)
        for field in (total_field, date_field, supplier_field)
        if _field_value(field) is not None
    ]
    confidence = sum(confidences) / len(confidences) if confidences else 0.0

    merchant = _field_value(supplier_field)
    merchant = str(merchant).strip()[:200] if merchant else None
    mindee_category = _field_value(category_field)

    line_items = []
    for item in getattr(prediction, "line_items", None) or []:
        line_items.append({
            "description": getattr(item, "description", None),
            "quantity": _safe_float(getattr(item, "quantity", None)),
            "unit_price": _safe_float(getattr(item, "unit_price", None)),
            "total_amount": _safe_float(getattr(item, "total_amount", None)),
        })

    taxes = []
    for tax in getattr(prediction, "taxes", None) or []:
        taxes.append({
            "value": _safe_float(getattr(tax, "value", None)),
            "rate": _safe_float(getattr(tax, "rate", None)),
            "code": getattr(tax, "code", None),
        })

    return ExpenseDraft(
        amount=amount,
        description=(merchant or DEFAULT_RECEIPT_DESCRIPTION)[:200],
        date=_safe_date(_field_value(date_field)),
        category_hint=map_receipt_category(mindee_category),
        merchant_name=merchant,
        confidence=max(0.0, min(1.0, confidence)),
        raw_source_metadata={
            "provider": "mindee",
            "merchant": merchant,
            "receipt_number": _field_value(getattr(prediction, "receipt_number", None)),
            "category": mindee_category,
            "subcategory": _field_value(getattr(prediction, "subcategory", None)),
            "tip": _safe_float(_field_value(getattr(prediction, "tip", None))),
            "line_items": line_items,
            "taxes": taxes,
        },
    )


class MindeeReceiptService:
    """
    OCR service using Mindee for structured receipt extraction.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data - it does NOT validate semantically
    2. Transient Mindee failures are retried, everything else surfaces as OCRError
    3. Confidence scores are preserved for downstream validation
    """

    def __init__(self, settings: Optional[MindeeSettings] = None):
        self._settings = settings or get_settings().mindee
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        """Get or create Mindee client."""
        if self._client is None:
            self._client = Client(api_key=self._settings.api_key)
        return self._client

    @staticmethod
    def check_image(image_bytes: bytes) -> None:
        """
        Make sure the bytes decode as an image before paying for OCR.

        Raises:
            OCRError: If the upload is not a readable image
        """
        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise OCRError(f"Upload is not a readable image: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _parse(self, image_bytes: bytes, filename: str) -> Any:
        client = self._get_client()
        input_source = client.source_from_bytes(image_bytes, filename)
        result = client.parse(ReceiptV5, input_source)
        return result.document.inference.prediction

    async def extract_draft(self, image_bytes: bytes, filename: str) -> ExpenseDraft:
        """
        Read a receipt photo into a draft expense.

        Args:
            image_bytes: Raw image bytes
            filename: Original file name (Mindee uses it to detect the type)

        Returns:
            ExpenseDraft with amount, merchant, date and category hint

        Raises:
            OCRError: If the image is unreadable or Mindee fails
            ExtractionFailedError: If no total could be extracted
        """
        self.check_image(image_bytes)

        try:
            prediction = await self._parse(image_bytes, filename)
        except Exception as e:
            logger.error("ocr_failed", filename=filename, error=str(e))
            raise OCRError(f"Failed to read receipt: {e}")

        draft = prediction_to_draft(prediction)
        logger.info(
            "ocr_completed",
            filename=filename,
            amount=str(draft.amount),
            confidence=draft.confidence,
            category_hint=draft.category_hint,
        )
        return draft
