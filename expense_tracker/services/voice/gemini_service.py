"""
Voice Expense Extraction using Gemini

DESIGN DECISION: Gemini accepts audio inline, so one call both transcribes
the recording and extracts the expense fields. When the model's answer is
not usable JSON we fall back to simple rules over the transcription.

CRITICAL BOUNDARIES:
- The model is a TRANSLATOR. It turns speech into a draft.
- It NEVER decides the category id, the payment method, or whether the
  expense is stored. The ledger does that.
"""

import json
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import google.generativeai as genai
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.config import GeminiSettings, get_settings
from expense_tracker.exceptions import UpstreamFailureError
from expense_tracker.models.common import to_money
from expense_tracker.models.expense import ExpenseDraft

logger = structlog.get_logger(__name__)


class VoiceProcessingError(UpstreamFailureError):
    """The recording could not be turned into a draft."""

    def __init__(self, message: str):
        super().__init__("voice", message)


AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "webm": "audio/webm",
    "ogg": "audio/ogg",
    "m4a": "audio/m4a",
}
DEFAULT_AUDIO_MIME_TYPE = "audio/mpeg"

FALLBACK_DESCRIPTION_LENGTH = 50
FALLBACK_CATEGORY_HINT = "other"
MODEL_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.5

# First amount-looking token: "12", "12.50", "1,250.00", "45000"
_AMOUNT_PATTERN = re.compile(r"\d+(?:,\d{3})*(?:\.\d{1,2})?")

VALID_HINTS = (
    "food", "transport", "entertainment", "health",
    "education", "shopping", "services", "other",
)


def audio_mime_type(filename: str) -> str:
    """MIME type from the file extension, mp3 when unknown."""
    extension = Path(filename or "").suffix.lstrip(".").lower()
    return AUDIO_MIME_TYPES.get(extension, DEFAULT_AUDIO_MIME_TYPE)


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return to_money(str(value).replace(",", ""))
    except (InvalidOperation, ValueError):
        return None


def extract_basic_expense_info(text: str) -> ExpenseDraft:
    """
    Rule-based extraction from a transcription.

    The first number is the amount, the first 50 characters are the
    description, and the hint is always "other".
    """
    match = _AMOUNT_PATTERN.search(text)
    amount = _parse_amount(match.group(0)) if match else None
    return ExpenseDraft(
        amount=amount,
        description=text.strip()[:FALLBACK_DESCRIPTION_LENGTH] or None,
        category_hint=FALLBACK_CATEGORY_HINT,
        confidence=FALLBACK_CONFIDENCE,
        transcription=text,
        raw_source_metadata={"provider": "rules"},
    )


def _load_json_object(text: str) -> Optional[dict]:
    """Find and parse the first JSON object in a model answer."""
    cleaned = text.replace("```json", "").replace("```", "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(cleaned[start:end])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_voice_response(text: str) -> ExpenseDraft:
    """
    Turn Gemini's answer into a draft.

    Raises:
        VoiceProcessingError: If neither fields nor a transcription came back
    """
    data = _load_json_object(text or "")

    if data is None:
        # Not JSON at all: treat the whole answer as the transcription
        transcription = (text or "").strip()
        if not transcription:
            raise VoiceProcessingError("Empty answer from voice model")
        return extract_basic_expense_info(transcription)

    transcription = str(data.get("transcription") or "").strip() or None
    amount = _parse_amount(data.get("amount"))
    description = str(data.get("description") or "").strip()

    if amount is None or amount <= 0 or not description:
        if transcription:
            return extract_basic_expense_info(transcription)
        raise VoiceProcessingError("Could not extract an expense from the recording")

    hint = str(data.get("category_hint") or "").strip().lower() or None
    return ExpenseDraft(
        amount=amount,
        description=description[:200],
        category_hint=hint if hint in VALID_HINTS else FALLBACK_CATEGORY_HINT,
        confidence=MODEL_CONFIDENCE,
        transcription=transcription,
        raw_source_metadata={"provider": "gemini", "response": data},
    )


class GeminiVoiceService:
    """
    Voice adapter.

    RESPONSIBILITIES:
    - Transcribe the recording
    - Extract amount, description and category hint

    BOUNDARIES:
    - NEVER persists data
    - NEVER invents an amount that was not spoken
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def _build_prompt(self) -> str:
        return f"""You are helping record an expense in a personal finance app.

Listen to the attached recording (spoken language: {self._settings.language}).
Transcribe it, then extract the expense it describes.

Fields:
- transcription: exactly what was said
- amount: the amount spent as a number, without currency symbols
- description: what was bought, at most 50 characters
- category_hint: one of {', '.join(VALID_HINTS)}

Examples:
- "I spent 45 dollars at the supermarket" -> {{"transcription": "I spent 45 dollars at the supermarket", "amount": 45, "description": "Supermarket", "category_hint": "food"}}
- "Uber to the office, 12.50" -> {{"transcription": "Uber to the office, 12.50", "amount": 12.5, "description": "Uber to the office", "category_hint": "transport"}}

Never guess an amount that was not spoken; use null instead.
Respond with ONLY a JSON object, no markdown."""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _ask_model(self, audio_bytes: bytes, mime_type: str) -> str:
        response = await self._model.generate_content_async([
            self._build_prompt(),
            {"mime_type": mime_type, "data": audio_bytes},
        ])
        return response.text

    async def extract_draft(self, audio_bytes: bytes, filename: str) -> ExpenseDraft:
        """
        Turn a voice recording into a draft expense.

        Args:
            audio_bytes: Raw audio
            filename: Original file name, used for the MIME type

        Returns:
            ExpenseDraft with the transcription attached

        Raises:
            VoiceProcessingError: If Gemini fails or nothing usable came back
        """
        if not audio_bytes:
            raise VoiceProcessingError("Empty recording")

        mime_type = audio_mime_type(filename)
        try:
            text = await self._ask_model(audio_bytes, mime_type)
        except Exception as e:
            logger.error("voice_model_failed", filename=filename, error=str(e))
            raise VoiceProcessingError(f"Failed to process recording: {e}")

        draft = parse_voice_response(text)
        logger.info(
            "voice_processed",
            filename=filename,
            mime_type=mime_type,
            amount=str(draft.amount) if draft.amount is not None else None,
            category_hint=draft.category_hint,
            provider=draft.raw_source_metadata.get("provider"),
        )
        return draft
