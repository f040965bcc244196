"""Voice services package."""

from expense_tracker.services.voice.gemini_service import (
    GeminiVoiceService,
    VoiceProcessingError,
    audio_mime_type,
    extract_basic_expense_info,
    parse_voice_response,
)

__all__ = [
    "GeminiVoiceService",
    "VoiceProcessingError",
    "audio_mime_type",
    "extract_basic_expense_info",
    "parse_voice_response",
]
