"""Configuration package."""

from expense_tracker.config.settings import (
    AppSettings,
    CloudinarySettings,
    GeminiSettings,
    GoogleSheetsSettings,
    MindeeSettings,
    RedisSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CloudinarySettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "MindeeSettings",
    "RedisSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
