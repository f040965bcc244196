"""Draft validation package."""

from expense_tracker.validation.validator import DraftValidator

__all__ = ["DraftValidator"]
