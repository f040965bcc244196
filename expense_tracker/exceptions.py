"""
Domain Errors

Every failure the ledger reports to its callers falls into one of
four kinds:

- NotFoundError: the referenced entity does not exist or belongs to
  another owner
- ConflictError: a per-owner uniqueness rule would be broken
- InvalidOperationError: the entity exists but the requested change is
  not allowed (system category, live references, bad input)
- UpstreamFailureError: a third-party dependency (OCR, voice, blob
  storage) failed

Errors are raised immediately and never retried by the ledger.
"""

from typing import Optional


class ExpenseTrackerError(Exception):
    """Base exception for all domain errors."""
    pass


class NotFoundError(ExpenseTrackerError):
    """Entity not found or not visible to the caller."""

    def __init__(self, entity_type: str, entity_id: Optional[str] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        message = f"{entity_type} not found"
        if entity_id:
            message = f"{message}: {entity_id}"
        super().__init__(message)


class ConflictError(ExpenseTrackerError):
    """A uniqueness rule would be violated."""
    pass


class InvalidOperationError(ExpenseTrackerError):
    """The requested change is not allowed."""

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = issues or []
        super().__init__(message)


class UpstreamFailureError(ExpenseTrackerError):
    """A third-party service failed."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(message)
