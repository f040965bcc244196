"""
Compensating actions for multi-step ledger operations.

Each completed step registers how to undo itself. If a later step raises,
the registered undo actions run in reverse order and the original error
propagates unchanged.

Usage:
    async with CompensationStack("create_expense", owner_id) as stack:
        expense = await storage.insert_expense(expense)
        stack.push("delete expense row", partial(storage.delete_expense, expense.id))
        await storage.adjust_balance(pm_id, -amount)
"""

from typing import Awaitable, Callable, Optional

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.models.audit import AuditEventBuilder

logger = structlog.get_logger(__name__)

UndoAction = Callable[[], Awaitable[object]]


class CompensationStack:
    """Ordered undo log for one operation."""

    def __init__(
        self,
        operation: str,
        owner_id: str,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.operation = operation
        self.owner_id = owner_id
        self._audit_logger = audit_logger
        self._actions: list[tuple[str, UndoAction]] = []
        self.undone: list[str] = []
        self.failed: list[str] = []

    def push(self, name: str, undo: UndoAction) -> None:
        self._actions.append((name, undo))

    async def unwind(self, error: BaseException) -> None:
        """Run every undo action, newest first. Undo failures are logged, not raised."""
        while self._actions:
            name, undo = self._actions.pop()
            try:
                await undo()
                self.undone.append(name)
            except Exception as e:
                self.failed.append(name)
                logger.error(
                    "compensation_step_failed",
                    operation=self.operation,
                    owner_id=self.owner_id,
                    step=name,
                    error=str(e),
                )

        if self._audit_logger and (self.undone or self.failed):
            await self._audit_logger.log(
                AuditEventBuilder.compensation_executed(
                    owner_id=self.owner_id,
                    operation=self.operation,
                    steps=self.undone,
                    error_message=str(error),
                    failed_steps=self.failed,
                )
            )

    async def __aenter__(self) -> "CompensationStack":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            await self.unwind(exc)
        self._actions.clear()
        return False
