"""
Expense Ledger

Records expenses and keeps payment method balances in step with them.

CRITICAL - Balance protocol:
- create: debit the expense amount from its payment method
- update: credit the old amount to the old method, then debit the new
  amount from the new method (only when amount or method changed)
- delete: credit the full amount back

Each mutation runs under the owner's lock and registers a compensating
action after every completed step. If a later step raises, the completed
steps are undone newest first and the original error propagates. Summary
cache eviction is the last step and never fails the operation.

DESIGN DECISION: Attachments are removed AFTER the expense row on delete.
A failed blob deletion leaves an orphaned file (logged and audited), never
an expense whose balance was already credited back.
"""

import datetime as dt
import math
from decimal import Decimal
from functools import partial
from typing import Callable, Optional
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.exceptions import (
    InvalidOperationError,
    NotFoundError,
    UpstreamFailureError,
)
from expense_tracker.ledger.categories import CategoryStore
from expense_tracker.ledger.compensation import CompensationStack
from expense_tracker.ledger.locks import OwnerLocks
from expense_tracker.ledger.payment_methods import PaymentMethodStore
from expense_tracker.ledger.suggestions import resolve_hint
from expense_tracker.ledger.summary import SummaryAggregator
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.models.common import to_money, utc_now
from expense_tracker.models.expense import (
    Expense,
    ExpenseCreate,
    ExpenseDraft,
    ExpensePage,
    ExpenseQuery,
    ExpenseSource,
    ExpenseUpdate,
    UploadResult,
)
from expense_tracker.models.payment_method import BalanceDirection
from expense_tracker.services.blob import (
    RECEIPTS_FOLDER,
    VOICE_FOLDER,
    BlobStorageInterface,
)
from expense_tracker.services.storage import LedgerStorageInterface

logger = structlog.get_logger(__name__)

DEFAULT_RECEIPT_DESCRIPTION = "Receipt expense"
DEFAULT_VOICE_DESCRIPTION = "Voice expense"
MAX_DESCRIPTION_LENGTH = 200


def require_positive_amount(amount: Optional[Decimal]) -> Decimal:
    """
    Raises:
        InvalidOperationError: If the amount is missing or not above zero
    """
    if amount is None:
        raise InvalidOperationError("Expense amount is required")
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidOperationError("Expense amount must be greater than zero")
    return amount


class ExpenseLedger:
    """
    Expense operations scoped to one owner per call.

    Args:
        storage: Backend holding expenses
        categories: Category store used to resolve category references
        payment_methods: Payment method store used to resolve references and move balances
        summary: Optional aggregator whose cache is evicted after each mutation
        blob_storage: Optional store for receipt photos and voice recordings
        locks: Per-owner lock registry, shared with the stores
        audit_logger: Optional audit trail
        today: Clock used when an ingested draft carries no date
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        categories: CategoryStore,
        payment_methods: PaymentMethodStore,
        summary: Optional[SummaryAggregator] = None,
        blob_storage: Optional[BlobStorageInterface] = None,
        locks: Optional[OwnerLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._storage = storage
        self._categories = categories
        self._payment_methods = payment_methods
        self._summary = summary
        self._blob_storage = blob_storage
        self._locks = locks or OwnerLocks()
        self._audit_logger = audit_logger
        self._today = today

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _invalidate_summary(self, owner_id: str) -> None:
        if self._summary:
            await self._summary.invalidate(owner_id)

    async def _resolve_references(
        self,
        owner_id: str,
        category_id: str,
        payment_method_id: str,
    ) -> None:
        """Raises NotFoundError unless both references are visible to the owner."""
        await self._categories.get(owner_id, category_id)
        await self._payment_methods.get(owner_id, payment_method_id)

    async def _upload(
        self,
        stack: CompensationStack,
        data: bytes,
        folder: str,
        owner_id: str,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> Optional[UploadResult]:
        if self._blob_storage is None:
            logger.warning("attachment_not_stored", owner_id=owner_id, folder=folder)
            return None
        upload = await self._blob_storage.upload(
            data,
            folder=folder,
            owner_id=owner_id,
            filename=filename,
            content_type=content_type,
        )
        stack.push("delete uploaded attachment", partial(self._blob_storage.delete, upload.key))
        return upload

    async def _insert_and_debit(
        self,
        stack: CompensationStack,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        expense = await self._storage.insert_expense(expense)
        stack.push("delete expense row", partial(self._storage.delete_expense, expense.id))

        await self._payment_methods.adjust_balance(
            expense.owner_id,
            expense.payment_method_id,
            expense.amount,
            BalanceDirection.DEBIT,
            correlation_id=correlation_id,
        )
        stack.push(
            "credit payment method",
            partial(
                self._payment_methods.adjust_balance,
                expense.owner_id,
                expense.payment_method_id,
                expense.amount,
                BalanceDirection.CREDIT,
            ),
        )
        return expense

    async def _finish_create(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        await self._invalidate_summary(expense.owner_id)
        await self._audit(AuditEventBuilder.expense_created(
            expense.owner_id,
            expense.id,
            expense.amount,
            expense.source.value,
            correlation_id=correlation_id,
        ))
        logger.info(
            "expense_created",
            owner_id=expense.owner_id,
            expense_id=expense.id,
            source=expense.source.value,
        )
        return expense

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create(self, owner_id: str, data: ExpenseCreate) -> Expense:
        """
        Record a manually entered expense and debit its payment method.

        Raises:
            InvalidOperationError: If the amount is not positive
            NotFoundError: If the category or payment method is not visible
        """
        amount = require_positive_amount(data.amount)

        async with self._locks.hold(owner_id):
            await self._resolve_references(owner_id, data.category_id, data.payment_method_id)
            async with CompensationStack("create_expense", owner_id, self._audit_logger) as stack:
                expense = Expense(
                    **data.model_dump(exclude={"amount"}),
                    amount=amount,
                    owner_id=owner_id,
                    source=ExpenseSource.MANUAL,
                )
                expense = await self._insert_and_debit(stack, expense)

        return await self._finish_create(expense)

    async def create_from_ocr(
        self,
        owner_id: str,
        draft: ExpenseDraft,
        payment_method_id: str,
        category_id: str,
        receipt_image: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Record an expense read from a receipt photo.

        The photo is uploaded first. If anything after the upload fails,
        the upload is deleted again.

        Raises:
            InvalidOperationError: If the draft amount is missing or not positive
            NotFoundError: If the category or payment method is not visible
            UpstreamFailureError: If the upload fails
        """
        amount = require_positive_amount(draft.amount)
        description = draft.description or draft.merchant_name or DEFAULT_RECEIPT_DESCRIPTION

        async with self._locks.hold(owner_id):
            await self._resolve_references(owner_id, category_id, payment_method_id)
            async with CompensationStack(
                "create_expense_from_ocr", owner_id, self._audit_logger
            ) as stack:
                upload = await self._upload(
                    stack, receipt_image, RECEIPTS_FOLDER, owner_id, filename, content_type
                )
                expense = Expense(
                    owner_id=owner_id,
                    amount=amount,
                    description=description[:MAX_DESCRIPTION_LENGTH],
                    date=draft.date or self._today(),
                    source=ExpenseSource.OCR,
                    category_id=category_id,
                    payment_method_id=payment_method_id,
                    receipt_url=upload.url if upload else None,
                    receipt_key=upload.key if upload else None,
                    ocr_data={
                        "draft_id": draft.draft_id,
                        "merchant_name": draft.merchant_name,
                        "category_hint": draft.category_hint,
                        "confidence": draft.confidence,
                        **draft.raw_source_metadata,
                    },
                )
                expense = await self._insert_and_debit(stack, expense, correlation_id)

        return await self._finish_create(expense, correlation_id)

    async def create_from_voice(
        self,
        owner_id: str,
        draft: ExpenseDraft,
        payment_method_id: str,
        category_id: str,
        audio: Optional[bytes] = None,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Record an expense dictated as a voice note.

        The recording is optional. The date defaults to today.

        Raises:
            InvalidOperationError: If the draft amount is missing or not positive
            NotFoundError: If the category or payment method is not visible
            UpstreamFailureError: If the upload fails
        """
        amount = require_positive_amount(draft.amount)
        description = (
            draft.description
            or (draft.transcription or "")[:50].strip()
            or DEFAULT_VOICE_DESCRIPTION
        )

        async with self._locks.hold(owner_id):
            await self._resolve_references(owner_id, category_id, payment_method_id)
            async with CompensationStack(
                "create_expense_from_voice", owner_id, self._audit_logger
            ) as stack:
                upload = None
                if audio:
                    upload = await self._upload(
                        stack, audio, VOICE_FOLDER, owner_id, filename, content_type
                    )
                expense = Expense(
                    owner_id=owner_id,
                    amount=amount,
                    description=description[:MAX_DESCRIPTION_LENGTH],
                    date=draft.date or self._today(),
                    source=ExpenseSource.VOICE,
                    category_id=category_id,
                    payment_method_id=payment_method_id,
                    voice_transcription=draft.transcription,
                    voice_audio_url=upload.url if upload else None,
                    voice_audio_key=upload.key if upload else None,
                )
                expense = await self._insert_and_debit(stack, expense, correlation_id)

        return await self._finish_create(expense, correlation_id)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get(self, owner_id: str, expense_id: str) -> Expense:
        """
        Raises:
            NotFoundError: If absent or owned by someone else
        """
        expense = await self._storage.get_expense(expense_id)
        if expense is None or expense.owner_id != owner_id:
            raise NotFoundError("Expense", expense_id)
        return expense

    async def list(self, owner_id: str, query: Optional[ExpenseQuery] = None) -> ExpensePage:
        """Filtered, sorted, paginated expenses of one owner."""
        query = query or ExpenseQuery()
        items, total = await self._storage.list_expenses(owner_id, query)
        return ExpensePage(
            items=items,
            total=total,
            page=query.page,
            page_size=query.page_size,
            total_pages=math.ceil(total / query.page_size),
        )

    async def suggest_category(self, owner_id: str, hint: Optional[str] = None) -> str:
        """
        Map a category hint onto one of the owner's visible categories.

        Returns:
            The category id

        Raises:
            NotFoundError: If the owner sees no categories at all
        """
        category = resolve_hint(await self._categories.list(owner_id), hint)
        if category is None:
            raise NotFoundError("Category")
        return category.id

    # =========================================================================
    # UPDATE / DELETE
    # =========================================================================

    async def update(self, owner_id: str, expense_id: str, data: ExpenseUpdate) -> Expense:
        """
        Change an expense, moving balances when amount or payment method change.

        Raises:
            NotFoundError: If the expense or a new reference is not visible
            InvalidOperationError: If the new amount is not positive
        """
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field == "notes"
        }
        if "amount" in changes:
            changes["amount"] = require_positive_amount(changes["amount"])

        async with self._locks.hold(owner_id):
            current = await self.get(owner_id, expense_id)

            if changes.get("category_id", current.category_id) != current.category_id:
                await self._categories.get(owner_id, changes["category_id"])
            if changes.get("payment_method_id", current.payment_method_id) != current.payment_method_id:
                await self._payment_methods.get(owner_id, changes["payment_method_id"])

            updated = Expense.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": utc_now(),
            })
            reconcile = (
                updated.amount != current.amount
                or updated.payment_method_id != current.payment_method_id
            )

            async with CompensationStack("update_expense", owner_id, self._audit_logger) as stack:
                updated = await self._storage.update_expense(updated)
                stack.push("restore expense row", partial(self._storage.update_expense, current))

                if reconcile:
                    await self._payment_methods.adjust_balance(
                        owner_id, current.payment_method_id, current.amount, BalanceDirection.CREDIT
                    )
                    stack.push(
                        "debit previous payment method",
                        partial(
                            self._payment_methods.adjust_balance,
                            owner_id,
                            current.payment_method_id,
                            current.amount,
                            BalanceDirection.DEBIT,
                        ),
                    )
                    await self._payment_methods.adjust_balance(
                        owner_id, updated.payment_method_id, updated.amount, BalanceDirection.DEBIT
                    )

        await self._invalidate_summary(owner_id)
        await self._audit(AuditEventBuilder.expense_updated(
            owner_id, expense_id, list(changes), balance_reconciled=reconcile
        ))
        return updated

    async def delete(self, owner_id: str, expense_id: str) -> None:
        """
        Delete an expense and credit its amount back.

        Attachments are deleted afterwards on a best-effort basis.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        async with self._locks.hold(owner_id):
            expense = await self.get(owner_id, expense_id)

            async with CompensationStack("delete_expense", owner_id, self._audit_logger) as stack:
                await self._payment_methods.adjust_balance(
                    owner_id, expense.payment_method_id, expense.amount, BalanceDirection.CREDIT
                )
                stack.push(
                    "debit payment method",
                    partial(
                        self._payment_methods.adjust_balance,
                        owner_id,
                        expense.payment_method_id,
                        expense.amount,
                        BalanceDirection.DEBIT,
                    ),
                )
                await self._storage.delete_expense(expense_id)

        await self._delete_attachments(expense)
        await self._invalidate_summary(owner_id)
        await self._audit(AuditEventBuilder.expense_deleted(owner_id, expense_id, expense.amount))

    async def _delete_attachments(self, expense: Expense) -> None:
        if not expense.blob_keys:
            return
        if self._blob_storage is None:
            logger.warning("attachments_not_deleted", expense_id=expense.id, keys=expense.blob_keys)
            return

        for key in expense.blob_keys:
            try:
                await self._blob_storage.delete(key)
            except UpstreamFailureError as e:
                logger.warning(
                    "blob_cleanup_failed",
                    owner_id=expense.owner_id,
                    expense_id=expense.id,
                    key=key,
                    error=str(e),
                )
                await self._audit(AuditEventBuilder.blob_cleanup_failed(
                    expense.owner_id, expense.id, key, str(e)
                ))
