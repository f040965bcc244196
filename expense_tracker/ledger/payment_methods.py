"""
Payment Method Store

Every payment method carries a running balance that only the ledger moves,
through `adjust_balance`.

CRITICAL:
- At most one method per owner is the default. Clearing the old default and
  setting the new one is a single storage call made under the owner's lock.
- `adjust_balance` does not take the owner's lock. The storage layer applies
  each adjustment atomically, and the expense ledger calls it while already
  holding that lock.
"""

from __future__ import annotations

from decimal import Decimal
from functools import partial
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_tracker.audit import AuditLogger
from expense_tracker.exceptions import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)
from expense_tracker.ledger.compensation import CompensationStack
from expense_tracker.ledger.locks import OwnerLocks
from expense_tracker.ledger.summary import summary_cache_key
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.models.common import ZERO, to_money
from expense_tracker.models.payment_method import (
    BalanceDirection,
    PaymentMethod,
    PaymentMethodCreate,
    PaymentMethodType,
    PaymentMethodUpdate,
    PaymentMethodWithStats,
)
from expense_tracker.services.cache import CacheInterface, SafeCache
from expense_tracker.services.storage import LedgerStorageInterface

logger = structlog.get_logger(__name__)

# Fields an update may clear by sending None
NULLABLE_FIELDS = {
    "last_four_digits",
    "bank_name",
    "icon",
    "color",
    "credit_limit",
    "expiration_date",
}


def payment_methods_cache_key(owner_id: str, include_inactive: bool) -> str:
    return f"payment-methods:{owner_id}:{str(include_inactive).lower()}"


def sort_payment_methods(payment_methods: list[PaymentMethod]) -> list[PaymentMethod]:
    """Default first, then by name."""
    return sorted(payment_methods, key=lambda pm: (not pm.is_default, pm.name))


class PaymentMethodStore:
    """
    Payment method operations scoped to one owner per call.

    Args:
        storage: Backend holding payment methods and expenses
        cache: Optional cache for payment method lists
        locks: Per-owner lock registry shared with the other stores
        audit_logger: Optional audit trail
        cache_ttl_seconds: Lifetime of a cached list
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        cache: Optional[CacheInterface] = None,
        locks: Optional[OwnerLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        cache_ttl_seconds: int = 1800,
    ):
        self._storage = storage
        self._cache = SafeCache(cache) if cache and not isinstance(cache, SafeCache) else cache
        self._locks = locks or OwnerLocks()
        self._audit_logger = audit_logger
        self._cache_ttl_seconds = cache_ttl_seconds

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _invalidate(self, owner_id: str) -> None:
        if self._cache:
            for include_inactive in (False, True):
                await self._cache.delete(payment_methods_cache_key(owner_id, include_inactive))

    async def _invalidate_summary(self, owner_id: str) -> None:
        # Breakdowns carry payment method names and types
        if self._cache:
            await self._cache.delete(summary_cache_key(owner_id))

    async def _require_unique_name(
        self,
        owner_id: str,
        name: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        existing = await self._storage.find_payment_method_by_name(owner_id, name)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(f"A payment method named '{name}' already exists")

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list(self, owner_id: str, include_inactive: bool = False) -> list[PaymentMethod]:
        """Active methods (all with include_inactive), default first, then by name."""
        key = payment_methods_cache_key(owner_id, include_inactive)
        if self._cache:
            cached = await self._cache.get(key)
            if cached is not None:
                try:
                    return [PaymentMethod.model_validate(item) for item in cached]
                except ValidationError as e:
                    logger.warning("payment_method_cache_corrupt", owner_id=owner_id, error=str(e))

        payment_methods = sort_payment_methods(
            await self._storage.list_payment_methods(owner_id, include_inactive)
        )

        if self._cache:
            await self._cache.set(
                key,
                [pm.model_dump(mode="json") for pm in payment_methods],
                self._cache_ttl_seconds,
            )
        return payment_methods

    async def get(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        """
        Raises:
            NotFoundError: If absent or owned by someone else
        """
        payment_method = await self._storage.get_payment_method(payment_method_id)
        if payment_method is None or payment_method.owner_id != owner_id:
            raise NotFoundError("Payment method", payment_method_id)
        return payment_method

    async def get_default(self, owner_id: str) -> Optional[PaymentMethod]:
        """The owner's active default method, if any."""
        for payment_method in await self.list(owner_id):
            if payment_method.is_default:
                return payment_method
        return None

    async def list_with_stats(self, owner_id: str) -> list[PaymentMethodWithStats]:
        """
        Every method, active or not, with usage figures.

        available_credit is credit_limit - total_amount for credit cards with
        a limit, None otherwise. It may be negative.
        """
        payment_methods = sort_payment_methods(
            await self._storage.list_payment_methods(owner_id, include_inactive=True)
        )
        owner_expenses = await self._storage.list_all_expenses(owner_id)

        results = []
        for payment_method in payment_methods:
            linked = [e for e in owner_expenses if e.payment_method_id == payment_method.id]
            total = to_money(sum((e.amount for e in linked), ZERO))
            available_credit = None
            if (
                payment_method.type == PaymentMethodType.CREDIT_CARD
                and payment_method.credit_limit is not None
            ):
                available_credit = to_money(payment_method.credit_limit - total)
            results.append(PaymentMethodWithStats(
                **payment_method.model_dump(),
                total_expenses=len(linked),
                total_amount=total,
                available_credit=available_credit,
            ))
        return results

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create(self, owner_id: str, data: PaymentMethodCreate) -> PaymentMethod:
        """
        Create a payment method with its initial balance.

        Raises:
            ConflictError: If the owner already has a method with this name
        """
        async with self._locks.hold(owner_id):
            await self._require_unique_name(owner_id, data.name)

            async with CompensationStack(
                "create_payment_method", owner_id, self._audit_logger
            ) as stack:
                payment_method = PaymentMethod(
                    **data.model_dump(exclude={"is_default"}),
                    owner_id=owner_id,
                    is_default=False,
                )
                payment_method = await self._storage.insert_payment_method(payment_method)
                stack.push(
                    "delete payment method row",
                    partial(self._storage.delete_payment_method, payment_method.id),
                )

                if data.is_default:
                    payment_method = await self._storage.set_default(owner_id, payment_method.id)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.payment_method_created(
            owner_id, payment_method.id, payment_method.name, payment_method.balance
        ))
        if data.is_default:
            await self._audit(AuditEventBuilder.default_changed(owner_id, payment_method.id))
        return payment_method

    async def update(
        self,
        owner_id: str,
        payment_method_id: str,
        data: PaymentMethodUpdate,
    ) -> PaymentMethod:
        """
        Change a payment method. The balance cannot be changed here.

        Raises:
            NotFoundError: If not owned
            ConflictError: If the new name is taken
            InvalidOperationError: If a non credit card would get a credit limit
        """
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_FIELDS
        }
        make_default = changes.pop("is_default", None) is True
        if data.is_default is False:
            changes["is_default"] = False

        async with self._locks.hold(owner_id):
            current = await self.get(owner_id, payment_method_id)

            new_name = changes.get("name")
            if new_name and new_name != current.name:
                await self._require_unique_name(owner_id, new_name, exclude_id=current.id)

            new_type = changes.get("type", current.type)
            new_limit = changes.get("credit_limit", current.credit_limit)
            if new_limit is not None and new_type != PaymentMethodType.CREDIT_CARD:
                raise InvalidOperationError("Only credit cards can have a credit limit")

            updated = PaymentMethod.model_validate({**current.model_dump(), **changes})
            updated = await self._storage.update_payment_method(updated)

            if make_default and not updated.is_default:
                updated = await self._storage.set_default(owner_id, payment_method_id)

        await self._invalidate(owner_id)
        await self._invalidate_summary(owner_id)
        changed_fields = list(changes) + (["is_default"] if make_default else [])
        await self._audit(AuditEventBuilder.payment_method_updated(
            owner_id, payment_method_id, changed_fields
        ))
        if make_default:
            await self._audit(AuditEventBuilder.default_changed(owner_id, payment_method_id))
        return updated

    async def deactivate(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        """Hide a method from active lists without deleting it."""
        return await self.update(owner_id, payment_method_id, PaymentMethodUpdate(is_active=False))

    async def delete(self, owner_id: str, payment_method_id: str) -> None:
        """
        Delete an unreferenced payment method.

        Raises:
            NotFoundError: If not owned
            InvalidOperationError: If any expense still references it
        """
        async with self._locks.hold(owner_id):
            payment_method = await self.get(owner_id, payment_method_id)
            references = await self._storage.count_expenses_by_payment_method(payment_method_id)
            if references > 0:
                raise InvalidOperationError(
                    f"Payment method is used by {references} expense(s); deactivate it instead"
                )
            await self._storage.delete_payment_method(payment_method_id)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.payment_method_deleted(
            owner_id, payment_method_id, payment_method.name
        ))

    async def set_default(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        """
        Make one method the owner's only default.

        Raises:
            NotFoundError: If not owned
        """
        async with self._locks.hold(owner_id):
            await self.get(owner_id, payment_method_id)
            payment_method = await self._storage.set_default(owner_id, payment_method_id)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.default_changed(owner_id, payment_method_id))
        return payment_method

    async def adjust_balance(
        self,
        owner_id: str,
        payment_method_id: str,
        amount: Decimal,
        direction: BalanceDirection,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentMethod:
        """
        Credit adds the amount, debit subtracts it. No floor, no cap.

        Raises:
            NotFoundError: If not owned
            InvalidOperationError: If the amount is not positive
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidOperationError("Balance adjustments must be positive amounts")

        await self.get(owner_id, payment_method_id)
        delta = amount if direction == BalanceDirection.CREDIT else -amount
        payment_method = await self._storage.adjust_balance(payment_method_id, delta)

        await self._invalidate(owner_id)
        await self._audit(AuditEventBuilder.balance_adjusted(
            owner_id,
            payment_method_id,
            direction.value,
            amount,
            payment_method.balance,
            correlation_id=correlation_id,
        ))
        return payment_method
