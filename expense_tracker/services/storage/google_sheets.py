"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the ledger orders its writes and compensates on failure)
- Limited query capabilities (we filter in Python)

CRITICAL: gspread calls are blocking and never yield to the event loop, so
each storage method runs to completion before any other coroutine runs.
Within a single process that makes `set_default` and `adjust_balance`
indivisible. Several processes sharing one spreadsheet are not supported.
"""

import json
from decimal import Decimal
from typing import Any, Optional, Type, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.config import GoogleSheetsSettings, get_settings
from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.category import Category
from expense_tracker.models.common import to_money, utc_now
from expense_tracker.models.expense import Expense, ExpenseQuery
from expense_tracker.models.payment_method import PaymentMethod
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)
from expense_tracker.services.storage.memory import apply_expense_query

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# Column mappings, one list per worksheet
CATEGORY_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "description",
    "icon",
    "color",
    "is_system",
    "order_index",
    "created_at",
    "updated_at",
]

PAYMENT_METHOD_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "type",
    "last_four_digits",
    "bank_name",
    "icon",
    "color",
    "balance",
    "credit_limit",
    "expiration_date",
    "is_active",
    "is_default",
    "created_at",
    "updated_at",
]

EXPENSE_COLUMNS = [
    "id",
    "owner_id",
    "amount",
    "description",
    "notes",
    "date",
    "source",
    "category_id",
    "payment_method_id",
    "receipt_url",
    "receipt_key",
    "ocr_data",
    "voice_transcription",
    "voice_audio_url",
    "voice_audio_key",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details",
    "error_message",
]

# Columns holding JSON documents rather than scalars
JSON_COLUMNS = {"ocr_data", "details"}


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Serialize a model into cell strings in column order."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif column in JSON_COLUMNS:
            row.append(json.dumps(value) if value else "")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        else:
            row.append(str(value))
    return row


def row_to_model(model_cls: Type[ModelT], row: list[str], columns: list[str]) -> ModelT:
    """Rebuild a model from cell strings. Empty cells become None."""
    data: dict[str, Any] = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if cell == "":
            continue
        data[column] = json.loads(cell) if column in JSON_COLUMNS else cell
    return model_cls.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet whose first row holds the column names."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[title] = sheet
        return sheet


class _SheetTable:
    """One worksheet viewed as a table of models keyed by their first column."""

    def __init__(
        self,
        client: GoogleSheetsClient,
        title: str,
        columns: list[str],
        model_cls: Type[ModelT],
    ):
        self._client = client
        self._title = title
        self._columns = columns
        self._model_cls = model_cls

    @property
    def sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns)

    def all(self) -> list:
        """Every parseable row. Malformed rows are logged and skipped."""
        models = []
        for row in self.sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                models.append(row_to_model(self._model_cls, row, self._columns))
            except Exception as e:
                logger.warning("sheet_row_skipped", sheet=self._title, row_id=row[0], error=str(e))
        return models

    def find_row(self, key: str) -> tuple[Optional[int], Optional[Any]]:
        """Return the 1-based row number and model for a key."""
        for index, row in enumerate(self.sheet.get_all_values()[1:], start=2):
            if row and row[0] == key:
                return index, row_to_model(self._model_cls, row, self._columns)
        return None, None

    def append(self, model: BaseModel) -> None:
        self.sheet.append_row(model_to_row(model, self._columns), value_input_option="RAW")

    def write(self, row_number: int, model: BaseModel) -> None:
        self.sheet.update(
            range_name=f"A{row_number}",
            values=[model_to_row(model, self._columns)],
            value_input_option="RAW",
        )

    def remove(self, row_number: int) -> None:
        self.sheet.delete_rows(row_number)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Each entity type lives in its own worksheet with one entity per row.
    Nested fields (OCR payloads) are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        self._categories = _SheetTable(
            self._client, settings.categories_sheet_name, CATEGORY_COLUMNS, Category
        )
        self._payment_methods = _SheetTable(
            self._client, settings.payment_methods_sheet_name, PAYMENT_METHOD_COLUMNS, PaymentMethod
        )
        self._expenses = _SheetTable(
            self._client, settings.expenses_sheet_name, EXPENSE_COLUMNS, Expense
        )

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def insert_category(self, category: Category) -> Category:
        try:
            self._categories.append(category)
            return category
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def insert_system_category_if_absent(self, category: Category) -> bool:
        try:
            for existing in self._categories.all():
                if existing.is_system and existing.name == category.name:
                    return False
            self._categories.append(category)
            return True
        except Exception as e:
            raise StorageError(f"Failed to seed category: {e}")

    async def get_category(self, category_id: str) -> Optional[Category]:
        try:
            _, category = self._categories.find_row(category_id)
            return category
        except Exception as e:
            raise StorageError(f"Failed to get category: {e}")

    async def find_category_by_name(
        self,
        owner_id: Optional[str],
        name: str,
    ) -> Optional[Category]:
        for category in await self._all_categories():
            if category.name != name:
                continue
            if owner_id is None and category.is_system:
                return category
            if owner_id is not None and category.owner_id == owner_id:
                return category
        return None

    async def list_categories(self, owner_id: str) -> list[Category]:
        return [c for c in await self._all_categories() if c.is_visible_to(owner_id)]

    async def update_category(self, category: Category) -> Category:
        try:
            row_number, _ = self._categories.find_row(category.id)
            if row_number is None:
                raise StorageError(f"Category not stored: {category.id}")
            category = category.model_copy(update={"updated_at": utc_now()})
            self._categories.write(row_number, category)
            return category
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update category: {e}")

    async def delete_category(self, category_id: str) -> bool:
        try:
            row_number, _ = self._categories.find_row(category_id)
            if row_number is None:
                return False
            self._categories.remove(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    async def _all_categories(self) -> list[Category]:
        try:
            return self._categories.all()
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

    # =========================================================================
    # PAYMENT METHODS
    # =========================================================================

    async def insert_payment_method(self, payment_method: PaymentMethod) -> PaymentMethod:
        try:
            self._payment_methods.append(payment_method)
            return payment_method
        except Exception as e:
            raise StorageError(f"Failed to save payment method: {e}")

    async def get_payment_method(self, payment_method_id: str) -> Optional[PaymentMethod]:
        try:
            _, payment_method = self._payment_methods.find_row(payment_method_id)
            return payment_method
        except Exception as e:
            raise StorageError(f"Failed to get payment method: {e}")

    async def find_payment_method_by_name(
        self,
        owner_id: str,
        name: str,
    ) -> Optional[PaymentMethod]:
        for payment_method in await self.list_payment_methods(owner_id, include_inactive=True):
            if payment_method.name == name:
                return payment_method
        return None

    async def list_payment_methods(
        self,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[PaymentMethod]:
        try:
            return [
                pm for pm in self._payment_methods.all()
                if pm.owner_id == owner_id and (include_inactive or pm.is_active)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list payment methods: {e}")

    async def update_payment_method(self, payment_method: PaymentMethod) -> PaymentMethod:
        try:
            row_number, current = self._payment_methods.find_row(payment_method.id)
            if row_number is None:
                raise StorageError(f"Payment method not stored: {payment_method.id}")
            payment_method = payment_method.model_copy(
                update={"balance": current.balance, "updated_at": utc_now()}
            )
            self._payment_methods.write(row_number, payment_method)
            return payment_method
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update payment method: {e}")

    async def delete_payment_method(self, payment_method_id: str) -> bool:
        try:
            row_number, _ = self._payment_methods.find_row(payment_method_id)
            if row_number is None:
                return False
            self._payment_methods.remove(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete payment method: {e}")

    async def set_default(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        try:
            rows = self._payment_methods.sheet.get_all_values()[1:]
            target_row, target = None, None
            stale_defaults = []
            for row_number, row in enumerate(rows, start=2):
                if not row or not row[0]:
                    continue
                payment_method = row_to_model(PaymentMethod, row, PAYMENT_METHOD_COLUMNS)
                if payment_method.owner_id != owner_id:
                    continue
                if payment_method.id == payment_method_id:
                    target_row, target = row_number, payment_method
                elif payment_method.is_default:
                    stale_defaults.append((row_number, payment_method))
            if target is None:
                raise StorageError(f"Payment method not stored: {payment_method_id}")

            # The target is written last: a failed write leaves zero or one default
            now = utc_now()
            for row_number, payment_method in stale_defaults:
                payment_method.is_default = False
                payment_method.updated_at = now
                self._payment_methods.write(row_number, payment_method)
            if not target.is_default:
                target.is_default = True
                target.updated_at = now
                self._payment_methods.write(target_row, target)
            return target
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to set default payment method: {e}")

    async def adjust_balance(self, payment_method_id: str, delta: Decimal) -> PaymentMethod:
        try:
            row_number, payment_method = self._payment_methods.find_row(payment_method_id)
            if row_number is None:
                raise StorageError(f"Payment method not stored: {payment_method_id}")
            payment_method.balance = to_money(payment_method.balance + delta)
            payment_method.updated_at = utc_now()
            self._payment_methods.write(row_number, payment_method)
            return payment_method
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to adjust balance: {e}")

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def insert_expense(self, expense: Expense) -> Expense:
        try:
            self._expenses.append(expense)
            return expense
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        try:
            _, expense = self._expenses.find_row(expense_id)
            return expense
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def update_expense(self, expense: Expense) -> Expense:
        try:
            row_number, _ = self._expenses.find_row(expense.id)
            if row_number is None:
                raise StorageError(f"Expense not stored: {expense.id}")
            expense = expense.model_copy(update={"updated_at": utc_now()})
            self._expenses.write(row_number, expense)
            return expense
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, expense_id: str) -> bool:
        try:
            row_number, _ = self._expenses.find_row(expense_id)
            if row_number is None:
                return False
            self._expenses.remove(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    async def list_expenses(
        self,
        owner_id: str,
        query: ExpenseQuery,
    ) -> tuple[list[Expense], int]:
        return apply_expense_query(await self.list_all_expenses(owner_id), query)

    async def list_all_expenses(self, owner_id: str) -> list[Expense]:
        try:
            return [e for e in self._expenses.all() if e.owner_id == owner_id]
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

    async def count_expenses_by_category(self, category_id: str) -> int:
        try:
            return sum(1 for e in self._expenses.all() if e.category_id == category_id)
        except Exception as e:
            raise StorageError(f"Failed to count expenses: {e}")

    async def count_expenses_by_payment_method(self, payment_method_id: str) -> int:
        try:
            return sum(1 for e in self._expenses.all() if e.payment_method_id == payment_method_id)
        except Exception as e:
            raise StorageError(f"Failed to count expenses: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client,
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            AuditEvent,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._table.sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_event_write_failed", event_type=event.event_type.value, error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in await self._all_events() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self._all_events()
        return sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]

    async def _all_events(self) -> list[AuditEvent]:
        try:
            return self._table.all()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
