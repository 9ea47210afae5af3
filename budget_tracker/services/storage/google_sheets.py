"""
Google Sheets Storage Implementation

Google Sheets is a storage backend that lets a single user see and export
their own data directly in a spreadsheet, with no database to run.

TRADEOFFS:
- Not suitable for high-volume data (fine for personal budgets)
- No multi-row transactions (every write touches exactly one row)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so the service layer
never knows it's talking to a spreadsheet. Every backend failure surfaces as
``StorageError``.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budget_tracker.config import GoogleSheetsSettings, get_settings
from budget_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_tracker.models.transaction import (
    ExpenseCategory,
    Transaction,
    TransactionType,
    User,
    UserProfile,
    utc_now,
)
from budget_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)


TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "type",
    "amount",
    "description",
    "date",
    "category",
    "created_at",
    "updated_at",
]

USER_COLUMNS = [
    "id",
    "email",
    "first_name",
    "last_name",
    "profile_image_url",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


def _cell(row: list, index: int) -> str:
    """Read a cell, treating short rows as empty trailing cells."""
    try:
        return row[index] or ""
    except IndexError:
        return ""


def _column_letter(count: int) -> str:
    """Spreadsheet column letter for a 1-based column number (A..Z, AA..)."""
    letters = ""
    while count:
        count, remainder = divmod(count - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup. Connection establishment
    is retried; individual reads and writes are not.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
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
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=1000
        )

    def get_users_sheet(self) -> gspread.Worksheet:
        """Get or create the Users worksheet."""
        return self._get_or_create_sheet(
            self._settings.users_sheet_name, USER_COLUMNS, rows=100
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row. Amounts are stored as their decimal string
    ("30.00"), never as spreadsheet numbers, so no float rounding creeps in.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            str(transaction.id),
            transaction.user_id,
            transaction.type.value,
            str(transaction.amount),
            transaction.description,
            transaction.date.isoformat(),
            transaction.category.value if transaction.category else "",
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        category = _cell(row, 6)
        return Transaction(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1),
            type=TransactionType(_cell(row, 2)),
            amount=Decimal(_cell(row, 3)),
            description=_cell(row, 4),
            date=date.fromisoformat(_cell(row, 5)),
            category=ExpenseCategory(category) if category else None,
            created_at=datetime.fromisoformat(_cell(row, 7)),
            updated_at=datetime.fromisoformat(_cell(row, 8)),
        )

    def _find_row(
        self,
        all_rows: list[list],
        transaction_id: UUID,
        user_id: str,
    ) -> Optional[int]:
        """1-based sheet row number of a transaction owned by ``user_id``."""
        # Row 1 is the header
        for idx, row in enumerate(all_rows[1:], start=2):
            if _cell(row, 0) == str(transaction_id) and _cell(row, 1) == user_id:
                return idx
        return None

    async def list_transactions(
        self,
        user_id: str,
        start_date: date,
        end_date: date,
    ) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            transactions = []
            for row in all_rows:
                if not _cell(row, 0) or _cell(row, 1) != user_id:
                    continue
                transaction = self._row_to_transaction(row)
                if start_date <= transaction.date <= end_date:
                    transactions.append(transaction)

            transactions.sort(key=lambda t: (t.created_at, t.id), reverse=True)
            return transactions
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}") from e

    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: str,
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, transaction_id, user_id)
            if idx is None:
                return None
            return self._row_to_transaction(all_rows[idx - 1])
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}") from e

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            ids = sheet.col_values(1)[1:]
            if str(transaction.id) in ids:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return transaction
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}") from e

    async def update_transaction(self, transaction: Transaction) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, transaction.id, transaction.user_id)
            if idx is None:
                return None

            last_column = _column_letter(len(TRANSACTION_COLUMNS))
            sheet.update(
                range_name=f"A{idx}:{last_column}{idx}",
                values=[self._transaction_to_row(transaction)],
                value_input_option="RAW",
            )
            return transaction
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}") from e

    async def delete_transaction(
        self,
        transaction_id: UUID,
        user_id: str,
    ) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, transaction_id, user_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}") from e


class GoogleSheetsUserStorage(UserStorageInterface):
    """Google Sheets implementation of user profile storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _user_to_row(self, user: User) -> list:
        return [
            user.id,
            user.email or "",
            user.first_name or "",
            user.last_name or "",
            user.profile_image_url or "",
            user.created_at.isoformat(),
            user.updated_at.isoformat(),
        ]

    def _row_to_user(self, row: list) -> User:
        return User(
            id=_cell(row, 0),
            email=_cell(row, 1) or None,
            first_name=_cell(row, 2) or None,
            last_name=_cell(row, 3) or None,
            profile_image_url=_cell(row, 4) or None,
            created_at=datetime.fromisoformat(_cell(row, 5)),
            updated_at=datetime.fromisoformat(_cell(row, 6)),
        )

    async def get_user(self, user_id: str) -> Optional[User]:
        try:
            sheet = self._client.get_users_sheet()
            for row in sheet.get_all_values()[1:]:
                if _cell(row, 0) == user_id:
                    return self._row_to_user(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get user: {e}") from e

    async def upsert_user(self, profile: UserProfile) -> User:
        try:
            sheet = self._client.get_users_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if _cell(row, 0) == profile.id:
                    existing = self._row_to_user(row)
                    user = existing.model_copy(
                        update={**profile.model_dump(), "updated_at": utc_now()}
                    )
                    last_column = _column_letter(len(USER_COLUMNS))
                    sheet.update(
                        range_name=f"A{idx}:{last_column}{idx}",
                        values=[self._user_to_row(user)],
                        value_input_option="RAW",
                    )
                    return user

            user = User(**profile.model_dump())
            sheet.append_row(self._user_to_row(user), value_input_option="RAW")
            return user
        except Exception as e:
            raise StorageError(f"Failed to store user: {e}") from e


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _event_to_row(self, event: AuditEvent) -> list:
        """Convert an AuditEvent to a spreadsheet row."""
        return [
            str(event.event_id),
            event.timestamp.isoformat(),
            event.event_type.value,
            event.severity.value,
            event.user_id or "",
            event.entity_type or "",
            event.entity_id or "",
            str(event.correlation_id) if event.correlation_id else "",
            event.description,
            json.dumps(event.details) if event.details else "",
            event.error_message or "",
        ]

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(self._event_to_row(event), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            events = [
                self._row_to_event(row)
                for row in sheet.get_all_values()[1:]
                if _cell(row, 7) == str(correlation_id)
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

    async def get_events_for_user(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            events = [
                self._row_to_event(row)
                for row in sheet.get_all_values()[1:]
                if _cell(row, 4) == user_id
            ]
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
