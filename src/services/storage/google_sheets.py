"""
Google Sheets Storage Implementation

Google Sheets is an optional backend for people who want to see their loans
in a spreadsheet. Three worksheets are used: one row per loan, one row per
ledger event, one row per audit event.

TRADEOFFS:
- No transactions. Ledger rows of one operation go out in a single
  append_rows call; everything else relies on careful ordering.
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so the ledger never
knows which backend it is running on.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import get_settings
from src.config.settings import GoogleSheetsSettings
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.loan import (
    InterestPeriod,
    InterestType,
    Loan,
    LoanDirection,
    LoanEvent,
    LoanEventType,
    LoanStatus,
)
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LoanRepository,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Loans sheet
LOAN_COLUMNS = [
    "id",
    "direction",
    "counterparty_name",
    "principal",
    "interest_type",
    "interest_rate",
    "interest_period",
    "interest_start_date",
    "due_date",
    "status",
    "account_id",
    "note",
    "created_at",
    "updated_at",
]

# Column mappings for LoanEvents sheet
EVENT_COLUMNS = [
    "id",
    "loan_id",
    "type",
    "amount",
    "periods_count",
    "note",
    "transaction_id",
    "account_id",
    "event_date",
    "created_at",
    "sequence",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
    "is_user_action",
]


def _safe_getter(row: list):
    """Cell accessor tolerating short rows."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
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
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_loans_sheet(self) -> gspread.Worksheet:
        """Get or create the Loans worksheet."""
        return self._get_or_create_sheet(
            self._settings.loans_sheet_name, LOAN_COLUMNS, rows=1000
        )

    def get_events_sheet(self) -> gspread.Worksheet:
        """Get or create the LoanEvents worksheet."""
        return self._get_or_create_sheet(
            self._settings.events_sheet_name, EVENT_COLUMNS, rows=5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsLoanRepository(LoanRepository):
    """
    Google Sheets implementation of loan storage.

    Loans are stored one per row in the Loans sheet; ledger rows one per
    row in the LoanEvents sheet, keyed by loan_id.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _loan_to_row(self, loan: Loan) -> list:
        """Convert a Loan to a spreadsheet row."""
        return [
            str(loan.id),
            loan.direction.value,
            loan.counterparty_name,
            str(loan.principal),
            loan.interest_type.value,
            str(loan.interest_rate),
            loan.interest_period.value,
            loan.interest_start_date.isoformat(),
            loan.due_date.isoformat() if loan.due_date else "",
            loan.status.value,
            loan.account_id,
            loan.note or "",
            loan.created_at.isoformat(),
            loan.updated_at.isoformat(),
        ]

    def _row_to_loan(self, row: list) -> Loan:
        """Convert a spreadsheet row to a Loan."""
        safe_get = _safe_getter(row)

        return Loan(
            id=UUID(safe_get(0)),
            direction=LoanDirection(safe_get(1)),
            counterparty_name=safe_get(2),
            principal=Decimal(safe_get(3)),
            interest_type=InterestType(safe_get(4)),
            interest_rate=Decimal(safe_get(5, "0")),
            interest_period=InterestPeriod(safe_get(6)),
            interest_start_date=date.fromisoformat(safe_get(7)),
            due_date=date.fromisoformat(safe_get(8)) if safe_get(8) else None,
            status=LoanStatus(safe_get(9)),
            account_id=safe_get(10),
            note=safe_get(11) or None,
            created_at=datetime.fromisoformat(safe_get(12)),
            updated_at=datetime.fromisoformat(safe_get(13)),
        )

    def _event_to_row(self, event: LoanEvent) -> list:
        """Convert a LoanEvent to a spreadsheet row."""
        return [
            str(event.id),
            str(event.loan_id),
            event.type.value,
            str(event.amount),
            str(event.periods_count) if event.periods_count is not None else "",
            event.note or "",
            event.transaction_id or "",
            event.account_id or "",
            event.event_date.isoformat(),
            event.created_at.isoformat(),
            str(event.sequence),
        ]

    def _row_to_event(self, row: list) -> LoanEvent:
        """Convert a spreadsheet row to a LoanEvent."""
        safe_get = _safe_getter(row)

        return LoanEvent(
            id=UUID(safe_get(0)),
            loan_id=UUID(safe_get(1)),
            type=LoanEventType(safe_get(2)),
            amount=Decimal(safe_get(3, "0")),
            periods_count=int(safe_get(4)) if safe_get(4) else None,
            note=safe_get(5) or None,
            transaction_id=safe_get(6) or None,
            account_id=safe_get(7) or None,
            event_date=date.fromisoformat(safe_get(8)),
            created_at=datetime.fromisoformat(safe_get(9)),
            sequence=int(safe_get(10, "1")),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_loan(self, loan: Loan) -> bool:
        """Insert a new loan row or rewrite the existing one in place."""
        try:
            sheet = self._client.get_loans_sheet()
            new_row = self._loan_to_row(loan)
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == str(loan.id):
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[new_row],
                        value_input_option="RAW",
                    )
                    return True

            sheet.append_row(new_row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save loan: {e}")

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        """Retrieve a loan by its ID."""
        try:
            sheet = self._client.get_loans_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(loan_id):
                    return self._row_to_loan(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get loan: {e}")

    async def list_loans(self) -> list[Loan]:
        """List all loans, skipping rows that no longer parse."""
        try:
            sheet = self._client.get_loans_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list loans: {e}")

        loans = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                loans.append(self._row_to_loan(row))
            except (ValueError, TypeError) as e:
                logger.warning("malformed_loan_row", loan_id=row[0], error=str(e))
        return loans

    async def delete_loan(self, loan_id: UUID) -> bool:
        """Delete a loan row and all of its ledger rows."""
        try:
            loans_sheet = self._client.get_loans_sheet()
            loan_rows = [
                idx
                for idx, row in enumerate(loans_sheet.get_all_values()[1:], start=2)
                if row and row[0] == str(loan_id)
            ]
            if not loan_rows:
                return False

            # Rows shift up on deletion, so delete bottom-up.
            events_sheet = self._client.get_events_sheet()
            event_rows = [
                idx
                for idx, row in enumerate(events_sheet.get_all_values()[1:], start=2)
                if len(row) > 1 and row[1] == str(loan_id)
            ]
            for idx in sorted(event_rows, reverse=True):
                events_sheet.delete_rows(idx)
            for idx in sorted(loan_rows, reverse=True):
                loans_sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete loan: {e}")

    async def list_events(self, loan_id: UUID) -> list[LoanEvent]:
        """Get a loan's ledger rows, oldest first."""
        try:
            sheet = self._client.get_events_sheet()
            events = [
                self._row_to_event(row)
                for row in sheet.get_all_values()[1:]
                if len(row) > 1 and row[1] == str(loan_id)
            ]
        except Exception as e:
            raise StorageError(f"Failed to get loan events: {e}")

        events.sort(key=lambda e: (e.created_at, e.sequence))
        return events

    async def append_events(self, loan_id: UUID, events: Sequence[LoanEvent]) -> bool:
        """Append all rows of one operation in a single call."""
        if await self.get_loan(loan_id) is None:
            raise NotFoundError(f"Loan not found: {loan_id}")

        existing_ids = {str(e.id) for e in await self.list_events(loan_id)}
        for event in events:
            if event.loan_id != loan_id:
                raise NotFoundError(
                    f"Event {event.id} belongs to loan {event.loan_id}, not {loan_id}"
                )
            if str(event.id) in existing_ids:
                raise DuplicateError(f"Ledger row already stored: {event.id}")
            existing_ids.add(str(event.id))

        try:
            sheet = self._client.get_events_sheet()
            sheet.append_rows(
                [self._event_to_row(event) for event in events],
                value_input_option="RAW",
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to append loan events: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_code=safe_get(9) or None,
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, TypeError) as e:
                logger.warning("malformed_audit_row", event_id=row[0], error=str(e))
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
