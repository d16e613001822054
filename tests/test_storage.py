"""
Tests for the storage backends.

The Google Sheets adapter runs against an in-process fake worksheet, so no
credentials or network are needed.
"""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from src.models.audit import AuditEventBuilder
from src.models.loan import (
    InterestPeriod,
    InterestType,
    Loan,
    LoanDirection,
    LoanEvent,
    LoanEventType,
    LoanStatus,
)
from src.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLoanRepository,
    InMemoryAuditStorage,
    InMemoryLoanRepository,
    NotFoundError,
)
from src.services.storage.google_sheets import AUDIT_COLUMNS, EVENT_COLUMNS, LOAN_COLUMNS


NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeWorksheet:
    """The subset of gspread.Worksheet the adapter uses."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]
        self.updates = []

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def append_rows(self, values, value_input_option=None):
        for row in values:
            self.rows.append(list(row))

    def update(self, range_name, values, value_input_option=None):
        self.updates.append((range_name, value_input_option))
        start = int(range_name.lstrip("A")) - 1
        for offset, row in enumerate(values):
            self.rows[start + offset] = list(row)

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.loans = FakeWorksheet(LOAN_COLUMNS)
        self.events = FakeWorksheet(EVENT_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_loans_sheet(self):
        return self.loans

    def get_events_sheet(self):
        return self.events

    def get_audit_sheet(self):
        return self.audit


def make_loan(**overrides) -> Loan:
    data = dict(
        direction=LoanDirection.LEND,
        counterparty_name="Asha",
        principal=Decimal("2500.50"),
        interest_type=InterestType.PERCENTAGE,
        interest_rate=Decimal("1.5"),
        interest_period=InterestPeriod.WEEKLY,
        interest_start_date=date(2024, 1, 1),
        due_date=date(2024, 12, 31),
        account_id="acc-1",
        note="school fees",
        created_at=NOW,
        updated_at=NOW,
    )
    data.update(overrides)
    return Loan(**data)


def make_events(loan: Loan) -> list[LoanEvent]:
    return [
        LoanEvent(
            loan_id=loan.id,
            type=LoanEventType.DISBURSE,
            amount=loan.principal,
            account_id=loan.account_id,
            event_date=loan.interest_start_date,
            created_at=NOW,
            sequence=1,
        ),
        LoanEvent(
            loan_id=loan.id,
            type=LoanEventType.INTEREST_PAYMENT,
            amount=Decimal("75.015"),
            periods_count=2,
            transaction_id="txn-1",
            account_id="acc-1",
            event_date=date(2024, 2, 1),
            created_at=NOW,
            sequence=2,
        ),
    ]


def repositories():
    return [InMemoryLoanRepository(), GoogleSheetsLoanRepository(FakeSheetsClient())]


class TestLoanRepositories:
    """The same behaviour from every backend."""

    @pytest.mark.parametrize("repository", repositories())
    def test_save_and_get_round_trip(self, repository):
        loan = make_loan()

        async def scenario():
            await repository.save_loan(loan)
            return await repository.get_loan(loan.id)

        assert asyncio.run(scenario()) == loan

    @pytest.mark.parametrize("repository", repositories())
    def test_save_replaces_existing(self, repository):
        loan = make_loan()

        async def scenario():
            await repository.save_loan(loan)
            await repository.save_loan(loan.model_copy(update={
                "status": LoanStatus.CLOSED,
                "note": None,
            }))
            return await repository.list_loans()

        loans = asyncio.run(scenario())
        assert len(loans) == 1
        assert loans[0].status == LoanStatus.CLOSED
        assert loans[0].note is None

    @pytest.mark.parametrize("repository", repositories())
    def test_missing_loan(self, repository):
        assert asyncio.run(repository.get_loan(uuid4())) is None

    @pytest.mark.parametrize("repository", repositories())
    def test_events_round_trip_in_order(self, repository):
        loan = make_loan()
        events = make_events(loan)

        async def scenario():
            await repository.save_loan(loan)
            await repository.append_events(loan.id, list(reversed(events)))
            return await repository.list_events(loan.id)

        assert asyncio.run(scenario()) == events

    @pytest.mark.parametrize("repository", repositories())
    def test_append_to_unknown_loan(self, repository):
        loan = make_loan()

        with pytest.raises(NotFoundError):
            asyncio.run(repository.append_events(loan.id, make_events(loan)))

    @pytest.mark.parametrize("repository", repositories())
    def test_duplicate_rows_rejected_and_nothing_written(self, repository):
        loan = make_loan()
        first, second = make_events(loan)

        async def scenario():
            await repository.save_loan(loan)
            await repository.append_events(loan.id, [first])
            with pytest.raises(DuplicateError):
                await repository.append_events(loan.id, [second, first])
            return await repository.list_events(loan.id)

        assert asyncio.run(scenario()) == [first]

    @pytest.mark.parametrize("repository", repositories())
    def test_delete_removes_events_too(self, repository):
        keep = make_loan(counterparty_name="Keep")
        drop = make_loan(counterparty_name="Drop")

        async def scenario():
            for loan in (keep, drop):
                await repository.save_loan(loan)
                await repository.append_events(loan.id, make_events(loan))
            deleted = await repository.delete_loan(drop.id)
            again = await repository.delete_loan(drop.id)
            return (
                deleted,
                again,
                await repository.list_loans(),
                await repository.list_events(drop.id),
                await repository.list_events(keep.id),
            )

        deleted, again, loans, dropped_events, kept_events = asyncio.run(scenario())
        assert deleted is True
        assert again is False
        assert [loan.counterparty_name for loan in loans] == ["Keep"]
        assert dropped_events == []
        assert len(kept_events) == 2


class TestInMemoryIsolation:
    def test_returned_loans_are_copies(self):
        repository = InMemoryLoanRepository()
        loan = make_loan()

        async def scenario():
            await repository.save_loan(loan)
            fetched = await repository.get_loan(loan.id)
            fetched.note = "changed"
            return await repository.get_loan(loan.id)

        assert asyncio.run(scenario()).note == "school fees"


class TestSheetsRows:
    """Tests for the spreadsheet layout."""

    def test_loan_row_layout(self):
        client = FakeSheetsClient()
        repository = GoogleSheetsLoanRepository(client)
        loan = make_loan(due_date=None, note=None)
        asyncio.run(repository.save_loan(loan))

        row = client.loans.rows[1]
        assert len(row) == len(LOAN_COLUMNS)
        assert row[0] == str(loan.id)
        assert row[3] == "2500.50"
        assert row[8] == ""
        assert row[11] == ""

    def test_rewrite_is_one_raw_row_update(self):
        client = FakeSheetsClient()
        repository = GoogleSheetsLoanRepository(client)
        loan = make_loan(note="=SUM(A1:A2)")

        async def scenario():
            await repository.save_loan(loan)
            await repository.save_loan(loan.model_copy(update={"counterparty_name": "Asha K"}))
            return await repository.get_loan(loan.id)

        stored = asyncio.run(scenario())
        assert client.loans.updates == [("A2", "RAW")]
        assert stored.counterparty_name == "Asha K"
        assert stored.note == "=SUM(A1:A2)"

    def test_malformed_loan_rows_are_skipped(self):
        client = FakeSheetsClient()
        client.loans.rows.append(["not-a-uuid", "borrow"])
        client.loans.rows.append([])
        repository = GoogleSheetsLoanRepository(client)
        loan = make_loan()

        async def scenario():
            await repository.save_loan(loan)
            return await repository.list_loans()

        assert [l.id for l in asyncio.run(scenario())] == [loan.id]


class TestAuditStorage:
    @pytest.mark.parametrize(
        "storage",
        [InMemoryAuditStorage(), GoogleSheetsAuditStorage(FakeSheetsClient())],
    )
    def test_append_and_query(self, storage):
        loan_id = uuid4()
        other_id = uuid4()

        async def scenario():
            await storage.append_event(AuditEventBuilder.loan_originated(
                loan_id, "lend", "2500.50", "Asha"
            ))
            await storage.append_event(AuditEventBuilder.loan_closed(other_id))
            await storage.append_event(AuditEventBuilder.operation_rejected(
                "close", loan_id, "outstanding_balance", "Still owed"
            ))
            return (
                await storage.get_events_by_entity("loan", loan_id),
                await storage.get_recent_events(limit=2),
            )

        by_entity, recent = asyncio.run(scenario())
        assert len(by_entity) == 2
        assert by_entity[1].error_code == "outstanding_balance"
        assert by_entity[0].details["counterparty"] == "Asha"
        assert len(recent) == 2
