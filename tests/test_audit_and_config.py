"""Tests for the audit logger, settings and application wiring."""

import asyncio
from datetime import date, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.audit import AuditLogger, create_correlation_id
from src.config import (
    LedgerSettings,
    Settings,
    StorageBackend,
    get_settings,
    validate_all_settings,
)
from src.ledger import FixedClock, SystemClock
from src.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from src.models.loan import MonthlyCounting
from src.orchestrator import create_app_components
from src.services.storage import (
    InMemoryAuditStorage,
    InMemoryLoanRepository,
    StorageError,
)


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("audit sheet unavailable")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "LOAN_LEDGER_STORAGE_BACKEND",
        "LOAN_LEDGER_MONTHLY_COUNTING",
        "LOAN_LEDGER_DUE_SOON_DAYS",
        "LOAN_LEDGER_ALLOW_DELETE_WITH_BALANCE",
        "LOAN_LEDGER_LOG_LEVEL",
        "LOAN_LEDGER_TIMEZONE",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_persists_events(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)
        loan_id = uuid4()
        correlation_id = create_correlation_id()

        async def scenario():
            await audit_logger.log_payment_recorded(
                loan_id=loan_id,
                principal_amount="500",
                interest_periods=1,
                interest_amount="100",
                correlation_id=correlation_id,
            )
            return await storage.get_recent_events()

        events = asyncio.run(scenario())
        assert events[0].event_type == AuditEventType.PAYMENT_RECORDED
        assert events[0].correlation_id == correlation_id
        assert events[0].details["interest_periods"] == 1

    def test_storage_failure_does_not_raise(self):
        audit_logger = AuditLogger(FailingAuditStorage())

        async def scenario():
            return await audit_logger.log_loan_closed(uuid4())

        # Returns None; the failure is only logged.
        assert asyncio.run(scenario()) is None

    def test_log_returns_false_on_storage_failure(self):
        audit_logger = AuditLogger(FailingAuditStorage())

        async def scenario():
            return await audit_logger.log(AuditEventBuilder.loan_closed(uuid4()))

        assert asyncio.run(scenario()) is False

    def test_local_only_logger(self):
        audit_logger = AuditLogger()

        async def scenario():
            await audit_logger.log_error("RuntimeError", "boom", details={"step": "close"})
            await audit_logger.log_storage_error("save_loan", "timeout")
            return True

        assert asyncio.run(scenario())
        assert audit_logger.storage is None

    def test_deleted_loans_keep_their_trail(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)
        loan_id = uuid4()

        async def scenario():
            await audit_logger.log_loan_deleted(loan_id, status="active", event_count=3)
            return await storage.get_events_by_entity("loan", loan_id)

        events = asyncio.run(scenario())
        assert events[0].severity == AuditSeverity.WARNING
        assert events[0].details["event_count"] == 3


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_defaults(self):
        settings = LedgerSettings()
        assert settings.storage_backend == StorageBackend.MEMORY
        assert settings.monthly_counting == MonthlyCounting.CALENDAR
        assert settings.due_soon_days == 7
        assert settings.allow_delete_with_balance is True
        assert settings.log_level == "INFO"
        assert not settings.uses_google_sheets

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LOAN_LEDGER_MONTHLY_COUNTING", "anniversary")
        monkeypatch.setenv("LOAN_LEDGER_DUE_SOON_DAYS", "3")
        monkeypatch.setenv("LOAN_LEDGER_ALLOW_DELETE_WITH_BALANCE", "false")
        monkeypatch.setenv("LOAN_LEDGER_LOG_LEVEL", "debug")

        settings = LedgerSettings()
        assert settings.monthly_counting == MonthlyCounting.ANNIVERSARY
        assert settings.due_soon_days == 3
        assert settings.allow_delete_with_balance is False
        assert settings.log_level == "DEBUG"

    def test_rejects_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("LOAN_LEDGER_LOG_LEVEL", "loud")
        with pytest.raises(ValidationError):
            LedgerSettings()

    def test_timezone_defaults_to_utc(self):
        settings = LedgerSettings()
        assert settings.timezone == "UTC"
        assert settings.local_timezone == timezone.utc

    def test_rejects_unknown_timezone(self, monkeypatch):
        monkeypatch.setenv("LOAN_LEDGER_TIMEZONE", "Mars/Olympus_Mons")
        with pytest.raises(ValidationError):
            LedgerSettings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_validate_all_settings_memory_backend(self):
        results = validate_all_settings()
        assert results == {"ledger": True}

    def test_validate_all_settings_reports_missing_sheets_config(self, monkeypatch):
        monkeypatch.setenv("LOAN_LEDGER_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()
        assert results["ledger"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


class TestAppComponents:
    def test_wires_memory_backend(self, monkeypatch):
        monkeypatch.setenv("LOAN_LEDGER_ALLOW_DELETE_WITH_BALANCE", "false")
        components = create_app_components(Settings(), clock=FixedClock.on(date(2024, 3, 15)))

        assert isinstance(components.repository, InMemoryLoanRepository)
        assert isinstance(components.audit_storage, InMemoryAuditStorage)
        assert components.ledger.clock.today() == date(2024, 3, 15)

        async def scenario():
            created = await components.api.create({
                "direction": "borrow",
                "counterpartyName": "Ravi",
                "principal": 1000,
                "accountId": "acc-1",
                "interestStartDate": "2024-03-01",
            })
            deleted = await components.api.delete(created.body["id"])
            return created, deleted, await components.audit_storage.get_recent_events()

        created, deleted, events = asyncio.run(scenario())
        assert created.status_code == 201
        # Setting forbids deleting a loan that still has principal outstanding
        assert deleted.status_code == 409
        assert {e.event_type for e in events} == {
            AuditEventType.LOAN_ORIGINATED,
            AuditEventType.OPERATION_REJECTED,
        }

    def test_system_clock_uses_configured_timezone(self):
        components = create_app_components(Settings())
        assert isinstance(components.ledger.clock, SystemClock)
        assert components.ledger.clock.tz == timezone.utc
