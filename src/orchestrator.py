"""
Application Wiring for the Loan Ledger

This module ties together all the components:
settings -> storage backend -> audit logger -> ledger -> API facade.

DESIGN DECISION: Components are built here and nowhere else. The ledger
and the API take their collaborators as constructor arguments, so tests
can assemble the same graph with a fixed clock and in-memory storage.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from src.api import LoansAPI
from src.audit import AuditLogger, configure_logging
from src.config import Settings, get_settings
from src.ledger import Clock, LoanLedger, SystemClock
from src.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLoanRepository,
    InMemoryAuditStorage,
    InMemoryLoanRepository,
    LoanRepository,
)


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything a caller needs to serve loan requests."""

    repository: LoanRepository
    audit_storage: AuditStorageInterface
    audit_logger: AuditLogger
    ledger: LoanLedger
    api: LoansAPI


def create_storage(settings: Settings) -> tuple[LoanRepository, AuditStorageInterface]:
    """Build the configured storage backend."""
    if settings.ledger.uses_google_sheets:
        client = GoogleSheetsClient(settings.google_sheets)
        return GoogleSheetsLoanRepository(client), GoogleSheetsAuditStorage(client)
    return InMemoryLoanRepository(), InMemoryAuditStorage()


def create_app_components(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> AppComponents:
    """
    Create all application components.

    Args:
        settings: Settings to use; defaults to get_settings()
        clock: Time source; defaults to the system clock in the configured timezone
    """
    settings = settings or get_settings()
    ledger_settings = settings.ledger
    configure_logging(ledger_settings.log_level)

    repository, audit_storage = create_storage(settings)
    audit_logger = AuditLogger(audit_storage)

    ledger = LoanLedger(
        repository,
        clock=clock or SystemClock(ledger_settings.local_timezone),
        audit_logger=audit_logger,
        monthly_counting=ledger_settings.monthly_counting,
        due_soon_days=ledger_settings.due_soon_days,
        allow_delete_with_balance=ledger_settings.allow_delete_with_balance,
    )

    logger.info(
        "app_components_created",
        storage_backend=ledger_settings.storage_backend.value,
        monthly_counting=ledger_settings.monthly_counting.value,
    )

    return AppComponents(
        repository=repository,
        audit_storage=audit_storage,
        audit_logger=audit_logger,
        ledger=ledger,
        api=LoansAPI(ledger, audit_logger),
    )
