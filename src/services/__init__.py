"""Services package."""

from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLoanRepository,
    InMemoryAuditStorage,
    InMemoryLoanRepository,
    LoanRepository,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLoanRepository",
    "InMemoryAuditStorage",
    "InMemoryLoanRepository",
    "LoanRepository",
    "NotFoundError",
    "StorageError",
]
