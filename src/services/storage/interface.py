"""
Abstract Storage Interface

DESIGN DECISION: The ledger only talks to storage through these interfaces.
Any backend (in-memory, Google Sheets, a real database) implements them.

The loan repository is intentionally small: loans are saved whole, ledger
rows are only ever appended, and deleting a loan deletes its rows.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
from uuid import UUID

from src.models.loan import Loan, LoanEvent
from src.models.audit import AuditEvent


class LoanRepository(ABC):
    """
    Abstract interface for loan storage operations.

    CRITICAL: append_events must store all given rows or none of them.
    """

    @abstractmethod
    async def save_loan(self, loan: Loan) -> bool:
        """
        Insert or replace a loan record.

        Args:
            loan: The loan to store

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        """
        Retrieve a loan by its ID.

        Returns:
            The loan if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_loans(self) -> list[Loan]:
        """
        List every stored loan.

        Filtering and ordering are done by the ledger's projections.
        """
        pass

    @abstractmethod
    async def delete_loan(self, loan_id: UUID) -> bool:
        """
        Delete a loan and all of its ledger rows.

        Returns:
            True if a loan was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_events(self, loan_id: UUID) -> list[LoanEvent]:
        """
        Get a loan's ledger rows.

        Returns:
            Rows in ledger order (oldest first)
        """
        pass

    @abstractmethod
    async def append_events(self, loan_id: UUID, events: Sequence[LoanEvent]) -> bool:
        """
        Append ledger rows to a loan.

        Raises:
            NotFoundError: If the loan doesn't exist
            DuplicateError: If a row id is already stored
            StorageError: If the append fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
