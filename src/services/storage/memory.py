"""
In-Memory Storage Implementation

The default backend, and the one the tests run against. Records are copied
on the way in and on the way out so callers can never mutate stored state
through a reference they hold.
"""

from typing import Optional, Sequence
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.loan import Loan, LoanEvent
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LoanRepository,
    NotFoundError,
)


class InMemoryLoanRepository(LoanRepository):
    """Loans and ledger rows held in dictionaries."""

    def __init__(self):
        self._loans: dict[UUID, Loan] = {}
        self._events: dict[UUID, list[LoanEvent]] = {}

    async def save_loan(self, loan: Loan) -> bool:
        self._loans[loan.id] = loan.model_copy(deep=True)
        self._events.setdefault(loan.id, [])
        return True

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        loan = self._loans.get(loan_id)
        return loan.model_copy(deep=True) if loan else None

    async def list_loans(self) -> list[Loan]:
        return [loan.model_copy(deep=True) for loan in self._loans.values()]

    async def delete_loan(self, loan_id: UUID) -> bool:
        if loan_id not in self._loans:
            return False
        del self._loans[loan_id]
        self._events.pop(loan_id, None)
        return True

    async def list_events(self, loan_id: UUID) -> list[LoanEvent]:
        events = self._events.get(loan_id, [])
        return sorted(events, key=lambda e: (e.created_at, e.sequence))

    async def append_events(self, loan_id: UUID, events: Sequence[LoanEvent]) -> bool:
        if loan_id not in self._loans:
            raise NotFoundError(f"Loan not found: {loan_id}")

        stored = self._events.setdefault(loan_id, [])
        known_ids = {event.id for event in stored}
        for event in events:
            if event.loan_id != loan_id:
                raise NotFoundError(
                    f"Event {event.id} belongs to loan {event.loan_id}, not {loan_id}"
                )
            if event.id in known_ids:
                raise DuplicateError(f"Ledger row already stored: {event.id}")
            known_ids.add(event.id)

        # All checks passed; rows are frozen so they can be shared.
        stored.extend(events)
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit events held in a list, in arrival order."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
