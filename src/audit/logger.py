"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged, including the
requests the ledger refuses. This provides:
1. Complete traceability of who changed which loan
2. Debugging capability
3. A record that survives loan deletion

The audit logger:
- Is async so it composes with the async ledger
- Gracefully handles failures (a broken audit sink never fails a payment)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from src.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog's stdlib loggers to stderr at the given level.

    structlog renders the JSON; stdlib only decides what gets through.
    """
    logging.basicConfig(format="%(message)s", level=level.upper())
    logging.getLogger().setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("loan_ledger.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_loan_originated(
        self,
        loan_id: UUID,
        direction: str,
        principal: str,
        counterparty: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new loan."""
        event = AuditEventBuilder.loan_originated(
            loan_id=loan_id,
            direction=direction,
            principal=principal,
            counterparty=counterparty,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_updated(
        self,
        loan_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.loan_updated(
            loan_id=loan_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_recorded(
        self,
        loan_id: UUID,
        principal_amount: str,
        interest_periods: int,
        interest_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a recorded payment (principal part, interest part, or both)."""
        event = AuditEventBuilder.payment_recorded(
            loan_id=loan_id,
            principal_amount=principal_amount,
            interest_periods=interest_periods,
            interest_amount=interest_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_adjustment_recorded(
        self,
        loan_id: UUID,
        amount: str,
        note: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.adjustment_recorded(
            loan_id=loan_id,
            amount=amount,
            note=note,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_closed(
        self,
        loan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.loan_closed(
            loan_id=loan_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_deleted(
        self,
        loan_id: UUID,
        status: str,
        event_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a deletion. The audit trail keeps the record after the loan is gone."""
        event = AuditEventBuilder.loan_deleted(
            loan_id=loan_id,
            status=status,
            event_count=event_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_operation_rejected(
        self,
        operation: str,
        loan_id: Optional[UUID],
        error_code: str,
        error_message: str,
        field: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a request the ledger refused."""
        event = AuditEventBuilder.operation_rejected(
            operation=operation,
            loan_id=loan_id,
            error_code=error_code,
            error_message=error_message,
            field=field,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        loan_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            loan_id=loan_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new request (e.g., one API call).
    Pass it through all subsequent operations.
    """
    return uuid4()
