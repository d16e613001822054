"""
Audit Models for the Loan Ledger

Every significant action on a loan is logged for audit purposes, on top of
the loan's own event timeline. The timeline records what happened to the
money; the audit trail records who asked for what, including requests the
ledger rejected.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them,
not even when the loan they describe is deleted.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Loan lifecycle
    LOAN_ORIGINATED = "loan_originated"
    LOAN_UPDATED = "loan_updated"
    LOAN_CLOSED = "loan_closed"
    LOAN_DELETED = "loan_deleted"

    # Ledger rows
    PAYMENT_RECORDED = "payment_recorded"
    ADJUSTMENT_RECORDED = "adjustment_recorded"

    # Rejections
    OPERATION_REJECTED = "operation_rejected"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger operation, successful or not, creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'loan')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one API request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_code, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.loan_originated(loan_id, "borrow", "10000", "Alice")
        event = AuditEventBuilder.operation_rejected("close", loan_id, "outstanding_balance", msg)
    """

    @staticmethod
    def loan_originated(
        loan_id: UUID,
        direction: str,
        principal: str,
        counterparty: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_ORIGINATED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan originated: {direction} {principal} with {counterparty}",
            details={
                "direction": direction,
                "principal": principal,
                "counterparty": counterparty,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_updated(
        loan_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_UPDATED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan metadata updated: {', '.join(changed_fields) or 'no changes'}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_recorded(
        loan_id: UUID,
        principal_amount: str,
        interest_periods: int,
        interest_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=(
                f"Payment recorded: principal {principal_amount}, "
                f"{interest_periods} interest period(s) for {interest_amount}"
            ),
            details={
                "principal_amount": principal_amount,
                "interest_periods": interest_periods,
                "interest_amount": interest_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def adjustment_recorded(
        loan_id: UUID,
        amount: str,
        note: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADJUSTMENT_RECORDED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Adjustment recorded: {note}"[:500],
            details={
                "amount": amount,
                "note": note,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_closed(
        loan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_CLOSED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description="Loan closed",
            is_user_action=True,
        )

    @staticmethod
    def loan_deleted(
        loan_id: UUID,
        status: str,
        event_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan deleted ({status}) with {event_count} ledger rows",
            details={
                "status": status,
                "event_count": event_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        loan_id: Optional[UUID],
        error_code: str,
        error_message: str,
        field: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"{operation} rejected: {error_code}",
            details={
                "operation": operation,
                "field": field,
            },
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        loan_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type="loan" if loan_id else None,
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
