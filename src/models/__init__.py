"""
Data Models Package

This package contains all Pydantic models used by the loan ledger.
All data flowing through the system must conform to these schemas.
"""

from src.models.loan import (
    LOAN_DIRECTION_LABELS,
    LOAN_EVENT_TYPE_LABELS,
    DueDateStatus,
    InterestPeriod,
    InterestType,
    Loan,
    LoanDetail,
    LoanDirection,
    LoanEvent,
    LoanEventType,
    LoanGroup,
    LoanInterestState,
    LoanList,
    LoansSummary,
    LoanStatus,
    MonthlyCounting,
    TimelineEntry,
)
from src.models.requests import (
    AdjustmentRequest,
    LoanFilters,
    OriginateLoanRequest,
    RecordPaymentRequest,
    UpdateLoanRequest,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Loan models
    "LOAN_DIRECTION_LABELS",
    "LOAN_EVENT_TYPE_LABELS",
    "DueDateStatus",
    "InterestPeriod",
    "InterestType",
    "Loan",
    "LoanDetail",
    "LoanDirection",
    "LoanEvent",
    "LoanEventType",
    "LoanGroup",
    "LoanInterestState",
    "LoanList",
    "LoansSummary",
    "LoanStatus",
    "MonthlyCounting",
    "TimelineEntry",
    # Requests
    "AdjustmentRequest",
    "LoanFilters",
    "OriginateLoanRequest",
    "RecordPaymentRequest",
    "UpdateLoanRequest",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
