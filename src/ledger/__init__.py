"""
Loan ledger package.

Pure calculators (periods, interest), read projections, the injectable
clock, the error hierarchy and the LoanLedger state machine.
"""

from src.ledger.clock import Clock, FixedClock, SystemClock
from src.ledger.errors import (
    ExceedsOutstandingError,
    FutureDateError,
    ImmutableFieldError,
    InvalidPaymentError,
    LedgerError,
    LoanClosedError,
    LoanNotFoundError,
    LoanValidationError,
    OutstandingBalanceError,
)
from src.ledger.interest import interest_accrued, interest_per_period
from src.ledger.periods import count_periods
from src.ledger.projection import (
    build_detail,
    build_loan_list,
    build_timeline,
    compute_interest_state,
    due_date_status,
    summarize,
)
from src.ledger.service import LoanLedger

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # Errors
    "ExceedsOutstandingError",
    "FutureDateError",
    "ImmutableFieldError",
    "InvalidPaymentError",
    "LedgerError",
    "LoanClosedError",
    "LoanNotFoundError",
    "LoanValidationError",
    "OutstandingBalanceError",
    # Calculators
    "count_periods",
    "interest_accrued",
    "interest_per_period",
    # Projections
    "build_detail",
    "build_loan_list",
    "build_timeline",
    "compute_interest_state",
    "due_date_status",
    "summarize",
    # Ledger
    "LoanLedger",
]
