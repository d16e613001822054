"""
Ledger Exception Hierarchy

Every rejection carries:
- code: machine-readable, stable, safe to send to API clients
- field: the request field at fault, when there is one
- status_code: the HTTP status the API facade answers with

    LedgerError
    +-- LoanValidationError        validation_error      422
    +-- InvalidPaymentError        invalid_payment       422
    +-- FutureDateError            future_date           422
    +-- ImmutableFieldError        immutable_field       422
    +-- ExceedsOutstandingError    exceeds_outstanding   409
    +-- OutstandingBalanceError    outstanding_balance   409
    +-- LoanClosedError            loan_closed           409
    +-- LoanNotFoundError          not_found             404

CRITICAL: Nothing is corrected silently. A rejected operation appends no
ledger rows.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError
from pydantic.alias_generators import to_snake


class LedgerError(Exception):
    """Base exception for all ledger rejections."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
        }


class LoanValidationError(LedgerError):
    """Input is out of range or inconsistent (e.g. non-positive principal)."""

    code = "validation_error"
    status_code = 422


class InvalidPaymentError(LedgerError):
    """Neither a principal amount nor interest periods were given."""

    code = "invalid_payment"
    status_code = 422

    def __init__(self, message: str = "Enter a principal amount or interest periods"):
        super().__init__(message, field="payment")


class FutureDateError(LedgerError):
    """Payment dated after today."""

    code = "future_date"
    status_code = 422

    def __init__(self, payment_date: date, today: date):
        self.payment_date = payment_date
        self.today = today
        super().__init__(
            f"Payment date {payment_date.isoformat()} is in the future "
            f"(today is {today.isoformat()})",
            field="payment_date",
        )


class ImmutableFieldError(LedgerError):
    """Attempt to change a loan term that is fixed at origination."""

    code = "immutable_field"
    status_code = 422

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(
            f"Cannot change loan terms after origination: {', '.join(fields)}",
            field=fields[0] if fields else None,
        )


class ExceedsOutstandingError(LedgerError):
    """Payment larger than what is still owed."""

    code = "exceeds_outstanding"
    status_code = 409

    def __init__(
        self,
        requested: Any,
        outstanding: Any,
        field: str = "principal_amount",
    ):
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"Cannot exceed outstanding ({outstanding}); requested {requested}",
            field=field,
        )


class OutstandingBalanceError(LedgerError):
    """Loan still carries principal or unpaid interest."""

    code = "outstanding_balance"
    status_code = 409

    def __init__(self, outstanding_principal: Decimal, interest_accrued: Decimal):
        self.outstanding_principal = outstanding_principal
        self.interest_accrued = interest_accrued
        super().__init__(
            f"Loan still has outstanding principal {outstanding_principal} "
            f"and accrued interest {interest_accrued}"
        )


class LoanClosedError(LedgerError):
    """Loan is closed and read-only."""

    code = "loan_closed"
    status_code = 409

    def __init__(self, loan_id: UUID):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} is closed and read-only")


class LoanNotFoundError(LedgerError):
    """Loan id unknown."""

    code = "not_found"
    status_code = 404

    def __init__(self, loan_id: Any):
        self.loan_id = loan_id
        super().__init__(f"Loan not found: {loan_id}")


def from_validation_error(error: ValidationError) -> LoanValidationError:
    """Report the first pydantic failure as a ledger validation error."""
    first = error.errors()[0]
    field = to_snake(str(first["loc"][0])) if first["loc"] else None
    return LoanValidationError(first["msg"], field=field)
