"""
Request Models for Ledger Operations

These are the inputs callers hand to the ledger. They check SHAPE only
(types, unknown keys). Range and business rules are enforced by the ledger
so that every failure carries a ledger error code.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BeforeValidator, ConfigDict, Field

from src.models.loan import (
    CamelModel,
    InterestPeriod,
    InterestType,
    LoanDirection,
)


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalDate = Annotated[Optional[date], BeforeValidator(_blank_to_none)]


# Terms fixed at origination, keyed by both spellings.
IMMUTABLE_LOAN_FIELDS: dict[str, str] = {
    "principal": "principal",
    "interestType": "interest_type",
    "interest_type": "interest_type",
    "interestRate": "interest_rate",
    "interest_rate": "interest_rate",
    "interestPeriod": "interest_period",
    "interest_period": "interest_period",
    "interestStartDate": "interest_start_date",
    "interest_start_date": "interest_start_date",
}


def find_immutable_fields(payload: dict[str, Any]) -> list[str]:
    """Return the locked loan terms a raw update body tries to change."""
    return sorted(
        {IMMUTABLE_LOAN_FIELDS[key] for key in payload if key in IMMUTABLE_LOAN_FIELDS}
    )


class OriginateLoanRequest(CamelModel):
    """Terms of a new loan."""
    model_config = ConfigDict(extra="forbid")

    direction: LoanDirection
    counterparty_name: str
    principal: Decimal
    account_id: str
    interest_type: InterestType = InterestType.FIXED
    interest_rate: Decimal = Decimal("0")
    interest_period: InterestPeriod = InterestPeriod.MONTHLY
    interest_start_date: date
    due_date: OptionalDate = None
    note: OptionalText = None


class RecordPaymentRequest(CamelModel):
    """
    One logical payment.

    Either part may be omitted, but at least one must be positive.
    """
    model_config = ConfigDict(extra="forbid")

    principal_amount: Optional[Decimal] = None
    interest_periods: Optional[int] = None
    payment_date: date
    account_id: str
    note: OptionalText = None
    transaction_id: OptionalText = None


class UpdateLoanRequest(CamelModel):
    """
    Metadata changes.

    Only fields the caller actually sent are applied (see model_fields_set);
    an explicit null clears due_date or note.
    """
    model_config = ConfigDict(extra="forbid")

    counterparty_name: Optional[str] = None
    due_date: OptionalDate = None
    note: OptionalText = None


class AdjustmentRequest(CamelModel):
    """An informational ledger row that leaves balances untouched."""
    model_config = ConfigDict(extra="forbid")

    note: str
    amount: Decimal = Decimal("0")
    transaction_id: OptionalText = None


class LoanFilters(CamelModel):
    """List filters. direction=None means both directions."""

    direction: Annotated[Optional[LoanDirection], BeforeValidator(_blank_to_none)] = None
    show_closed: bool = Field(
        default=False,
        description="Include closed loans"
    )
