"""
Core Data Models for the Loan Ledger

These models define the schemas for every loan record, ledger row and
computed view flowing through the system.

DESIGN DECISION: Stored data and computed data live in different models.
- Loan and LoanEvent are what storage holds.
- LoanInterestState, TimelineEntry and LoanDetail are produced fresh on
  every read by the projection functions and are never persisted.

Outstanding principal and accrued interest therefore never go stale:
they are always recomputed from the event history.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


# Amounts are Decimal internally and plain numbers on the wire.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LoanDirection(str, Enum):
    """
    Which side of the agreement the user is on.

    BORROW: the user owes the counterparty.
    LEND: the counterparty owes the user.
    """
    BORROW = "borrow"
    LEND = "lend"


class LoanStatus(str, Enum):
    """
    Loan lifecycle status.

    CRITICAL: CLOSED is terminal. There is no transition out of it.
    """
    ACTIVE = "active"
    CLOSED = "closed"


class InterestType(str, Enum):
    """How interest_rate is interpreted."""
    FIXED = "fixed"              # Currency amount per period
    PERCENTAGE = "percentage"    # Percent of principal per period


class InterestPeriod(str, Enum):
    """Cadence at which interest accrues."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class MonthlyCounting(str, Enum):
    """
    How whole monthly periods are counted.

    CALENDAR: every month boundary crossed counts, day-of-month ignored.
    ANNIVERSARY: a month counts only once the start day-of-month is reached.
    """
    CALENDAR = "calendar"
    ANNIVERSARY = "anniversary"


class LoanEventType(str, Enum):
    """Ledger row types. Rows are append-only."""
    DISBURSE = "disburse"
    PRINCIPAL_PAYMENT = "principal_payment"
    INTEREST_PAYMENT = "interest_payment"
    ADJUSTMENT = "adjustment"
    CLOSE = "close"


LOAN_DIRECTION_LABELS: dict[LoanDirection, str] = {
    LoanDirection.BORROW: "Borrowed",
    LoanDirection.LEND: "Lent",
}

LOAN_EVENT_TYPE_LABELS: dict[LoanEventType, str] = {
    LoanEventType.DISBURSE: "Disbursed",
    LoanEventType.PRINCIPAL_PAYMENT: "Principal Payment",
    LoanEventType.INTEREST_PAYMENT: "Interest Payment",
    LoanEventType.ADJUSTMENT: "Adjustment",
    LoanEventType.CLOSE: "Closed",
}


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# STORED AGGREGATE
# =============================================================================

class Loan(CamelModel):
    """
    A borrowing or lending agreement.

    CRITICAL: principal, interest_type, interest_rate, interest_period and
    interest_start_date never change after origination. Only the
    counterparty name, due date, note and status are ever rewritten.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique loan ID"
    )
    direction: LoanDirection
    counterparty_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Who the money was borrowed from or lent to"
    )
    principal: Money = Field(
        ...,
        gt=0,
        description="Original amount, excluding interest"
    )
    interest_type: InterestType
    interest_rate: Money = Field(
        ...,
        ge=0,
        description="Amount or percentage per period depending on interest_type"
    )
    interest_period: InterestPeriod
    interest_start_date: date
    due_date: Optional[date] = None
    status: LoanStatus = Field(
        default=LoanStatus.ACTIVE,
        description="Loan status"
    )
    account_id: str = Field(
        ...,
        min_length=1,
        description="Account the principal was disbursed from or into"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    created_at: datetime
    updated_at: datetime

    @model_validator(mode='after')
    def validate_dates(self) -> 'Loan':
        """Due date must fall strictly after the interest start date."""
        if self.due_date and self.due_date <= self.interest_start_date:
            raise ValueError("Due date must be after interest start date")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE


class LoanEvent(CamelModel):
    """
    An immutable ledger row.

    Ordering is defined by created_at, with sequence breaking ties between
    rows appended by the same operation.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    loan_id: UUID
    type: LoanEventType
    amount: Money = Field(
        default=Decimal("0"),
        ge=0,
        description="Money moved by this row (0 for close and most adjustments)"
    )
    periods_count: Optional[int] = Field(
        default=None,
        gt=0,
        description="Interest periods covered, interest payments only"
    )
    note: Optional[str] = Field(default=None, max_length=1000)
    transaction_id: Optional[str] = Field(
        default=None,
        description="Linked transaction in the external transactions ledger"
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Account the money moved through"
    )
    event_date: date = Field(
        ...,
        description="Business date (payment date, or start date for disbursement)"
    )
    created_at: datetime
    sequence: int = Field(
        ...,
        ge=1,
        description="Position of this row in the loan's ledger"
    )

    @model_validator(mode='after')
    def validate_periods(self) -> 'LoanEvent':
        """periods_count belongs to interest payments and nothing else."""
        if self.type == LoanEventType.INTEREST_PAYMENT:
            if self.periods_count is None:
                raise ValueError("Interest payment must cover at least one period")
        elif self.periods_count is not None:
            raise ValueError(f"periods_count is not allowed on {self.type.value} events")
        return self


# =============================================================================
# COMPUTED VIEWS
# =============================================================================

class LoanInterestState(CamelModel):
    """Derived state of a loan at one evaluation instant."""
    model_config = ConfigDict(frozen=True)

    as_of: date
    periods_started: int = Field(ge=0)
    periods_paid: int = Field(ge=0)
    periods_unpaid: int = Field(ge=0)
    interest_per_period: Money
    interest_accrued: Money
    total_interest_paid: Money
    total_principal_paid: Money
    outstanding_principal: Money

    @property
    def is_settled(self) -> bool:
        """True when nothing is owed on either principal or interest."""
        return self.outstanding_principal == 0 and self.interest_accrued == 0


class DueDateStatus(CamelModel):
    """Where a loan stands relative to its due date."""
    model_config = ConfigDict(frozen=True)

    due_date: date
    days_until_due: int
    is_overdue: bool
    is_due_soon: bool


class TimelineEntry(CamelModel):
    """One row of the event timeline, ready for display."""
    model_config = ConfigDict(frozen=True)

    event_id: UUID
    type: LoanEventType
    label: str
    amount: Optional[Money] = None
    periods_count: Optional[int] = None
    periods_label: Optional[str] = None
    note: Optional[str] = None
    transaction_id: Optional[str] = None
    event_date: date
    created_at: datetime


class LoanDetail(CamelModel):
    """
    A loan together with everything computed from its history.

    The timeline is newest first.
    """

    loan: Loan
    state: LoanInterestState
    timeline: list[TimelineEntry] = Field(default_factory=list)
    due_status: Optional[DueDateStatus] = None

    def to_api_dict(self) -> dict[str, Any]:
        """Flatten into a single camelCase JSON object."""
        body = self.loan.model_dump(mode="json", by_alias=True)
        body.update(self.state.model_dump(mode="json", by_alias=True))
        body["dueStatus"] = (
            self.due_status.model_dump(mode="json", by_alias=True)
            if self.due_status else None
        )
        body["events"] = [
            entry.model_dump(mode="json", by_alias=True)
            for entry in self.timeline
        ]
        return body


class LoanGroup(CamelModel):
    """Loans sharing a direction, for grouped listings."""

    direction: LoanDirection
    label: str
    loans: list[LoanDetail] = Field(default_factory=list)


class LoanList(CamelModel):
    """Result of listing loans with filters applied."""

    loans: list[LoanDetail] = Field(default_factory=list)
    groups: list[LoanGroup] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "loans": [detail.to_api_dict() for detail in self.loans],
            "groups": [
                {
                    "direction": group.direction.value,
                    "label": group.label,
                    "loanIds": [str(detail.loan.id) for detail in group.loans],
                }
                for group in self.groups
            ],
            "totalCount": self.total_count,
        }


class LoansSummary(CamelModel):
    """Dashboard totals across active loans."""
    model_config = ConfigDict(frozen=True)

    as_of: date
    borrowed: Money = Field(description="Outstanding principal the user owes")
    lent: Money = Field(description="Outstanding principal owed to the user")
    interest_accrued: Money = Field(description="Unpaid interest across active loans")
    active_count: int = Field(ge=0)
