"""
Read Projections

Pure functions that turn a stored loan and its ledger rows into the views
callers read: derived interest state, the event timeline, due-date status,
filtered and grouped listings, and dashboard totals.

CRITICAL: Nothing here mutates its inputs or touches storage. Calling any of
these twice with the same inputs gives identical results.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from src.ledger.interest import interest_accrued, interest_per_period
from src.ledger.periods import count_periods
from src.models.loan import (
    LOAN_DIRECTION_LABELS,
    LOAN_EVENT_TYPE_LABELS,
    DueDateStatus,
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
from src.models.requests import LoanFilters


ZERO = Decimal("0")


def compute_interest_state(
    loan: Loan,
    events: Iterable[LoanEvent],
    as_of: date,
    monthly_counting: MonthlyCounting = MonthlyCounting.CALENDAR,
) -> LoanInterestState:
    """Derive balances and period counts from the loan's ledger rows."""
    principal_paid = ZERO
    interest_paid = ZERO
    periods_paid = 0

    for event in events:
        if event.type == LoanEventType.PRINCIPAL_PAYMENT:
            principal_paid += event.amount
        elif event.type == LoanEventType.INTEREST_PAYMENT:
            interest_paid += event.amount
            periods_paid += event.periods_count or 0

    periods_started = count_periods(
        loan.interest_start_date,
        as_of,
        loan.interest_period,
        monthly_counting,
    )
    periods_unpaid = max(periods_started - periods_paid, 0)
    per_period = interest_per_period(
        loan.principal,
        loan.interest_type,
        loan.interest_rate,
    )
    # Not clamped: an overdrawn ledger shows up as a negative balance.
    outstanding = loan.principal - principal_paid

    return LoanInterestState(
        as_of=as_of,
        periods_started=periods_started,
        periods_paid=periods_paid,
        periods_unpaid=periods_unpaid,
        interest_per_period=per_period,
        interest_accrued=interest_accrued(per_period, periods_unpaid),
        total_interest_paid=interest_paid,
        total_principal_paid=principal_paid,
        outstanding_principal=outstanding,
    )


def periods_label(count: int) -> str:
    return f"{count} period{'s' if count != 1 else ''}"


def order_events(events: Iterable[LoanEvent]) -> list[LoanEvent]:
    """Ledger order, oldest first."""
    return sorted(events, key=lambda e: (e.created_at, e.sequence))


def build_timeline(events: Iterable[LoanEvent]) -> list[TimelineEntry]:
    """
    Newest-first display rows.

    An empty ledger gives an empty timeline.
    """
    timeline = []
    for event in reversed(order_events(events)):
        is_interest = event.type == LoanEventType.INTEREST_PAYMENT
        timeline.append(TimelineEntry(
            event_id=event.id,
            type=event.type,
            label=LOAN_EVENT_TYPE_LABELS[event.type],
            amount=event.amount if event.amount > 0 else None,
            periods_count=event.periods_count if is_interest else None,
            periods_label=(
                periods_label(event.periods_count)
                if is_interest and event.periods_count else None
            ),
            note=event.note,
            transaction_id=event.transaction_id,
            event_date=event.event_date,
            created_at=event.created_at,
        ))
    return timeline


def due_date_status(
    loan: Loan,
    today: date,
    due_soon_days: int = 7,
) -> Optional[DueDateStatus]:
    """Days until due, or None when the loan has no due date."""
    if loan.due_date is None:
        return None

    days_until = (loan.due_date - today).days
    return DueDateStatus(
        due_date=loan.due_date,
        days_until_due=days_until,
        is_overdue=days_until < 0,
        is_due_soon=0 <= days_until <= due_soon_days,
    )


def build_detail(
    loan: Loan,
    events: Sequence[LoanEvent],
    as_of: date,
    monthly_counting: MonthlyCounting = MonthlyCounting.CALENDAR,
    due_soon_days: int = 7,
) -> LoanDetail:
    """Loan plus every derived view."""
    return LoanDetail(
        loan=loan,
        state=compute_interest_state(loan, events, as_of, monthly_counting),
        timeline=build_timeline(events),
        due_status=due_date_status(loan, as_of, due_soon_days),
    )


# =============================================================================
# LISTING
# =============================================================================

def filter_loans(details: Iterable[LoanDetail], filters: LoanFilters) -> list[LoanDetail]:
    """Apply direction and closed-visibility filters."""
    result = []
    for detail in details:
        if filters.direction and detail.loan.direction != filters.direction:
            continue
        if not filters.show_closed and detail.loan.status == LoanStatus.CLOSED:
            continue
        result.append(detail)
    return result


def sort_loans(details: Iterable[LoanDetail]) -> list[LoanDetail]:
    """Active loans first, then newest first."""
    by_newest = sorted(details, key=lambda d: d.loan.created_at, reverse=True)
    return sorted(by_newest, key=lambda d: d.loan.status != LoanStatus.ACTIVE)


def group_by_direction(details: Sequence[LoanDetail]) -> list[LoanGroup]:
    """Borrowed group then lent group; empty groups are left out."""
    groups = []
    for direction in (LoanDirection.BORROW, LoanDirection.LEND):
        members = [d for d in details if d.loan.direction == direction]
        if members:
            groups.append(LoanGroup(
                direction=direction,
                label=LOAN_DIRECTION_LABELS[direction],
                loans=members,
            ))
    return groups


def build_loan_list(details: Iterable[LoanDetail], filters: LoanFilters) -> LoanList:
    visible = sort_loans(filter_loans(details, filters))
    return LoanList(
        loans=visible,
        groups=group_by_direction(visible),
        total_count=len(visible),
    )


def summarize(details: Iterable[LoanDetail], as_of: date) -> LoansSummary:
    """Dashboard totals over active loans."""
    borrowed = ZERO
    lent = ZERO
    accrued = ZERO
    active = 0

    for detail in details:
        if not detail.loan.is_active:
            continue
        active += 1
        accrued += detail.state.interest_accrued
        if detail.loan.direction == LoanDirection.BORROW:
            borrowed += detail.state.outstanding_principal
        else:
            lent += detail.state.outstanding_principal

    return LoansSummary(
        as_of=as_of,
        borrowed=borrowed,
        lent=lent,
        interest_accrued=accrued,
        active_count=active,
    )
