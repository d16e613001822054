"""
Loan Ledger

The state machine that owns loans and their event history.

    originate -> ACTIVE --close--> CLOSED (terminal)
                   |
                   +-- record_payment / record_adjustment / update_metadata

DESIGN DECISION: Nothing derived is ever stored. Each operation reads the
loan and its ledger rows, computes the current interest state with the
injected clock, validates against it, and only then appends new rows.

CRITICAL:
- One operation appends all of its rows in a single repository call, after
  every check has passed. A rejected operation appends nothing.
- Mutations on the same loan are serialized with a per-loan asyncio.Lock,
  so two concurrent payments can never both read the same outstanding
  balance.
"""

import asyncio
import weakref
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from src.audit import AuditLogger
from src.ledger.clock import Clock, SystemClock
from src.ledger.errors import (
    ExceedsOutstandingError,
    FutureDateError,
    InvalidPaymentError,
    LedgerError,
    LoanClosedError,
    LoanNotFoundError,
    LoanValidationError,
    OutstandingBalanceError,
    from_validation_error,
)
from src.ledger.projection import (
    build_detail,
    build_loan_list,
    compute_interest_state,
    summarize,
)
from src.models.loan import (
    Loan,
    LoanDetail,
    LoanEvent,
    LoanEventType,
    LoanList,
    LoansSummary,
    LoanStatus,
    MonthlyCounting,
)
from src.models.requests import (
    AdjustmentRequest,
    LoanFilters,
    OriginateLoanRequest,
    RecordPaymentRequest,
    UpdateLoanRequest,
)
from src.services.storage.interface import LoanRepository, StorageError


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def _build(model_cls: type[BaseModel], **data: Any) -> Any:
    """Construct a model, reporting schema failures as ledger validation errors."""
    try:
        return model_cls(**data)
    except ValidationError as e:
        raise from_validation_error(e) from e


def _next_sequence(events: Sequence[LoanEvent]) -> int:
    return max((event.sequence for event in events), default=0) + 1


class LoanLedger:
    """
    Loan operations over a LoanRepository.

    Usage:
        ledger = LoanLedger(InMemoryLoanRepository(), clock=FixedClock())
        detail = await ledger.originate(OriginateLoanRequest(...))
        detail = await ledger.record_payment(detail.loan.id, RecordPaymentRequest(...))
    """

    def __init__(
        self,
        repository: LoanRepository,
        clock: Optional[Clock] = None,
        audit_logger: Optional[AuditLogger] = None,
        monthly_counting: MonthlyCounting = MonthlyCounting.CALENDAR,
        due_soon_days: int = 7,
        allow_delete_with_balance: bool = True,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._audit_logger = audit_logger
        self._monthly_counting = monthly_counting
        self._due_soon_days = due_soon_days
        self._allow_delete_with_balance = allow_delete_with_balance
        # Entries vanish once no operation holds or waits on the lock.
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _lock_for(self, loan_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(loan_id, asyncio.Lock())

    def _detail(self, loan: Loan, events: Sequence[LoanEvent]) -> LoanDetail:
        return build_detail(
            loan,
            events,
            self._clock.today(),
            self._monthly_counting,
            self._due_soon_days,
        )

    async def _load(self, loan_id: UUID) -> tuple[Loan, list[LoanEvent]]:
        loan = await self._repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan, await self._repository.list_events(loan_id)

    async def _load_active(self, loan_id: UUID) -> tuple[Loan, list[LoanEvent]]:
        loan, events = await self._load(loan_id)
        if loan.status == LoanStatus.CLOSED:
            raise LoanClosedError(loan_id)
        return loan, events

    async def _rejected(
        self,
        operation: str,
        loan_id: Optional[UUID],
        error: LedgerError,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.info(
            "ledger_operation_rejected",
            operation=operation,
            loan_id=str(loan_id) if loan_id else None,
            code=error.code,
            field=error.field,
        )
        if self._audit_logger:
            await self._audit_logger.log_operation_rejected(
                operation=operation,
                loan_id=loan_id,
                error_code=error.code,
                error_message=error.message,
                field=error.field,
                correlation_id=correlation_id,
            )

    def _new_loan(self, request: OriginateLoanRequest) -> Loan:
        if request.principal <= 0:
            raise LoanValidationError(
                "Principal must be greater than zero", field="principal"
            )
        if request.interest_rate < 0:
            raise LoanValidationError(
                "Interest rate cannot be negative", field="interest_rate"
            )
        if not request.counterparty_name:
            raise LoanValidationError(
                "Counterparty name is required", field="counterparty_name"
            )
        if not request.account_id:
            raise LoanValidationError("Account is required", field="account_id")
        if request.due_date and request.due_date <= request.interest_start_date:
            raise LoanValidationError(
                "Due date must be after interest start date", field="due_date"
            )

        now = self._clock.now()
        return _build(
            Loan,
            direction=request.direction,
            counterparty_name=request.counterparty_name,
            principal=request.principal,
            interest_type=request.interest_type,
            interest_rate=request.interest_rate,
            interest_period=request.interest_period,
            interest_start_date=request.interest_start_date,
            due_date=request.due_date,
            account_id=request.account_id,
            note=request.note,
            created_at=now,
            updated_at=now,
        )

    def _payment_events(
        self,
        loan: Loan,
        events: Sequence[LoanEvent],
        request: RecordPaymentRequest,
    ) -> list[LoanEvent]:
        """Validate a payment against current state and build its ledger rows."""
        principal_amount = request.principal_amount or ZERO
        periods = request.interest_periods or 0

        if principal_amount < 0:
            raise LoanValidationError(
                "Principal amount cannot be negative", field="principal_amount"
            )
        if periods < 0:
            raise LoanValidationError(
                "Interest periods cannot be negative", field="interest_periods"
            )
        if principal_amount == 0 and periods == 0:
            raise InvalidPaymentError()
        if not request.account_id:
            raise LoanValidationError("Account is required", field="account_id")

        today = self._clock.today()
        if request.payment_date > today:
            raise FutureDateError(request.payment_date, today)

        # Balances are computed just in time from the event history.
        state = compute_interest_state(loan, events, today, self._monthly_counting)
        if principal_amount > state.outstanding_principal:
            raise ExceedsOutstandingError(
                principal_amount, state.outstanding_principal
            )
        if periods > state.periods_unpaid:
            raise ExceedsOutstandingError(
                periods, state.periods_unpaid, field="interest_periods"
            )

        now = self._clock.now()
        sequence = _next_sequence(events)
        new_events = []
        if principal_amount > 0:
            new_events.append(_build(
                LoanEvent,
                loan_id=loan.id,
                type=LoanEventType.PRINCIPAL_PAYMENT,
                amount=principal_amount,
                note=request.note,
                transaction_id=request.transaction_id,
                account_id=request.account_id,
                event_date=request.payment_date,
                created_at=now,
                sequence=sequence,
            ))
            sequence += 1
        if periods > 0:
            new_events.append(_build(
                LoanEvent,
                loan_id=loan.id,
                type=LoanEventType.INTEREST_PAYMENT,
                amount=state.interest_per_period * periods,
                periods_count=periods,
                note=request.note,
                transaction_id=request.transaction_id,
                account_id=request.account_id,
                event_date=request.payment_date,
                created_at=now,
                sequence=sequence,
            ))
        return new_events

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def originate(
        self,
        request: OriginateLoanRequest,
        correlation_id: Optional[UUID] = None,
    ) -> LoanDetail:
        """
        Create an active loan and its disbursement row.

        Raises:
            LoanValidationError: principal <= 0, negative rate, missing
                counterparty or account, due date not after start date
        """
        try:
            loan = self._new_loan(request)
        except LedgerError as e:
            await self._rejected("originate", None, e, correlation_id)
            raise

        disburse = LoanEvent(
            loan_id=loan.id,
            type=LoanEventType.DISBURSE,
            amount=loan.principal,
            account_id=loan.account_id,
            event_date=loan.interest_start_date,
            created_at=loan.created_at,
            sequence=1,
        )

        async with self._lock_for(loan.id):
            await self._repository.save_loan(loan)
            try:
                await self._repository.append_events(loan.id, [disburse])
            except StorageError:
                # A loan without its disbursement row must not survive.
                await self._repository.delete_loan(loan.id)
                raise

        logger.info("loan_originated", loan_id=str(loan.id), direction=loan.direction.value)
        if self._audit_logger:
            await self._audit_logger.log_loan_originated(
                loan_id=loan.id,
                direction=loan.direction.value,
                principal=str(loan.principal),
                counterparty=loan.counterparty_name,
                correlation_id=correlation_id,
            )
        return self._detail(loan, [disburse])

    async def record_payment(
        self,
        loan_id: UUID,
        request: RecordPaymentRequest,
        correlation_id: Optional[UUID] = None,
    ) -> LoanDetail:
        """
        Apply one logical payment: a principal part, an interest part, or both.

        Both parts are appended together or not at all.

        Raises:
            LoanNotFoundError, LoanClosedError, LoanValidationError,
            InvalidPaymentError, FutureDateError, ExceedsOutstandingError
        """
        async with self._lock_for(loan_id):
            try:
                loan, events = await self._load_active(loan_id)
                new_events = self._payment_events(loan, events, request)
            except LedgerError as e:
                await self._rejected("record_payment", loan_id, e, correlation_id)
                raise

            await self._repository.append_events(loan_id, new_events)
            events = [*events, *new_events]

        principal_paid = sum(
            (e.amount for e in new_events if e.type == LoanEventType.PRINCIPAL_PAYMENT),
            ZERO,
        )
        interest_paid = sum(
            (e.amount for e in new_events if e.type == LoanEventType.INTEREST_PAYMENT),
            ZERO,
        )
        logger.info(
            "payment_recorded",
            loan_id=str(loan_id),
            rows=len(new_events),
        )
        if self._audit_logger:
            await self._audit_logger.log_payment_recorded(
                loan_id=loan_id,
                principal_amount=str(principal_paid),
                interest_periods=request.interest_periods or 0,
                interest_amount=str(interest_paid),
                correlation_id=correlation_id,
            )
        return self._detail(loan, events)

    async def close(
        self,
        loan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> LoanDetail:
        """
        Close a fully settled loan. Closing is terminal.

        Raises:
            LoanNotFoundError, LoanClosedError,
            OutstandingBalanceError: principal or accrued interest remains
        """
        async with self._lock_for(loan_id):
            try:
                loan, events = await self._load_active(loan_id)
                state = compute_interest_state(
                    loan, events, self._clock.today(), self._monthly_counting
                )
                if not state.is_settled:
                    raise OutstandingBalanceError(
                        state.outstanding_principal, state.interest_accrued
                    )
            except LedgerError as e:
                await self._rejected("close", loan_id, e, correlation_id)
                raise

            now = self._clock.now()
            closed = loan.model_copy(update={"status": LoanStatus.CLOSED, "updated_at": now})
            close_event = LoanEvent(
                loan_id=loan_id,
                type=LoanEventType.CLOSE,
                event_date=self._clock.today(),
                created_at=now,
                sequence=_next_sequence(events),
            )

            await self._repository.save_loan(closed)
            try:
                await self._repository.append_events(loan_id, [close_event])
            except StorageError:
                await self._repository.save_loan(loan)
                raise
            events = [*events, close_event]

        logger.info("loan_closed", loan_id=str(loan_id))
        if self._audit_logger:
            await self._audit_logger.log_loan_closed(
                loan_id=loan_id,
                correlation_id=correlation_id,
            )
        return self._detail(closed, events)

    async def update_metadata(
        self,
        loan_id: UUID,
        update: UpdateLoanRequest,
        correlation_id: Optional[UUID] = None,
    ) -> LoanDetail:
        """
        Change counterparty name, due date or note.

        Only fields present in the request are applied; an explicit None
        clears due_date or note. Financial terms cannot be reached through
        this method at all.
        """
        async with self._lock_for(loan_id):
            try:
                loan, events = await self._load_active(loan_id)
                changes: dict[str, Any] = {}
                sent = update.model_fields_set

                if "counterparty_name" in sent:
                    if not update.counterparty_name:
                        raise LoanValidationError(
                            "Counterparty name is required", field="counterparty_name"
                        )
                    changes["counterparty_name"] = update.counterparty_name
                if "due_date" in sent:
                    if update.due_date and update.due_date <= loan.interest_start_date:
                        raise LoanValidationError(
                            "Due date must be after interest start date", field="due_date"
                        )
                    changes["due_date"] = update.due_date
                if "note" in sent:
                    changes["note"] = update.note

                changed = sorted(
                    name for name, value in changes.items()
                    if getattr(loan, name) != value
                )
                if changed:
                    data = loan.model_dump()
                    data.update(changes)
                    data["updated_at"] = self._clock.now()
                    updated = _build(Loan, **data)
                else:
                    updated = loan
            except LedgerError as e:
                await self._rejected("update_metadata", loan_id, e, correlation_id)
                raise

            if changed:
                await self._repository.save_loan(updated)

        if self._audit_logger:
            await self._audit_logger.log_loan_updated(
                loan_id=loan_id,
                changed_fields=changed,
                correlation_id=correlation_id,
            )
        return self._detail(updated, events)

    async def record_adjustment(
        self,
        loan_id: UUID,
        request: AdjustmentRequest,
        correlation_id: Optional[UUID] = None,
    ) -> LoanDetail:
        """
        Append an informational adjustment row.

        Adjustments document corrections agreed with the counterparty; they
        do not change derived balances.
        """
        async with self._lock_for(loan_id):
            try:
                loan, events = await self._load_active(loan_id)
                if not request.note:
                    raise LoanValidationError(
                        "An adjustment needs a note", field="note"
                    )
                if request.amount < 0:
                    raise LoanValidationError(
                        "Adjustment amount cannot be negative", field="amount"
                    )
                now = self._clock.now()
                adjustment = _build(
                    LoanEvent,
                    loan_id=loan_id,
                    type=LoanEventType.ADJUSTMENT,
                    amount=request.amount,
                    note=request.note,
                    transaction_id=request.transaction_id,
                    account_id=loan.account_id,
                    event_date=self._clock.today(),
                    created_at=now,
                    sequence=_next_sequence(events),
                )
            except LedgerError as e:
                await self._rejected("record_adjustment", loan_id, e, correlation_id)
                raise

            await self._repository.append_events(loan_id, [adjustment])
            events = [*events, adjustment]

        if self._audit_logger:
            await self._audit_logger.log_adjustment_recorded(
                loan_id=loan_id,
                amount=str(request.amount),
                note=request.note,
                correlation_id=correlation_id,
            )
        return self._detail(loan, events)

    async def delete(
        self,
        loan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a loan and its whole event history. Irreversible.

        Active loans with a balance are deletable unless the ledger was built
        with allow_delete_with_balance=False.
        """
        async with self._lock_for(loan_id):
            try:
                loan, events = await self._load(loan_id)
                if not self._allow_delete_with_balance and loan.is_active:
                    state = compute_interest_state(
                        loan, events, self._clock.today(), self._monthly_counting
                    )
                    if not state.is_settled:
                        raise OutstandingBalanceError(
                            state.outstanding_principal, state.interest_accrued
                        )
            except LedgerError as e:
                await self._rejected("delete", loan_id, e, correlation_id)
                raise

            await self._repository.delete_loan(loan_id)

        logger.info("loan_deleted", loan_id=str(loan_id), rows=len(events))
        if self._audit_logger:
            await self._audit_logger.log_loan_deleted(
                loan_id=loan_id,
                status=loan.status.value,
                event_count=len(events),
                correlation_id=correlation_id,
            )

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get(self, loan_id: UUID) -> LoanDetail:
        """Loan with derived interest state, due status and timeline."""
        loan, events = await self._load(loan_id)
        return self._detail(loan, events)

    async def _all_details(self) -> list[LoanDetail]:
        details = []
        for loan in await self._repository.list_loans():
            events = await self._repository.list_events(loan.id)
            details.append(self._detail(loan, events))
        return details

    async def list_loans(self, filters: Optional[LoanFilters] = None) -> LoanList:
        """Filtered, sorted and grouped loans."""
        return build_loan_list(await self._all_details(), filters or LoanFilters())

    async def summary(self) -> LoansSummary:
        """Dashboard totals over active loans."""
        return summarize(await self._all_details(), self._clock.today())
