"""
Loans API

A transport-neutral facade over LoanLedger. Each method is one endpoint:

    POST   /loans                    create          201
    GET    /loans/{id}               get             200
    GET    /loans?direction=&showClosed=
                                     list_loans      200
    GET    /loans/summary            summary         200
    PATCH  /loans/{id}               update          200
    POST   /loans/{id}/payments      record_payment  200
    POST   /loans/{id}/adjustments   record_adjustment 200
    POST   /loans/{id}/close         close           200
    DELETE /loans/{id}               delete          204

Methods take raw JSON-like bodies and path strings, and return an
ApiResponse. Ledger rejections become their error's status code; malformed
bodies become 422; storage failures become 500. Anything else is audited
as a system error and re-raised.

DESIGN DECISION: Locked loan terms are refused here, at the boundary,
before the body is even parsed. The ledger's update method has no way to
express a change to them.
"""

from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from src.audit import AuditLogger, create_correlation_id
from src.ledger.errors import (
    ImmutableFieldError,
    LedgerError,
    LoanNotFoundError,
    from_validation_error,
)
from src.ledger.service import LoanLedger
from src.models.requests import (
    AdjustmentRequest,
    LoanFilters,
    OriginateLoanRequest,
    RecordPaymentRequest,
    UpdateLoanRequest,
    find_immutable_fields,
)
from src.services.storage.interface import StorageError


logger = structlog.get_logger(__name__)


class ApiResponse(BaseModel):
    """Status code plus JSON body (None for 204)."""

    status_code: int
    body: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _error_response(error: LedgerError) -> ApiResponse:
    return ApiResponse(status_code=error.status_code, body={"error": error.to_dict()})


def _parse_loan_id(loan_id: str) -> UUID:
    try:
        return UUID(str(loan_id))
    except ValueError:
        raise LoanNotFoundError(loan_id)


class LoansAPI:
    """HTTP-shaped entry points for the loan ledger."""

    def __init__(
        self,
        ledger: LoanLedger,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._audit_logger = audit_logger

    async def _handle(
        self,
        operation: str,
        call: Callable[[UUID], Awaitable[Any]],
        success_status: int = 200,
    ) -> ApiResponse:
        """Run one endpoint and map its outcome to a response."""
        correlation_id = create_correlation_id()
        try:
            body = await call(correlation_id)
        except LedgerError as e:
            return _error_response(e)
        except ValidationError as e:
            error = from_validation_error(e)
            if self._audit_logger:
                await self._audit_logger.log_operation_rejected(
                    operation=operation,
                    loan_id=None,
                    error_code=error.code,
                    error_message=error.message,
                    field=error.field,
                    correlation_id=correlation_id,
                )
            return _error_response(error)
        except StorageError as e:
            logger.error("storage_failure", operation=operation, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=operation,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return ApiResponse(
                status_code=500,
                body={"error": {
                    "code": "storage_error",
                    "message": "The loan store is unavailable",
                    "field": None,
                }},
            )
        except Exception as e:
            logger.exception("unexpected_failure", operation=operation)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"operation": operation},
                    correlation_id=correlation_id,
                )
            raise

        return ApiResponse(status_code=success_status, body=body)

    async def create(self, body: dict) -> ApiResponse:
        """POST /loans"""
        async def call(correlation_id: UUID) -> dict:
            request = OriginateLoanRequest.model_validate(body)
            detail = await self._ledger.originate(request, correlation_id)
            return detail.to_api_dict()

        return await self._handle("originate", call, success_status=201)

    async def get(self, loan_id: str) -> ApiResponse:
        """GET /loans/{id}"""
        async def call(correlation_id: UUID) -> dict:
            detail = await self._ledger.get(_parse_loan_id(loan_id))
            return detail.to_api_dict()

        return await self._handle("get", call)

    async def list_loans(self, query: Optional[dict] = None) -> ApiResponse:
        """GET /loans?direction=&showClosed="""
        async def call(correlation_id: UUID) -> dict:
            filters = LoanFilters.model_validate(query or {})
            loans = await self._ledger.list_loans(filters)
            return loans.to_api_dict()

        return await self._handle("list", call)

    async def summary(self) -> ApiResponse:
        """GET /loans/summary"""
        async def call(correlation_id: UUID) -> dict:
            totals = await self._ledger.summary()
            return totals.model_dump(mode="json", by_alias=True)

        return await self._handle("summary", call)

    async def update(self, loan_id: str, body: dict) -> ApiResponse:
        """PATCH /loans/{id}"""
        async def call(correlation_id: UUID) -> dict:
            parsed_id = _parse_loan_id(loan_id)
            locked = find_immutable_fields(body) if isinstance(body, dict) else []
            if locked:
                error = ImmutableFieldError(locked)
                if self._audit_logger:
                    await self._audit_logger.log_operation_rejected(
                        operation="update_metadata",
                        loan_id=parsed_id,
                        error_code=error.code,
                        error_message=error.message,
                        field=error.field,
                        correlation_id=correlation_id,
                    )
                raise error
            update = UpdateLoanRequest.model_validate(body)
            detail = await self._ledger.update_metadata(parsed_id, update, correlation_id)
            return detail.to_api_dict()

        return await self._handle("update_metadata", call)

    async def record_payment(self, loan_id: str, body: dict) -> ApiResponse:
        """POST /loans/{id}/payments"""
        async def call(correlation_id: UUID) -> dict:
            parsed_id = _parse_loan_id(loan_id)
            request = RecordPaymentRequest.model_validate(body)
            detail = await self._ledger.record_payment(parsed_id, request, correlation_id)
            return detail.to_api_dict()

        return await self._handle("record_payment", call)

    async def record_adjustment(self, loan_id: str, body: dict) -> ApiResponse:
        """POST /loans/{id}/adjustments"""
        async def call(correlation_id: UUID) -> dict:
            parsed_id = _parse_loan_id(loan_id)
            request = AdjustmentRequest.model_validate(body)
            detail = await self._ledger.record_adjustment(parsed_id, request, correlation_id)
            return detail.to_api_dict()

        return await self._handle("record_adjustment", call)

    async def close(self, loan_id: str) -> ApiResponse:
        """POST /loans/{id}/close"""
        async def call(correlation_id: UUID) -> dict:
            detail = await self._ledger.close(_parse_loan_id(loan_id), correlation_id)
            return detail.to_api_dict()

        return await self._handle("close", call)

    async def delete(self, loan_id: str) -> ApiResponse:
        """DELETE /loans/{id}"""
        async def call(correlation_id: UUID) -> None:
            await self._ledger.delete(_parse_loan_id(loan_id), correlation_id)
            return None

        return await self._handle("delete", call, success_status=204)
