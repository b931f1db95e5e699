"""Lending router exposing customer, loan lifecycle, payment, collection and portfolio report APIs."""

from dataclasses import asdict, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationError

from microlend.common.amortization import BalanceResult
from microlend.common.loan_terms import LoanTerms
from microlend.models.customers import AddressModel
from microlend.models.enums import CollectionPriority, CollectionSortKey, PaymentMethod, RepaymentMethod
from microlend.models.exceptions import (
    DuplicateRecordError,
    LendingRuleError,
    ModelNotFoundError,
    ModelValidationError,
    VersionConflictError,
)
from microlend.services.collection_service import CollectionService
from microlend.services.customer_service import CustomerService
from microlend.services.loan_service import LoanService
from microlend.services.payment_service import PaymentService, RecordedPayment
from microlend.services.report_service import ReportService


logger = logging.getLogger(__name__)


class LoanQuoteRequest(BaseModel):
    """Request payload for a loan term quote."""

    principal: Decimal = Field(..., gt=0)
    interest_rate: Decimal = Field(..., ge=0)
    duration_weeks: int = Field(..., gt=0)
    method: Optional[RepaymentMethod] = Field(default=None)


class LoanApplicationRequest(LoanQuoteRequest):
    """Request payload for opening a loan application."""

    customer_id: str = Field(..., min_length=1)
    agent_id: Optional[str] = Field(default=None)
    purpose: Optional[str] = Field(default=None)


class LoanApprovalRequest(BaseModel):
    approved_by: Optional[str] = Field(default=None)


class LoanReasonRequest(BaseModel):
    """Request payload for rejections and write-offs."""

    reason: str = Field(..., min_length=3)


class LoanDisbursementRequest(BaseModel):
    disbursed_on: Optional[date] = Field(default=None)


class PaymentRequest(BaseModel):
    """Request payload for recording a collected payment."""

    loan_id: str = Field(..., min_length=3)
    amount: Decimal = Field(...)
    payment_date: Optional[date] = Field(default=None)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    collected_by: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)


class PaymentReversalRequest(BaseModel):
    """Request payload for reversing a payment."""

    reason: str = Field(..., min_length=3)
    reversed_by: Optional[str] = Field(default=None)
    reversal_date: Optional[date] = Field(default=None)


class CustomerRequest(BaseModel):
    """Request payload for registering a borrower."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    nic: str = Field(..., min_length=10)
    phone: str = Field(...)
    address: AddressModel
    alternate_phone: Optional[str] = Field(default=None)
    occupation: Optional[str] = Field(default=None)
    monthly_income: Optional[Decimal] = Field(default=None, ge=0)
    agent_id: Optional[str] = Field(default=None)


def to_json_safe(value: Any) -> Any:
    """Convert engine values to JSON primitives; money stays exact as a decimal string."""
    if is_dataclass(value) and not isinstance(value, type):
        return to_json_safe(asdict(value))
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return value


def _terms_payload(terms: LoanTerms) -> Dict[str, Any]:
    payload = to_json_safe(terms)
    payload["repayment_tolerance"] = str(terms.repayment_tolerance)
    return payload


def _balance_payload(balance: BalanceResult) -> Dict[str, Any]:
    return to_json_safe(balance)


def _recorded_payload(recorded: RecordedPayment) -> Dict[str, Any]:
    return {
        "payment": to_json_safe(recorded.payment),
        "loan": to_json_safe(recorded.loan),
        "balance": _balance_payload(recorded.balance),
    }


def _http_error(exc: Exception) -> HTTPException:
    """Map domain failures to HTTP status codes."""
    if isinstance(exc, ModelNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (VersionConflictError, DuplicateRecordError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (LendingRuleError, ModelValidationError, ValidationError)):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


_HANDLED = (
    LendingRuleError,
    ModelValidationError,
    ValidationError,
    ModelNotFoundError,
    VersionConflictError,
    DuplicateRecordError,
)


def build_lending_router(
    loan_service: LoanService,
    payment_service: PaymentService,
    collection_service: CollectionService,
    customer_service: CustomerService,
    report_service: ReportService,
) -> APIRouter:
    """Build router for customer, loan, payment, collection and report workflows."""
    router = APIRouter(tags=["lending"])

    @router.post("/customers", summary="Register customer", status_code=status.HTTP_201_CREATED)
    def create_customer(payload: CustomerRequest) -> Dict[str, Any]:
        """Register a borrower; a NIC can only be registered once."""
        try:
            customer = customer_service.create_customer(**payload.model_dump())
            return to_json_safe(customer)
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/customers/by-nic/{nic}", summary="Find customer by NIC")
    def get_customer_by_nic(nic: str) -> Dict[str, Any]:
        try:
            return to_json_safe(customer_service.get_customer_by_nic(nic))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/customers/{customer_id}", summary="Get customer")
    def get_customer(customer_id: str) -> Dict[str, Any]:
        try:
            return to_json_safe(customer_service.get_customer(customer_id))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/loans/quote", summary="Quote weekly loan terms")
    def quote_loan(payload: LoanQuoteRequest) -> Dict[str, Any]:
        """Compute installment, total repayment and interest without storing anything."""
        try:
            terms = loan_service.quote(
                payload.principal, payload.interest_rate, payload.duration_weeks, payload.method
            )
            return _terms_payload(terms)
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/loans", summary="Open loan application", status_code=status.HTTP_201_CREATED)
    def create_loan(payload: LoanApplicationRequest) -> Dict[str, Any]:
        try:
            loan = loan_service.create_application(**payload.model_dump())
            return to_json_safe(loan)
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/loans/{loan_id}", summary="Get loan")
    def get_loan(loan_id: str) -> Dict[str, Any]:
        try:
            return to_json_safe(loan_service.get_loan(loan_id))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/loans/{loan_id}/approve", summary="Approve loan")
    def approve_loan(loan_id: str, payload: LoanApprovalRequest) -> Dict[str, Any]:
        try:
            return to_json_safe(loan_service.approve(loan_id, approved_by=payload.approved_by))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/loans/{loan_id}/reject", summary="Reject loan")
    def reject_loan(loan_id: str, payload: LoanReasonRequest) -> Dict[str, Any]:
        try:
            return to_json_safe(loan_service.reject(loan_id, payload.reason))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/loans/{loan_id}/disburse", summary="Disburse loan")
    def disburse_loan(loan_id: str, payload: LoanDisbursementRequest) -> Dict[str, Any]:
        try:
            return to_json_safe(loan_service.disburse(loan_id, payload.disbursed_on))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/loans/{loan_id}/default", summary="Mark loan defaulted")
    def default_loan(loan_id: str, payload: LoanReasonRequest) -> Dict[str, Any]:
        try:
            return to_json_safe(loan_service.mark_defaulted(loan_id, payload.reason))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/loans/{loan_id}/balance", summary="Outstanding balance and dues")
    def loan_balance(loan_id: str, as_of: Optional[date] = Query(default=None)) -> Dict[str, Any]:
        """Return outstanding balance, schedule split, penalty and the amount due as of a date."""
        try:
            return _balance_payload(loan_service.get_balance(loan_id, as_of=as_of))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/loans/{loan_id}/payments", summary="Payment history")
    def loan_payments(loan_id: str) -> Dict[str, Any]:
        try:
            payments = payment_service.list_payments(loan_id)
            return {"loan_id": loan_id, "payments": [to_json_safe(item) for item in payments]}
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/payments", summary="Record payment", status_code=status.HTTP_201_CREATED)
    def record_payment(payload: PaymentRequest) -> Dict[str, Any]:
        """Classify, allocate and store a collected payment."""
        try:
            recorded = payment_service.record_payment(
                loan_id=payload.loan_id,
                amount=payload.amount,
                payment_date=payload.payment_date,
                payment_method=payload.payment_method,
                collected_by=payload.collected_by,
                notes=payload.notes,
            )
            return _recorded_payload(recorded)
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.post("/payments/{payment_id}/reverse", summary="Reverse payment")
    def reverse_payment(payment_id: str, payload: PaymentReversalRequest) -> Dict[str, Any]:
        try:
            recorded = payment_service.reverse_payment(
                payment_id,
                reason=payload.reason,
                reversed_by=payload.reversed_by,
                reversal_date=payload.reversal_date,
            )
            return _recorded_payload(recorded)
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/payments/daily-summary", summary="Agent daily collection summary")
    def daily_summary(
        collected_by: str = Query(..., min_length=1),
        on: Optional[date] = Query(default=None),
    ) -> Dict[str, Any]:
        try:
            return to_json_safe(payment_service.daily_collection_summary(collected_by, on))
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/collections", summary="Prioritized collection list")
    def collections(
        as_of: Optional[date] = Query(default=None),
        sort_by: Optional[CollectionSortKey] = Query(default=None),
        priority: Optional[CollectionPriority] = Query(default=None),
        agent_id: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        """Rank ACTIVE loans with money due by priority, amount or weeks overdue."""
        try:
            report = collection_service.build_report(
                as_of=as_of, sort_by=sort_by, priority=priority, agent_id=agent_id
            )
            return to_json_safe(report)
        except _HANDLED as exc:
            raise _http_error(exc)

    @router.get("/reports/portfolio", summary="Loan portfolio summary")
    def portfolio(
        as_of: Optional[date] = Query(default=None),
        agent_id: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        """Disbursed, collected, outstanding and at-risk totals across the loan book."""
        try:
            return to_json_safe(report_service.portfolio_summary(as_of=as_of, agent_id=agent_id))
        except _HANDLED as exc:
            raise _http_error(exc)

    return router
