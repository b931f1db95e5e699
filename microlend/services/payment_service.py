"""Payment collection workflow: classify, allocate, persist and reverse payments."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from microlend.common.amortization import (
    BalanceResult,
    credited_amount,
    installment_due_date,
    installments_covered,
    is_settled,
    outstanding_after,
)
from microlend.common.identifiers import format_receipt_number, new_document_id, receipt_number_prefix
from microlend.common.loan_terms import LoanTerms
from microlend.common.money import ZERO, to_date
from microlend.common.payment_allocation import classify_and_allocate
from microlend.models.enums import LoanStatus, PaymentMethod
from microlend.models.exceptions import InvalidInputError, InvalidLoanTransition
from microlend.models.loans import LoanModel
from microlend.models.payments import AllocationModel, PaymentModel
from microlend.models.repositories import LoanRepository, PaymentRepository

from .loan_service import LoanService, ensure_transition, loan_terms_of


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedPayment:
    """A stored payment together with the loan and balance it produced."""

    payment: PaymentModel
    loan: LoanModel
    balance: BalanceResult


@dataclass(frozen=True)
class DailyCollectionSummary:
    """What one agent collected on one day."""

    collected_by: str
    on: date
    payment_count: int
    total_collected: Decimal
    by_type: Dict[str, Decimal] = field(default_factory=dict)
    by_method: Dict[str, Decimal] = field(default_factory=dict)


def _total_paid(payments: Sequence[PaymentModel]) -> Decimal:
    total = ZERO
    for payment in payments:
        total += -payment.amount if payment.is_reversal else payment.amount
    return max(ZERO, total)


def _last_payment_date(payments: Sequence[PaymentModel]) -> Optional[date]:
    reversed_ids = {payment.reverses_payment_id for payment in payments if payment.is_reversal}
    dates = [
        payment.payment_date
        for payment in payments
        if not payment.is_reversal and payment.payment_id not in reversed_ids
    ]
    return max(dates) if dates else None


def replay_repayment_state(
    loan: LoanModel,
    terms: LoanTerms,
    payments: Sequence[PaymentModel],
    penalty_accrued: Decimal,
) -> Dict[str, Any]:
    """Derive the loan repayment fields implied by the full payment history.

    Returns:
        Dict[str, Any]: Field changes suitable for ``LoanModel.evolve``.
    """
    settled = is_settled(payments)
    covered, carried = installments_covered(terms, max(ZERO, credited_amount(payments)))
    if settled or covered >= terms.duration_periods:
        status = LoanStatus.COMPLETED
        covered = terms.duration_periods if settled else covered
        outstanding = ZERO
        next_due = None
    else:
        status = LoanStatus.ACTIVE
        outstanding = outstanding_after(terms, covered)
        next_due = installment_due_date(loan.disbursed_on, covered + 1)

    return {
        "status": status,
        "paid_installments": covered,
        "advance_credit": ZERO if status == LoanStatus.COMPLETED and settled else carried,
        "outstanding_balance": outstanding,
        "penalty_accrued": penalty_accrued,
        "total_paid": _total_paid(payments),
        "next_due_date": next_due,
        "last_payment_date": _last_payment_date(payments),
    }


class PaymentService:
    """Records collections against ACTIVE loans and keeps loan state in step with the payment history."""

    def __init__(
        self,
        loan_service: LoanService,
        loan_repository: LoanRepository,
        payment_repository: PaymentRepository,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._loan_service = loan_service
        self._loans = loan_repository
        self._payments = payment_repository
        self._today = today

    def _next_receipt_number(self, on: date) -> str:
        sequence = self._payments.count_by_receipt_prefix(receipt_number_prefix(on)) + 1
        return format_receipt_number(on, sequence)

    def _payment_day(self, payment_date: Any, loan: LoanModel) -> date:
        on = to_date(payment_date, "payment_date") if payment_date is not None else self._today()
        if on > self._today():
            raise InvalidInputError("payment_date cannot be in the future.")
        if loan.disbursed_on is not None and on < loan.disbursed_on:
            raise InvalidInputError("payment_date cannot precede disbursement.")
        return on

    def record_payment(
        self,
        loan_id: str,
        amount: Any,
        payment_date: Any = None,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CASH,
        collected_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> RecordedPayment:
        """Classify and allocate a collection, then store it with the updated loan atomically.

        Raises:
            InvalidLoanTransition: If the loan is not ACTIVE.
            InvalidPaymentAmount: If ``amount`` is not a positive number.
            InvalidInputError: If ``payment_date`` is in the future or before disbursement.
            VersionConflictError: If the loan changed while the payment was being recorded.
        """
        loan = self._loans.get_by_id(loan_id)
        if loan.status != LoanStatus.ACTIVE:
            raise InvalidLoanTransition(
                "Payments can only be recorded on ACTIVE loans; loan {0} is {1}.".format(loan_id, loan.status.value)
            )
        on = self._payment_day(payment_date, loan)
        history = self._payments.list_for_loan(loan_id)
        balance = self._loan_service.balance_for(loan, history, on)

        decision = classify_and_allocate(
            due_amount=balance.amount_due,
            payment_amount=amount,
            outstanding_balance=balance.settlement_amount,
            penalty_due=balance.penalty_due,
            interest_due=balance.interest_due,
        )
        allocation = decision.allocation
        payment = PaymentModel(
            payment_id=new_document_id("pay"),
            loan_id=loan.loan_id,
            customer_id=loan.customer_id,
            collected_by=collected_by,
            amount=allocation.total,
            payment_date=on,
            payment_type=decision.payment_type,
            payment_method=PaymentMethod(payment_method),
            allocation=AllocationModel(**allocation.as_dict()),
            receipt_number=self._next_receipt_number(on),
            notes=notes,
        )

        terms = loan_terms_of(loan)
        changes = replay_repayment_state(loan, terms, list(history) + [payment], balance.penalty_accrued)
        payment = payment.model_copy(
            update={"installments_covered": max(0, changes["paid_installments"] - loan.paid_installments)}
        )
        if changes["status"] == LoanStatus.COMPLETED:
            ensure_transition(loan, LoanStatus.COMPLETED)
            changes["completed_on"] = on
        updated_loan = loan.evolve(**changes)

        try:
            stored = self._payments.append(payment, updated_loan)
        except Exception:
            logger.exception("Failed to record payment loan_id=%s amount=%s", loan_id, amount)
            raise

        new_balance = self._loan_service.balance_for(updated_loan, list(history) + [stored], on)
        logger.info(
            "Payment recorded loan_id=%s receipt=%s type=%s amount=%s outstanding=%s",
            loan_id,
            stored.receipt_number,
            stored.payment_type.value,
            stored.amount,
            updated_loan.outstanding_balance,
        )
        return RecordedPayment(payment=stored, loan=updated_loan, balance=new_balance)

    def reverse_payment(
        self,
        payment_id: str,
        reason: str,
        reversed_by: Optional[str] = None,
        reversal_date: Any = None,
    ) -> RecordedPayment:
        """Append an offsetting record for ``payment_id`` and roll the loan state back.

        A COMPLETED loan re-opens when the reversal leaves a balance.

        Raises:
            InvalidLoanTransition: If the payment is itself a reversal, was already
                reversed, or its loan is no longer ACTIVE or COMPLETED.
            InvalidInputError: If ``reversal_date`` is in the future or before the payment.
        """
        if not reason or not reason.strip():
            raise InvalidInputError("A reversal reason is required.")
        original = self._payments.get_by_id(payment_id)
        if original.is_reversal:
            raise InvalidLoanTransition("Reversal {0} cannot itself be reversed.".format(payment_id))
        loan = self._loans.get_by_id(original.loan_id)
        if loan.status not in (LoanStatus.ACTIVE, LoanStatus.COMPLETED):
            raise InvalidLoanTransition(
                "Payments on a {0} loan cannot be reversed.".format(loan.status.value)
            )
        history = self._payments.list_for_loan(loan.loan_id)
        if any(item.is_reversal and item.reverses_payment_id == payment_id for item in history):
            raise InvalidLoanTransition("Payment {0} is already reversed.".format(payment_id))

        on = to_date(reversal_date, "reversal_date") if reversal_date is not None else self._today()
        if on > self._today():
            raise InvalidInputError("reversal_date cannot be in the future.")
        if on < original.payment_date:
            raise InvalidInputError("reversal_date cannot precede the reversed payment.")
        reversal = PaymentModel(
            payment_id=new_document_id("rev"),
            loan_id=loan.loan_id,
            customer_id=loan.customer_id,
            collected_by=reversed_by,
            amount=original.amount,
            payment_date=on,
            payment_type=original.payment_type,
            payment_method=original.payment_method,
            allocation=original.allocation,
            receipt_number=self._next_receipt_number(on),
            is_reversal=True,
            reverses_payment_id=original.payment_id,
            notes=reason,
        )

        terms = loan_terms_of(loan)
        replayed = list(history) + [reversal]
        changes = replay_repayment_state(loan, terms, replayed, loan.penalty_accrued)
        if changes["status"] != loan.status:
            ensure_transition(loan, changes["status"])
        if changes["status"] == LoanStatus.ACTIVE:
            changes["completed_on"] = None
        updated_loan = loan.evolve(**changes)

        stored = self._payments.append(reversal, updated_loan)
        logger.warning(
            "Payment reversed payment_id=%s loan_id=%s by=%s reason=%s",
            payment_id,
            loan.loan_id,
            reversed_by,
            reason,
        )
        balance = self._loan_service.balance_for(updated_loan, replayed, on)
        return RecordedPayment(payment=stored, loan=updated_loan, balance=balance)

    def daily_collection_summary(self, collected_by: str, on: Any = None) -> DailyCollectionSummary:
        """Totals collected by one agent on one day, net of reversals."""
        day = to_date(on, "on") if on is not None else self._today()
        payments = self._payments.list_by_collector(collected_by, day)
        by_type: Dict[str, Decimal] = {}
        by_method: Dict[str, Decimal] = {}
        total = ZERO
        count = 0
        for payment in payments:
            signed = -payment.amount if payment.is_reversal else payment.amount
            total += signed
            count += 0 if payment.is_reversal else 1
            by_type[payment.payment_type.value] = by_type.get(payment.payment_type.value, ZERO) + signed
            by_method[payment.payment_method.value] = by_method.get(payment.payment_method.value, ZERO) + signed
        return DailyCollectionSummary(
            collected_by=collected_by,
            on=day,
            payment_count=count,
            total_collected=total,
            by_type=by_type,
            by_method=by_method,
        )

    def list_payments(self, loan_id: str) -> List[PaymentModel]:
        self._loans.get_by_id(loan_id)
        return self._payments.list_for_loan(loan_id)
