"""Loan lifecycle orchestration: quotes, applications, approval, disbursement and balances."""

from datetime import date, timedelta
import logging
from typing import Any, Callable, Dict, FrozenSet, Optional, Sequence, Union

from microlend.common.amortization import BalanceResult, LoanState, compute_balance, outstanding_after
from microlend.common.identifiers import format_loan_number, loan_number_prefix, new_document_id
from microlend.common.loan_terms import LoanTerms, compute_terms, verify_terms
from microlend.common.money import DAYS_PER_PERIOD, to_date
from microlend.core.config import AppSettings
from microlend.models.enums import LoanStatus, RepaymentMethod
from microlend.models.exceptions import InvalidInputError, InvalidLoanParameters, InvalidLoanTransition
from microlend.models.loans import LoanModel
from microlend.models.payments import PaymentModel
from microlend.models.repositories import LoanRepository, PaymentRepository


logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.ACTIVE, LoanStatus.REJECTED}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED}),
    LoanStatus.COMPLETED: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.DEFAULTED: frozenset(),
    LoanStatus.REJECTED: frozenset(),
}


def ensure_transition(loan: LoanModel, target: LoanStatus) -> None:
    """Raise when ``loan`` cannot move from its status to ``target``.

    COMPLETED -> ACTIVE only happens when a settling payment is reversed.
    """
    if target not in ALLOWED_TRANSITIONS[loan.status]:
        raise InvalidLoanTransition(
            "Loan {0} cannot move from {1} to {2}.".format(loan.loan_id, loan.status.value, target.value)
        )


def loan_terms_of(loan: LoanModel) -> LoanTerms:
    """Rebuild the fixed terms stored on an approved loan."""
    if loan.installment_amount is None or loan.total_repayment is None or loan.total_interest is None:
        raise InvalidLoanTransition("Loan {0} has no fixed terms until it is approved.".format(loan.loan_id))
    return LoanTerms(
        principal=loan.principal,
        interest_rate=loan.interest_rate,
        duration_periods=loan.duration_weeks,
        method=loan.method,
        installment_amount=loan.installment_amount,
        total_repayment=loan.total_repayment,
        total_interest=loan.total_interest,
    )


def loan_state_of(loan: LoanModel) -> LoanState:
    """Project the mutable repayment fields of a loan into the engine state."""
    return LoanState(
        status=loan.status,
        paid_installments=loan.paid_installments,
        outstanding_balance=loan.outstanding_balance,
        penalty_accrued=loan.penalty_accrued,
        advance_credit=loan.advance_credit,
        disbursed_on=loan.disbursed_on,
        next_due_date=loan.next_due_date,
    )


class LoanService:
    """Runs loan lifecycle transitions against the loan repository."""

    def __init__(
        self,
        settings: AppSettings,
        loan_repository: LoanRepository,
        payment_repository: PaymentRepository,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._settings = settings
        self._loans = loan_repository
        self._payments = payment_repository
        self._today = today

    def _check_bounds(self, terms: LoanTerms) -> None:
        """Apply the configured product limits on amount, duration and rate."""
        settings = self._settings
        if terms.principal < settings.min_loan_amount or terms.principal > settings.max_loan_amount:
            raise InvalidLoanParameters(
                "principal must be between {0} and {1}.".format(settings.min_loan_amount, settings.max_loan_amount)
            )
        if terms.duration_periods > settings.max_duration_weeks:
            raise InvalidLoanParameters(
                "duration_weeks cannot exceed {0}.".format(settings.max_duration_weeks)
            )
        if terms.interest_rate > settings.max_interest_rate:
            raise InvalidLoanParameters(
                "interest_rate cannot exceed {0}.".format(settings.max_interest_rate)
            )

    def quote(
        self,
        principal: Any,
        interest_rate: Any,
        duration_weeks: Any,
        method: Optional[Union[RepaymentMethod, str]] = None,
    ) -> LoanTerms:
        """Compute terms for a prospective loan within the configured product limits."""
        terms = compute_terms(principal, interest_rate, duration_weeks, method or self._settings.default_method)
        self._check_bounds(terms)
        return terms

    def create_application(
        self,
        customer_id: str,
        principal: Any,
        interest_rate: Any,
        duration_weeks: Any,
        method: Optional[Union[RepaymentMethod, str]] = None,
        agent_id: Optional[str] = None,
        purpose: Optional[str] = None,
    ) -> LoanModel:
        """Open a PENDING application with a quoted schedule and the next loan number of the month."""
        if not customer_id or not str(customer_id).strip():
            raise InvalidInputError("customer_id is required.")
        terms = self.quote(principal, interest_rate, duration_weeks, method)
        applied_on = self._today()
        sequence = self._loans.count_by_number_prefix(loan_number_prefix(applied_on)) + 1
        loan = LoanModel(
            loan_id=new_document_id("loan"),
            loan_number=format_loan_number(applied_on, sequence),
            customer_id=customer_id,
            agent_id=agent_id,
            purpose=purpose,
            currency=self._settings.currency,
            principal=terms.principal,
            interest_rate=terms.interest_rate,
            duration_weeks=terms.duration_periods,
            method=terms.method,
            installment_amount=terms.installment_amount,
            total_repayment=terms.total_repayment,
            total_interest=terms.total_interest,
            application_date=applied_on,
        )
        stored = self._loans.create(loan)
        logger.info("Loan application created loan_id=%s number=%s", stored.loan_id, stored.loan_number)
        return stored

    def get_loan(self, loan_id: str) -> LoanModel:
        return self._loans.get_by_id(loan_id)

    def approve(self, loan_id: str, approved_by: Optional[str] = None) -> LoanModel:
        """Fix the terms of a PENDING loan and move it to APPROVED."""
        loan = self._loans.get_by_id(loan_id)
        ensure_transition(loan, LoanStatus.APPROVED)
        terms = compute_terms(loan.principal, loan.interest_rate, loan.duration_weeks, loan.method)
        self._check_bounds(terms)
        verify_terms(terms)
        updated = loan.evolve(
            status=LoanStatus.APPROVED,
            approved_by=approved_by,
            installment_amount=terms.installment_amount,
            total_repayment=terms.total_repayment,
            total_interest=terms.total_interest,
            outstanding_balance=outstanding_after(terms, 0),
        )
        stored = self._loans.update(updated)
        logger.info("Loan approved loan_id=%s installment=%s", loan_id, terms.installment_amount)
        return stored

    def reject(self, loan_id: str, reason: str) -> LoanModel:
        """Reject a PENDING or APPROVED loan."""
        if not reason or not reason.strip():
            raise InvalidInputError("A rejection reason is required.")
        loan = self._loans.get_by_id(loan_id)
        ensure_transition(loan, LoanStatus.REJECTED)
        stored = self._loans.update(loan.evolve(status=LoanStatus.REJECTED, rejection_reason=reason))
        logger.info("Loan rejected loan_id=%s", loan_id)
        return stored

    def disburse(self, loan_id: str, disbursed_on: Any = None) -> LoanModel:
        """Activate an APPROVED loan; the first installment falls due one week later."""
        loan = self._loans.get_by_id(loan_id)
        ensure_transition(loan, LoanStatus.ACTIVE)
        on = to_date(disbursed_on, "disbursed_on") if disbursed_on is not None else self._today()
        if on > self._today():
            raise InvalidInputError("disbursed_on cannot be in the future.")
        if on < loan.application_date:
            raise InvalidInputError("disbursed_on cannot precede the application date.")
        updated = loan.evolve(
            status=LoanStatus.ACTIVE,
            disbursed_on=on,
            next_due_date=on + timedelta(days=DAYS_PER_PERIOD),
        )
        stored = self._loans.update(updated)
        logger.info("Loan disbursed loan_id=%s on=%s", loan_id, on)
        return stored

    def mark_defaulted(self, loan_id: str, reason: str) -> LoanModel:
        """Write off an ACTIVE loan."""
        if not reason or not reason.strip():
            raise InvalidInputError("A default reason is required.")
        loan = self._loans.get_by_id(loan_id)
        ensure_transition(loan, LoanStatus.DEFAULTED)
        stored = self._loans.update(loan.evolve(status=LoanStatus.DEFAULTED, default_reason=reason))
        logger.warning("Loan marked defaulted loan_id=%s reason=%s", loan_id, reason)
        return stored

    def get_balance(self, loan_id: str, as_of: Any = None) -> BalanceResult:
        """Balance, schedule split and current dues of an approved or later loan."""
        loan = self._loans.get_by_id(loan_id)
        on = to_date(as_of, "as_of") if as_of is not None else self._today()
        payments = self._payments.list_for_loan(loan_id)
        return self.balance_for(loan, payments, on)

    def balance_for(self, loan: LoanModel, payments: Sequence[PaymentModel], as_of: date) -> BalanceResult:
        """Compute the balance of an already loaded loan with the configured penalty policy."""
        return compute_balance(
            loan_terms_of(loan),
            loan_state_of(loan),
            payments=payments,
            as_of=as_of,
            penalty_rate=self._settings.penalty_rate,
            grace_period_days=self._settings.grace_period_days,
        )

