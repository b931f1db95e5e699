"""Amortization and outstanding-balance engine for weekly installment loans.

Schedule rows are built once from the fixed loan terms:

    FLAT:              interest_i  = total_interest / n (pre-allocated evenly)
                       principal_i = installment - interest_i
    REDUCING_BALANCE:  interest_i  = opening_balance_i * r
                       principal_i = installment - interest_i

The final row absorbs rounding residue so the schedule closes at exactly 0.
Penalty is tracked apart from principal and interest: every installment
whose due date (plus grace) passed before it was covered accrues
``penalty_rate * installment`` for each started overdue week, counted up to
the day the payment history covered it, or up to the evaluation date while
it is still unpaid.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from microlend.common.loan_terms import LoanTerms
from microlend.common.money import DAYS_PER_PERIOD, ZERO, round_money, to_decimal
from microlend.models.enums import LoanStatus, PaymentType, RepaymentMethod
from microlend.models.exceptions import InconsistentLoanState


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanState:
    """Mutable-by-replacement snapshot of a loan's repayment progress."""

    status: LoanStatus = LoanStatus.ACTIVE
    paid_installments: int = 0
    outstanding_balance: Decimal = ZERO
    penalty_accrued: Decimal = ZERO
    advance_credit: Decimal = ZERO
    disbursed_on: Optional[date] = None
    next_due_date: Optional[date] = None


@dataclass(frozen=True)
class InstallmentSplit:
    """One scheduled weekly installment with its principal/interest split."""

    sequence_no: int
    due_date: Optional[date]
    amount: Decimal
    principal: Decimal
    interest: Decimal
    opening_balance: Decimal
    closing_balance: Decimal
    paid: bool = False


@dataclass(frozen=True)
class BalanceResult:
    """Balance view of a loan as of one date."""

    outstanding_balance: Decimal
    per_installment_split: Tuple[InstallmentSplit, ...]
    penalty_accrued: Decimal
    penalty_due: Decimal
    advance_available: Decimal
    amount_due: Decimal
    interest_due: Decimal
    settlement_amount: Decimal
    overdue_installments: int
    next_due_date: Optional[date]

    @property
    def next_installment(self) -> Optional[InstallmentSplit]:
        """Return the first unpaid schedule row, if any."""
        for row in self.per_installment_split:
            if not row.paid:
                return row
        return None


def installment_due_date(disbursed_on: Optional[date], sequence_no: int) -> Optional[date]:
    """Due date of installment ``sequence_no``: one week per installment after disbursement."""
    if disbursed_on is None:
        return None
    return disbursed_on + timedelta(days=DAYS_PER_PERIOD * sequence_no)


def build_schedule(terms: LoanTerms, disbursed_on: Optional[date] = None) -> List[InstallmentSplit]:
    """Build the full installment schedule for the loan terms."""
    periods = terms.duration_periods
    rows: List[InstallmentSplit] = []

    if terms.method == RepaymentMethod.FLAT:
        interest_each = round_money(terms.total_interest / periods)
        balance = terms.total_repayment
        for sequence_no in range(1, periods + 1):
            if sequence_no == periods:
                amount = balance
                interest = terms.total_interest - interest_each * (periods - 1)
            else:
                amount = terms.installment_amount
                interest = interest_each
            rows.append(
                InstallmentSplit(
                    sequence_no=sequence_no,
                    due_date=installment_due_date(disbursed_on, sequence_no),
                    amount=amount,
                    principal=amount - interest,
                    interest=interest,
                    opening_balance=balance,
                    closing_balance=balance - amount,
                )
            )
            balance -= amount
        return rows

    rate = terms.period_rate
    balance = terms.principal
    for sequence_no in range(1, periods + 1):
        interest = round_money(balance * rate)
        if sequence_no == periods:
            principal = balance
        else:
            principal = min(terms.installment_amount - interest, balance)
        rows.append(
            InstallmentSplit(
                sequence_no=sequence_no,
                due_date=installment_due_date(disbursed_on, sequence_no),
                amount=principal + interest,
                principal=principal,
                interest=interest,
                opening_balance=balance,
                closing_balance=balance - principal,
            )
        )
        balance -= principal
    return rows


def outstanding_after(terms: LoanTerms, paid_installments: int) -> Decimal:
    """Outstanding balance after ``paid_installments`` satisfied installments.

    FLAT balances include unearned interest (``total_repayment - installment * k``);
    REDUCING_BALANCE balances are the remaining principal.

    Raises:
        InconsistentLoanState: If the count is negative or the FLAT balance would go negative.
    """
    if paid_installments < 0:
        raise InconsistentLoanState("paid_installments cannot be negative: {0}".format(paid_installments))
    if paid_installments >= terms.duration_periods:
        return ZERO

    if terms.method == RepaymentMethod.FLAT:
        balance = terms.total_repayment - terms.installment_amount * paid_installments
        if balance < 0:
            raise InconsistentLoanState(
                "FLAT balance went negative after {0} installments: {1}".format(paid_installments, balance)
            )
        return balance

    if paid_installments == 0:
        return terms.principal
    row = build_schedule(terms)[paid_installments - 1]
    return max(ZERO, row.closing_balance)


def _signed(payment: Any) -> int:
    return -1 if getattr(payment, "is_reversal", False) else 1


def credited_amount(payments: Iterable[Any]) -> Decimal:
    """Net amount of the payment history credited toward installments (interest + principal + advance)."""
    total = ZERO
    for payment in payments:
        allocation = payment.allocation
        total += _signed(payment) * (allocation.interest + allocation.principal + allocation.advance)
    return total


def penalty_paid(payments: Iterable[Any]) -> Decimal:
    """Net amount of the payment history allocated to penalty."""
    return sum((_signed(payment) * payment.allocation.penalty for payment in payments), ZERO)


def is_settled(payments: Sequence[Any]) -> bool:
    """Return True when a settlement payment exists and has not been reversed."""
    reversed_ids = {
        getattr(payment, "reverses_payment_id", None) for payment in payments if getattr(payment, "is_reversal", False)
    }
    for payment in payments:
        if getattr(payment, "is_reversal", False):
            continue
        if payment.payment_type == PaymentType.SETTLEMENT and getattr(payment, "payment_id", None) not in reversed_ids:
            return True
    return False


def installment_cover_dates(terms: LoanTerms, payments: Sequence[Any]) -> Dict[int, date]:
    """Replay the history in date order and return when each installment became covered.

    A reversal un-covers the installments it takes credit back from; an
    unreversed settlement covers every remaining installment on its date.
    """
    thresholds: List[Decimal] = []
    running = ZERO
    for row in build_schedule(terms):
        running += row.amount
        thresholds.append(running)

    reversed_ids = {
        getattr(payment, "reverses_payment_id", None) for payment in payments if getattr(payment, "is_reversal", False)
    }
    covered_on: Dict[int, date] = {}
    credited = ZERO
    settled = False
    for payment in sorted(payments, key=lambda item: item.payment_date):
        allocation = payment.allocation
        credited += _signed(payment) * (allocation.interest + allocation.principal + allocation.advance)
        if (
            payment.payment_type == PaymentType.SETTLEMENT
            and not getattr(payment, "is_reversal", False)
            and getattr(payment, "payment_id", None) not in reversed_ids
        ):
            settled = True
        count = len(thresholds) if settled else sum(1 for threshold in thresholds if threshold <= credited)
        for sequence_no in range(1, count + 1):
            covered_on.setdefault(sequence_no, payment.payment_date)
        for sequence_no in [key for key in covered_on if key > count]:
            del covered_on[sequence_no]
    return covered_on


def _row_penalty(row: InstallmentSplit, until: date, rate: Decimal, grace_period_days: int) -> Decimal:
    days_late = (until - row.due_date).days - grace_period_days
    if days_late <= 0:
        return ZERO
    overdue_periods = (days_late + DAYS_PER_PERIOD - 1) // DAYS_PER_PERIOD
    return rate * row.amount * overdue_periods


def installments_covered(terms: LoanTerms, credited: Decimal) -> Tuple[int, Decimal]:
    """Walk the schedule and count installments fully covered by ``credited``.

    Returns:
        Tuple[int, Decimal]: Covered installment count and the leftover advance credit.
    """
    if credited < 0:
        raise InconsistentLoanState("Credited amount cannot be negative: {0}".format(credited))
    remaining = credited
    covered = 0
    for row in build_schedule(terms):
        if remaining < row.amount:
            break
        remaining -= row.amount
        covered += 1
    return covered, remaining


def compute_balance(
    terms: LoanTerms,
    state: LoanState,
    payments: Sequence[Any] = (),
    as_of: Optional[date] = None,
    penalty_rate: Any = ZERO,
    grace_period_days: int = 0,
) -> BalanceResult:
    """Compute outstanding balance, schedule split, penalty, and current due amount.

    Args:
        terms: Fixed loan terms.
        state: Current persisted loan state.
        payments: Payment history; items expose ``amount``, ``allocation``,
            ``payment_type`` and ``is_reversal``.
        as_of: Evaluation date; penalties and arrears need it together with
            ``state.disbursed_on``.
        penalty_rate: Fraction of an installment charged per overdue week (0.02 = 2 %).
        grace_period_days: Days after a due date before penalty starts.

    Raises:
        InconsistentLoanState: If ``paid_installments`` is negative, the FLAT balance
            goes negative, or the payment history has negative net penalty.
    """
    paid = state.paid_installments
    if paid < 0:
        raise InconsistentLoanState("paid_installments cannot be negative: {0}".format(paid))
    rate = to_decimal(penalty_rate, "penalty_rate")
    if rate < 0:
        raise InconsistentLoanState("penalty_rate cannot be negative.")

    outstanding = outstanding_after(terms, paid)
    schedule = [replace(row, paid=row.sequence_no <= paid) for row in build_schedule(terms, state.disbursed_on)]
    unpaid = [row for row in schedule if not row.paid]
    advance_available = terms.installment_amount * max(0, paid - terms.duration_periods)

    penalty_accrued = ZERO
    overdue_installments = 0
    due_rows: List[InstallmentSplit] = []
    if as_of is not None and state.disbursed_on is not None:
        # Paid rows accrue only up to the day they were covered; with no
        # covering payment in the history they are taken as paid on time.
        cover_dates = installment_cover_dates(terms, payments) if payments else {}
        for row in schedule:
            if not row.paid:
                continue
            covered_on = cover_dates.get(row.sequence_no)
            if covered_on is not None:
                penalty_accrued += _row_penalty(row, min(covered_on, as_of), rate, grace_period_days)
        for row in unpaid:
            if row.due_date > as_of:
                break
            due_rows.append(row)
            if row.due_date < as_of:
                overdue_installments += 1
            penalty_accrued += _row_penalty(row, as_of, rate, grace_period_days)
    penalty_accrued = round_money(penalty_accrued)

    already_paid_penalty = penalty_paid(payments)
    if already_paid_penalty < 0:
        raise InconsistentLoanState("Net penalty paid is negative: {0}".format(already_paid_penalty))
    penalty_due = max(ZERO, penalty_accrued - already_paid_penalty)

    if not due_rows and unpaid:
        due_rows = [unpaid[0]]
    scheduled_due = sum((row.amount for row in due_rows), ZERO)
    amount_due = max(ZERO, scheduled_due - state.advance_credit)
    interest_due = min(sum((row.interest for row in due_rows), ZERO), amount_due)

    settlement_amount = outstanding
    if terms.method == RepaymentMethod.REDUCING_BALANCE and outstanding > 0:
        settlement_amount = outstanding + interest_due

    result = BalanceResult(
        outstanding_balance=outstanding,
        per_installment_split=tuple(schedule),
        penalty_accrued=penalty_accrued,
        penalty_due=penalty_due,
        advance_available=advance_available,
        amount_due=amount_due,
        interest_due=interest_due,
        settlement_amount=settlement_amount,
        overdue_installments=overdue_installments,
        next_due_date=unpaid[0].due_date if unpaid else None,
    )
    logger.debug(
        "Computed balance paid=%d outstanding=%s due=%s penalty_due=%s overdue=%d",
        paid,
        outstanding,
        amount_due,
        penalty_due,
        overdue_installments,
    )
    return result
