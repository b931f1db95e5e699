"""Loan term calculator: installment, total repayment, and total interest.

Rates are percentages per weekly period. Formulas:

    FLAT:
        total_interest   = principal * rate/100 * n
        total_repayment  = principal + total_interest
        installment      = total_repayment / n

    REDUCING_BALANCE (amortizing annuity, r = rate/100):
        installment      = principal * r * (1+r)^n / ((1+r)^n - 1)    (principal / n when r == 0)
        total_repayment  = installment * n
        total_interest   = total_repayment - principal

Every monetary result is rounded half-up to 2 places once, at the end of its
formula. Intermediate terms keep full Decimal precision. A REDUCING_BALANCE
installment rounds up instead when half-up would make ``installment * n``
fall below the principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_UP, Decimal
import logging
from typing import Any, Union

from microlend.common.money import HALF_MINOR_UNIT, HUNDRED, MINOR_UNIT, ZERO, round_money, to_decimal
from microlend.models.enums import RepaymentMethod
from microlend.models.exceptions import InconsistentLoanState, InvalidInputError, InvalidLoanParameters


logger = logging.getLogger(__name__)

WEEKS_PER_YEAR = Decimal("52")


@dataclass(frozen=True)
class LoanTerms:
    """Immutable repayment terms fixed when a loan is approved."""

    principal: Decimal
    interest_rate: Decimal
    duration_periods: int
    method: RepaymentMethod
    installment_amount: Decimal
    total_repayment: Decimal
    total_interest: Decimal

    @property
    def period_rate(self) -> Decimal:
        """Per-period rate as a fraction (2.5 % -> 0.025)."""
        return self.interest_rate / HUNDRED

    @property
    def repayment_tolerance(self) -> Decimal:
        """Largest gap between ``installment * n`` and ``total_repayment`` rounding can create."""
        return HALF_MINOR_UNIT * self.duration_periods


def _coerce_method(method: Union[RepaymentMethod, str]) -> RepaymentMethod:
    try:
        if isinstance(method, RepaymentMethod):
            return method
        return RepaymentMethod(str(method).strip().upper())
    except ValueError:
        raise InvalidLoanParameters("Unsupported repayment method: {0!r}".format(method))


def _coerce_duration(duration_periods: Any) -> int:
    if isinstance(duration_periods, bool) or not isinstance(duration_periods, int):
        raise InvalidLoanParameters("duration_periods must be an integer week count.")
    if duration_periods < 1:
        raise InvalidLoanParameters("duration_periods must be at least 1.")
    return duration_periods


def compute_terms(
    principal: Any,
    interest_rate: Any,
    duration_periods: int,
    method: Union[RepaymentMethod, str] = RepaymentMethod.FLAT,
) -> LoanTerms:
    """Compute installment amount, total repayment, and total interest.

    Args:
        principal: Amount disbursed, must be positive.
        interest_rate: Percentage per weekly period, must be non-negative.
        duration_periods: Number of weekly installments, at least 1.
        method: FLAT or REDUCING_BALANCE.

    Returns:
        LoanTerms: Inputs plus the three derived amounts.

    Raises:
        InvalidLoanParameters: If any precondition is violated or an input is malformed.
    """
    try:
        principal_value = round_money(to_decimal(principal, "principal"))
        rate_value = to_decimal(interest_rate, "interest_rate")
    except InvalidInputError as exc:
        raise InvalidLoanParameters(str(exc)) from exc

    if principal_value <= 0:
        raise InvalidLoanParameters("principal must be greater than 0.")
    if rate_value < 0:
        raise InvalidLoanParameters("interest_rate cannot be negative.")
    periods = _coerce_duration(duration_periods)
    repayment_method = _coerce_method(method)

    if repayment_method == RepaymentMethod.FLAT:
        interest_exact = principal_value * rate_value / HUNDRED * periods
        total_interest = round_money(interest_exact)
        total_repayment = round_money(principal_value + interest_exact)
        installment_amount = round_money((principal_value + interest_exact) / periods)
    else:
        rate = rate_value / HUNDRED
        if rate == 0:
            installment_amount = round_money(principal_value / periods)
            total_repayment = principal_value
            total_interest = ZERO
        else:
            factor = (1 + rate) ** periods
            installment_exact = principal_value * rate * factor / (factor - 1)
            installment_amount = round_money(installment_exact)
            if installment_amount * periods < principal_value:
                # Half-up rounding must never repay less than was lent.
                installment_amount = installment_exact.quantize(MINOR_UNIT, rounding=ROUND_UP)
            total_repayment = installment_amount * periods
            total_interest = total_repayment - principal_value

    terms = LoanTerms(
        principal=principal_value,
        interest_rate=rate_value,
        duration_periods=periods,
        method=repayment_method,
        installment_amount=installment_amount,
        total_repayment=total_repayment,
        total_interest=total_interest,
    )
    logger.debug(
        "Computed terms method=%s principal=%s rate=%s periods=%d installment=%s total=%s",
        repayment_method.value,
        principal_value,
        rate_value,
        periods,
        installment_amount,
        total_repayment,
    )
    return terms


def verify_terms(terms: LoanTerms) -> None:
    """Recompute stored terms from their inputs and check the repayment invariants.

    Raises:
        InconsistentLoanState: If stored amounts differ from a fresh computation,
            ``total_repayment < principal``, or ``installment * n`` drifts from
            ``total_repayment`` by more than rounding allows.
    """
    try:
        expected = compute_terms(terms.principal, terms.interest_rate, terms.duration_periods, terms.method)
    except InvalidLoanParameters as exc:
        raise InconsistentLoanState("Stored loan terms are invalid: {0}".format(exc)) from exc

    if (
        expected.installment_amount != terms.installment_amount
        or expected.total_repayment != terms.total_repayment
        or expected.total_interest != terms.total_interest
    ):
        raise InconsistentLoanState(
            "Stored terms differ from recomputation installment={0}/{1} total={2}/{3}".format(
                terms.installment_amount,
                expected.installment_amount,
                terms.total_repayment,
                expected.total_repayment,
            )
        )
    if terms.total_repayment < terms.principal:
        raise InconsistentLoanState("total_repayment is below principal.")
    drift = abs(terms.installment_amount * terms.duration_periods - terms.total_repayment)
    if drift > terms.repayment_tolerance:
        raise InconsistentLoanState("installment * duration drifts from total_repayment by {0}".format(drift))


def annual_to_weekly_rate(annual_rate: Any) -> Decimal:
    """Convert an annual percentage rate into the weekly rate the calculator expects (15 -> 0.2885)."""
    rate = to_decimal(annual_rate, "annual_rate")
    if rate < 0:
        raise InvalidLoanParameters("annual_rate cannot be negative.")
    return (rate / WEEKS_PER_YEAR).quantize(Decimal("0.0001"))
