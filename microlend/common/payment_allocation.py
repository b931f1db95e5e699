"""Payment classifier and waterfall allocator."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Dict

from microlend.common.money import ZERO, to_money
from microlend.models.enums import PaymentType
from microlend.models.exceptions import InconsistentLoanState, InvalidInputError, InvalidPaymentAmount


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    """Split of one payment across the four buckets."""

    principal: Decimal = ZERO
    interest: Decimal = ZERO
    penalty: Decimal = ZERO
    advance: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        """Sum of all buckets."""
        return self.principal + self.interest + self.penalty + self.advance

    def as_dict(self) -> Dict[str, Decimal]:
        """Return the buckets keyed by name."""
        return {
            "principal": self.principal,
            "interest": self.interest,
            "penalty": self.penalty,
            "advance": self.advance,
        }


@dataclass(frozen=True)
class PaymentDecision:
    """Classification and allocation produced for one incoming payment."""

    payment_type: PaymentType
    allocation: Allocation


def _payment_amount(payment_amount: Any) -> Decimal:
    try:
        amount = to_money(payment_amount, "payment_amount")
    except InvalidInputError as exc:
        raise InvalidPaymentAmount(str(exc)) from exc
    if amount <= 0:
        raise InvalidPaymentAmount("Payment amount must be greater than 0.")
    return amount


def _non_negative(value: Any, field_name: str) -> Decimal:
    amount = to_money(value, field_name)
    if amount < 0:
        raise InconsistentLoanState("{0} cannot be negative: {1}".format(field_name, amount))
    return amount


def classify_payment(
    due_amount: Any,
    payment_amount: Any,
    outstanding_balance: Any,
    penalty_due: Any = ZERO,
) -> PaymentType:
    """Classify a payment against the amount due; the first matching rule wins.

    Order: penalty-only payment when nothing but penalty is owed, equal to due
    (REGULAR), below due (PARTIAL), above due and clearing the outstanding
    balance plus penalty (SETTLEMENT), above due otherwise (ADVANCE).

    Raises:
        InvalidPaymentAmount: If ``payment_amount <= 0`` or is malformed.
    """
    amount = _payment_amount(payment_amount)
    due = _non_negative(due_amount, "due_amount")
    outstanding = _non_negative(outstanding_balance, "outstanding_balance")
    penalty = _non_negative(penalty_due, "penalty_due")

    if due == 0 and 0 < penalty and amount <= penalty:
        return PaymentType.PENALTY
    if amount == due:
        return PaymentType.REGULAR
    if amount < due:
        return PaymentType.PARTIAL
    if amount >= outstanding + penalty:
        return PaymentType.SETTLEMENT
    return PaymentType.ADVANCE


def classify_and_allocate(
    due_amount: Any,
    payment_amount: Any,
    outstanding_balance: Any,
    penalty_due: Any = ZERO,
    interest_due: Any = ZERO,
) -> PaymentDecision:
    """Classify a payment and allocate it penalty -> interest -> principal -> advance.

    Args:
        due_amount: Installment amount currently due, excluding penalty.
        payment_amount: Amount collected.
        outstanding_balance: Amount that settles the loan, excluding penalty.
        penalty_due: Unpaid accrued penalty.
        interest_due: Interest portion of ``due_amount``.

    Returns:
        PaymentDecision: Payment type plus an allocation whose buckets sum to the
        payment amount exactly.

    Raises:
        InvalidPaymentAmount: If ``payment_amount <= 0`` or is malformed.
        InconsistentLoanState: If a due, balance, or penalty input is negative.
    """
    amount = _payment_amount(payment_amount)
    payment_type = classify_payment(due_amount, amount, outstanding_balance, penalty_due)
    due = _non_negative(due_amount, "due_amount")
    outstanding = _non_negative(outstanding_balance, "outstanding_balance")
    penalty_owed = _non_negative(penalty_due, "penalty_due")
    interest_owed = min(_non_negative(interest_due, "interest_due"), due)

    remaining = amount
    penalty = min(remaining, penalty_owed)
    remaining -= penalty

    interest = min(remaining, interest_owed)
    remaining -= interest

    principal = min(remaining, due - interest_owed)
    remaining -= principal

    if payment_type == PaymentType.SETTLEMENT:
        payoff = min(remaining, max(ZERO, outstanding - interest - principal))
        principal += payoff
        remaining -= payoff

    advance = remaining
    principal += amount - (penalty + interest + principal + advance)

    allocation = Allocation(principal=principal, interest=interest, penalty=penalty, advance=advance)
    logger.debug(
        "Allocated payment type=%s amount=%s penalty=%s interest=%s principal=%s advance=%s",
        payment_type.value,
        amount,
        penalty,
        interest,
        principal,
        advance,
    )
    return PaymentDecision(payment_type=payment_type, allocation=allocation)
