"""Collection prioritizer ranking active loans for field agents."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging
from typing import Any, Iterable, List, Optional, Sequence, Union

from microlend.common.amortization import credited_amount
from microlend.common.loan_terms import LoanTerms
from microlend.common.money import DAYS_PER_PERIOD, ZERO
from microlend.models.enums import CollectionPriority, CollectionSortKey, LoanStatus


logger = logging.getLogger(__name__)

HIGH_OVERDUE_WEEKS = 3
HIGH_DUE_INSTALLMENTS = 2
MEDIUM_OVERDUE_WEEKS = 1
MEDIUM_DUE_INSTALLMENTS = 1

_PRIORITY_RANK = {
    CollectionPriority.HIGH: 3,
    CollectionPriority.MEDIUM: 2,
    CollectionPriority.LOW: 1,
}


@dataclass(frozen=True)
class CollectionCandidate:
    """Snapshot of one loan and its payment history for report generation."""

    loan_id: str
    terms: LoanTerms
    status: LoanStatus
    disbursed_on: Optional[date]
    payments: Sequence[Any] = field(default_factory=tuple)
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


@dataclass(frozen=True)
class CollectionItem:
    """Derived, never-persisted collection work item."""

    loan_id: str
    due_amount: Decimal
    overdue_weeks: int
    priority: CollectionPriority
    installment_amount: Decimal
    total_paid: Decimal
    last_payment_date: Optional[date] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


@dataclass(frozen=True)
class CollectionSummary:
    """Totals shown above the collection list."""

    total_due: Decimal
    high_priority: int
    medium_priority: int
    low_priority: int
    total_customers: int


def assign_priority(overdue_weeks: int, due_amount: Decimal, installment_amount: Decimal) -> CollectionPriority:
    """Map overdue weeks and due amount to a tier; the first matching tier wins."""
    if overdue_weeks >= HIGH_OVERDUE_WEEKS or due_amount >= installment_amount * HIGH_DUE_INSTALLMENTS:
        return CollectionPriority.HIGH
    if overdue_weeks >= MEDIUM_OVERDUE_WEEKS or due_amount >= installment_amount * MEDIUM_DUE_INSTALLMENTS:
        return CollectionPriority.MEDIUM
    return CollectionPriority.LOW


def assess_loan(candidate: CollectionCandidate, as_of: date) -> Optional[CollectionItem]:
    """Build the collection item for one loan, or None when nothing is collectable."""
    if candidate.status != LoanStatus.ACTIVE or candidate.disbursed_on is None:
        return None

    terms = candidate.terms
    installment = terms.installment_amount
    weeks_elapsed = max(0, (as_of - candidate.disbursed_on).days // DAYS_PER_PERIOD)
    expected_installments = min(weeks_elapsed, terms.duration_periods)
    expected_amount = installment * expected_installments

    # Penalty money never counts toward installments.
    total_paid = max(ZERO, credited_amount(candidate.payments))
    last_payment_date: Optional[date] = None
    for payment in candidate.payments:
        if getattr(payment, "is_reversal", False):
            continue
        paid_on = getattr(payment, "payment_date", None)
        if paid_on is not None and (last_payment_date is None or paid_on > last_payment_date):
            last_payment_date = paid_on

    paid_installments = int(total_paid // installment) if installment > 0 else 0
    overdue_weeks = max(0, expected_installments - paid_installments)
    due_amount = max(ZERO, expected_amount - total_paid)
    if due_amount <= 0:
        return None

    return CollectionItem(
        loan_id=candidate.loan_id,
        due_amount=due_amount,
        overdue_weeks=overdue_weeks,
        priority=assign_priority(overdue_weeks, due_amount, installment),
        installment_amount=installment,
        total_paid=total_paid,
        last_payment_date=last_payment_date,
        customer_id=candidate.customer_id,
        customer_name=candidate.customer_name,
        customer_phone=candidate.customer_phone,
    )


def sort_collection_items(
    items: Iterable[CollectionItem],
    sort_by: Union[CollectionSortKey, str] = CollectionSortKey.PRIORITY,
) -> List[CollectionItem]:
    """Sort descending by the requested key, breaking ties by loan id."""
    key = CollectionSortKey(sort_by)
    if key == CollectionSortKey.AMOUNT:
        return sorted(items, key=lambda item: (-item.due_amount, item.loan_id))
    if key == CollectionSortKey.OVERDUE:
        return sorted(items, key=lambda item: (-item.overdue_weeks, item.loan_id))
    return sorted(items, key=lambda item: (-_PRIORITY_RANK[item.priority], item.loan_id))


def prioritize(
    loans: Iterable[CollectionCandidate],
    as_of: date,
    sort_by: Union[CollectionSortKey, str] = CollectionSortKey.PRIORITY,
    priority_filter: Optional[CollectionPriority] = None,
) -> List[CollectionItem]:
    """Derive and rank collection items for every active loan with money due."""
    items: List[CollectionItem] = []
    for candidate in loans:
        item = assess_loan(candidate, as_of)
        if item is None:
            continue
        if priority_filter is not None and item.priority != priority_filter:
            continue
        items.append(item)
    ranked = sort_collection_items(items, sort_by)
    logger.info("Prioritized collection items count=%d as_of=%s sort_by=%s", len(ranked), as_of, sort_by)
    return ranked


def summarize(items: Sequence[CollectionItem]) -> CollectionSummary:
    """Aggregate totals and per-tier counts for a collection list."""
    return CollectionSummary(
        total_due=sum((item.due_amount for item in items), ZERO),
        high_priority=sum(1 for item in items if item.priority == CollectionPriority.HIGH),
        medium_priority=sum(1 for item in items if item.priority == CollectionPriority.MEDIUM),
        low_priority=sum(1 for item in items if item.priority == CollectionPriority.LOW),
        total_customers=len(items),
    )
