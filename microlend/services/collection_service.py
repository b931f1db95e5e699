"""Daily field-collection report over all ACTIVE loans."""

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from microlend.common.collection_priority import (
    CollectionCandidate,
    CollectionItem,
    CollectionSummary,
    prioritize,
    summarize,
)
from microlend.common.money import to_date
from microlend.core.config import AppSettings
from microlend.models.customers import CustomerModel
from microlend.models.enums import CollectionPriority, CollectionSortKey, LoanStatus
from microlend.models.exceptions import InvalidInputError
from microlend.models.repositories import LoanRepository, PaymentRepository

from .loan_service import loan_terms_of


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionReport:
    """Ranked collection list plus its aggregate summary."""

    as_of: date
    sort_by: CollectionSortKey
    items: List[CollectionItem]
    summary: CollectionSummary


class CollectionService:
    """Builds the prioritized list of loans an agent should visit."""

    def __init__(
        self,
        settings: AppSettings,
        loan_repository: LoanRepository,
        payment_repository: PaymentRepository,
        customer_lookup: Optional[Callable[[str], Optional[CustomerModel]]] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._settings = settings
        self._loans = loan_repository
        self._payments = payment_repository
        self._customer_lookup = customer_lookup
        self._today = today

    def _customer_fields(self, customer_id: str) -> Dict[str, Optional[str]]:
        if self._customer_lookup is None:
            return {}
        customer = self._customer_lookup(customer_id)
        if customer is None:
            return {}
        return {"customer_name": customer.full_name, "customer_phone": customer.phone}

    def build_report(
        self,
        as_of: Any = None,
        sort_by: Optional[Union[CollectionSortKey, str]] = None,
        priority: Optional[Union[CollectionPriority, str]] = None,
        agent_id: Optional[str] = None,
    ) -> CollectionReport:
        """Rank every ACTIVE loan with money due as of ``as_of``.

        Args:
            as_of: Report date, today by default.
            sort_by: ``priority``, ``amount`` or ``overdue``; configured default otherwise.
            priority: Optional tier filter.
            agent_id: Optional restriction to one field agent's loans.
        """
        on = to_date(as_of, "as_of") if as_of is not None else self._today()
        try:
            sort_key = CollectionSortKey(sort_by) if sort_by is not None else self._settings.collections_default_sort
            priority_filter = CollectionPriority(priority) if priority is not None else None
        except ValueError as exc:
            raise InvalidInputError(str(exc))

        candidates: List[CollectionCandidate] = []
        for loan in self._loans.list_by_status(LoanStatus.ACTIVE):
            if agent_id is not None and loan.agent_id != agent_id:
                continue
            candidates.append(
                CollectionCandidate(
                    loan_id=loan.loan_id,
                    terms=loan_terms_of(loan),
                    status=loan.status,
                    disbursed_on=loan.disbursed_on,
                    payments=tuple(self._payments.list_for_loan(loan.loan_id)),
                    customer_id=loan.customer_id,
                    **self._customer_fields(loan.customer_id)
                )
            )

        items = prioritize(candidates, on, sort_by=sort_key, priority_filter=priority_filter)
        summary = summarize(items)
        logger.info(
            "Collection report built as_of=%s loans=%d due=%s high=%d",
            on,
            summary.total_customers,
            summary.total_due,
            summary.high_priority,
        )
        return CollectionReport(as_of=on, sort_by=sort_key, items=items, summary=summary)
