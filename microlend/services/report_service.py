"""Loan portfolio reporting for managers: disbursed, collected, outstanding and at-risk totals."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Optional

from microlend.common.amortization import credited_amount, installments_covered, outstanding_after, penalty_paid
from microlend.common.collection_priority import CollectionCandidate, assess_loan
from microlend.common.money import HUNDRED, ZERO, round_money, to_date
from microlend.models.enums import LoanStatus
from microlend.models.loans import LoanModel
from microlend.models.repositories import LoanRepository, PaymentRepository

from .loan_service import loan_terms_of


logger = logging.getLogger(__name__)

# Active loans this many weeks behind count toward portfolio at risk.
PAR_OVERDUE_WEEKS = 4

_DISBURSED_STATUSES = (LoanStatus.ACTIVE, LoanStatus.COMPLETED, LoanStatus.DEFAULTED)


@dataclass(frozen=True)
class PortfolioReport:
    """Portfolio totals as of one date; rates are percentages rounded to 0.01."""

    as_of: date
    total_loans: int
    loans_by_status: Dict[str, int] = field(default_factory=dict)
    total_disbursed: Decimal = ZERO
    total_collected: Decimal = ZERO
    penalty_collected: Decimal = ZERO
    outstanding_amount: Decimal = ZERO
    average_loan_size: Decimal = ZERO
    overdue_loans: int = 0
    portfolio_at_risk: Decimal = ZERO
    portfolio_at_risk_rate: Decimal = ZERO
    default_rate: Decimal = ZERO
    repayment_rate: Decimal = ZERO


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return round_money(part / whole * HUNDRED)


class ReportService:
    """Aggregates every loan and its payment history into a portfolio summary."""

    def __init__(
        self,
        loan_repository: LoanRepository,
        payment_repository: PaymentRepository,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._loans = loan_repository
        self._payments = payment_repository
        self._today = today

    def _all_loans(self, agent_id: Optional[str]) -> List[LoanModel]:
        loans: List[LoanModel] = []
        for status in LoanStatus:
            loans.extend(
                loan for loan in self._loans.list_by_status(status) if agent_id is None or loan.agent_id == agent_id
            )
        return loans

    def portfolio_summary(self, as_of: Any = None, agent_id: Optional[str] = None) -> PortfolioReport:
        """Summarize the loan book, optionally for one field agent.

        Outstanding amounts are replayed from the payment history rather than
        read from the stored loan fields.
        """
        on = to_date(as_of, "as_of") if as_of is not None else self._today()
        loans = self._all_loans(agent_id)

        by_status: Dict[str, int] = {status.value: 0 for status in LoanStatus}
        disbursed = ZERO
        collected = ZERO
        credited = ZERO
        penalties = ZERO
        outstanding = ZERO
        at_risk = ZERO
        overdue_loans = 0
        disbursed_count = 0
        defaulted_count = 0

        for loan in loans:
            by_status[loan.status.value] += 1
            if loan.status not in _DISBURSED_STATUSES:
                continue
            disbursed_count += 1
            defaulted_count += 1 if loan.status == LoanStatus.DEFAULTED else 0
            disbursed += loan.principal

            payments = self._payments.list_for_loan(loan.loan_id)
            collected += sum((-item.amount if item.is_reversal else item.amount for item in payments), ZERO)
            loan_credited = max(ZERO, credited_amount(payments))
            credited += loan_credited
            penalties += penalty_paid(payments)
            if loan.status != LoanStatus.ACTIVE:
                continue

            terms = loan_terms_of(loan)
            covered, _ = installments_covered(terms, loan_credited)
            balance = outstanding_after(terms, covered)
            outstanding += balance
            item = assess_loan(
                CollectionCandidate(
                    loan_id=loan.loan_id,
                    terms=terms,
                    status=loan.status,
                    disbursed_on=loan.disbursed_on,
                    payments=tuple(payments),
                ),
                on,
            )
            if item is not None and item.overdue_weeks > 0:
                overdue_loans += 1
                if item.overdue_weeks >= PAR_OVERDUE_WEEKS:
                    at_risk += balance

        total_principal = sum((loan.principal for loan in loans), ZERO)
        report = PortfolioReport(
            as_of=on,
            total_loans=len(loans),
            loans_by_status=by_status,
            total_disbursed=disbursed,
            total_collected=collected,
            penalty_collected=penalties,
            outstanding_amount=outstanding,
            average_loan_size=round_money(total_principal / len(loans)) if loans else ZERO,
            overdue_loans=overdue_loans,
            portfolio_at_risk=at_risk,
            portfolio_at_risk_rate=_percent(at_risk, outstanding),
            default_rate=_percent(Decimal(defaulted_count), Decimal(disbursed_count)),
            repayment_rate=_percent(credited, disbursed),
        )
        logger.info(
            "Portfolio report built as_of=%s loans=%d outstanding=%s at_risk=%s",
            on,
            report.total_loans,
            report.outstanding_amount,
            report.portfolio_at_risk,
        )
        return report
