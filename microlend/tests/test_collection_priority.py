"""Unit tests for the collection prioritizer."""

from datetime import date
from decimal import Decimal
import unittest

from microlend.common.collection_priority import (
    CollectionCandidate,
    assess_loan,
    assign_priority,
    prioritize,
    sort_collection_items,
    summarize,
)
from microlend.common.loan_terms import compute_terms
from microlend.models.enums import CollectionPriority, CollectionSortKey, LoanStatus, PaymentType
from microlend.models.payments import AllocationModel, PaymentModel


AS_OF = date(2024, 2, 5)
DISBURSED = date(2024, 1, 1)
INSTALLMENT = Decimal("1250.00")


def _payment(payment_id, loan_id, amount, paid_on, reverses=None):
    return PaymentModel(
        payment_id=payment_id,
        loan_id=loan_id,
        customer_id="cust_{0}".format(loan_id),
        amount=Decimal(amount),
        payment_date=paid_on,
        payment_type=PaymentType.REGULAR,
        allocation=AllocationModel(principal=Decimal(amount)),
        receipt_number="RC{0}".format(payment_id),
        is_reversal=reverses is not None,
        reverses_payment_id=reverses,
    )


def _candidate(loan_id, paid, status=LoanStatus.ACTIVE, payments=None):
    terms = compute_terms(Decimal("10000"), Decimal("2.5"), 10)
    if payments is None:
        payments = [_payment("pay_{0}".format(loan_id), loan_id, paid, date(2024, 1, 8))] if paid else []
    return CollectionCandidate(
        loan_id=loan_id,
        terms=terms,
        status=status,
        disbursed_on=DISBURSED,
        payments=payments,
        customer_name="Customer {0}".format(loan_id),
    )


class AssignPriorityTests(unittest.TestCase):
    """Tiers are checked from HIGH down; the first match wins."""

    def test_tiers(self) -> None:
        cases = [
            (0, Decimal("500"), CollectionPriority.LOW),
            (3, Decimal("0"), CollectionPriority.HIGH),
            (0, Decimal("2500"), CollectionPriority.HIGH),
            (1, Decimal("0"), CollectionPriority.MEDIUM),
            (0, Decimal("1250"), CollectionPriority.MEDIUM),
            (2, Decimal("2499.99"), CollectionPriority.MEDIUM),
        ]
        for overdue, due, expected in cases:
            with self.subTest(overdue=overdue, due=due):
                self.assertEqual(assign_priority(overdue, due, INSTALLMENT), expected)


class AssessLoanTests(unittest.TestCase):
    """Per-loan due amount and overdue weeks."""

    def test_fully_paid_loan_is_excluded(self) -> None:
        self.assertIsNone(assess_loan(_candidate("loan_a", "6250"), AS_OF))

    def test_far_behind_loan_is_high(self) -> None:
        item = assess_loan(_candidate("loan_b", "1250"), AS_OF)
        self.assertEqual(item.overdue_weeks, 4)
        self.assertEqual(item.due_amount, Decimal("5000.00"))
        self.assertEqual(item.priority, CollectionPriority.HIGH)
        self.assertEqual(item.last_payment_date, date(2024, 1, 8))
        self.assertEqual(item.customer_name, "Customer loan_b")

    def test_one_week_behind_is_medium(self) -> None:
        item = assess_loan(_candidate("loan_c", "5000"), AS_OF)
        self.assertEqual(item.overdue_weeks, 1)
        self.assertEqual(item.due_amount, Decimal("1250.00"))
        self.assertEqual(item.priority, CollectionPriority.MEDIUM)

    def test_non_active_and_undisbursed_loans_are_excluded(self) -> None:
        self.assertIsNone(assess_loan(_candidate("loan_d", None, status=LoanStatus.DEFAULTED), AS_OF))
        candidate = CollectionCandidate(
            loan_id="loan_e",
            terms=compute_terms(Decimal("10000"), Decimal("2.5"), 10),
            status=LoanStatus.ACTIVE,
            disbursed_on=None,
        )
        self.assertIsNone(assess_loan(candidate, AS_OF))

    def test_reversal_is_subtracted_from_total_paid(self) -> None:
        payments = [
            _payment("pay1", "loan_f", "6250", date(2024, 1, 8)),
            _payment("pay2", "loan_f", "6250", date(2024, 1, 9), reverses="pay1"),
        ]
        item = assess_loan(_candidate("loan_f", None, payments=payments), AS_OF)
        self.assertEqual(item.total_paid, Decimal("0.00"))
        self.assertEqual(item.due_amount, Decimal("6250.00"))
        self.assertEqual(item.overdue_weeks, 5)

    def test_penalty_money_does_not_reduce_due_amount(self) -> None:
        penalty_only = PaymentModel(
            payment_id="pay_h",
            loan_id="loan_h",
            customer_id="cust_loan_h",
            amount=Decimal("1250"),
            payment_date=date(2024, 1, 12),
            payment_type=PaymentType.PENALTY,
            allocation=AllocationModel(penalty=Decimal("1250")),
            receipt_number="RCpay_h",
        )
        item = assess_loan(_candidate("loan_h", None, payments=[penalty_only]), date(2024, 1, 15))
        self.assertEqual(item.total_paid, Decimal("0.00"))
        self.assertEqual(item.due_amount, Decimal("2500.00"))
        self.assertEqual(item.overdue_weeks, 2)
        self.assertEqual(item.priority, CollectionPriority.HIGH)
        self.assertEqual(item.last_payment_date, date(2024, 1, 12))

    def test_expected_installments_stop_at_duration(self) -> None:
        item = assess_loan(_candidate("loan_g", None), date(2024, 12, 30))
        self.assertEqual(item.due_amount, Decimal("12500.00"))
        self.assertEqual(item.overdue_weeks, 10)


class PrioritizeTests(unittest.TestCase):
    """Ranking, filtering and summary of the collection list."""

    def setUp(self) -> None:
        self.candidates = [
            _candidate("loan_a", "6250"),
            _candidate("loan_b", "1250"),
            _candidate("loan_c", "5000"),
            _candidate("loan_d", None, status=LoanStatus.DEFAULTED),
        ]

    def test_priority_order(self) -> None:
        items = prioritize(self.candidates, AS_OF)
        self.assertEqual([item.loan_id for item in items], ["loan_b", "loan_c"])

    def test_filter_by_priority(self) -> None:
        items = prioritize(self.candidates, AS_OF, priority_filter=CollectionPriority.MEDIUM)
        self.assertEqual([item.loan_id for item in items], ["loan_c"])

    def test_sort_keys(self) -> None:
        items = prioritize(self.candidates, AS_OF)
        by_amount = sort_collection_items(items, "amount")
        by_overdue = sort_collection_items(items, CollectionSortKey.OVERDUE)
        self.assertEqual(by_amount[0].loan_id, "loan_b")
        self.assertEqual(by_overdue[-1].loan_id, "loan_c")
        with self.assertRaises(ValueError):
            sort_collection_items(items, "name")

    def test_summary(self) -> None:
        summary = summarize(prioritize(self.candidates, AS_OF))
        self.assertEqual(summary.total_due, Decimal("6250.00"))
        self.assertEqual(summary.high_priority, 1)
        self.assertEqual(summary.medium_priority, 1)
        self.assertEqual(summary.low_priority, 0)
        self.assertEqual(summary.total_customers, 2)

    def test_empty_summary(self) -> None:
        summary = summarize([])
        self.assertEqual(summary.total_due, Decimal("0"))
        self.assertEqual(summary.total_customers, 0)


if __name__ == "__main__":
    unittest.main()
