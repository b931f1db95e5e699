"""Unit tests for payment classification and waterfall allocation."""

from decimal import Decimal
import unittest

from microlend.common.payment_allocation import classify_and_allocate, classify_payment
from microlend.models.enums import PaymentType
from microlend.models.exceptions import InconsistentLoanState, InvalidPaymentAmount


class ClassificationTests(unittest.TestCase):
    """The first matching rule decides the payment type."""

    def test_boundaries_around_the_due_amount(self) -> None:
        due = Decimal("2108.33")
        outstanding = Decimal("90000.00")
        self.assertEqual(classify_payment(due, Decimal("2108.33"), outstanding), PaymentType.REGULAR)
        self.assertEqual(classify_payment(due, Decimal("2108.32"), outstanding), PaymentType.PARTIAL)
        self.assertEqual(classify_payment(due, Decimal("2108.34"), outstanding), PaymentType.ADVANCE)

    def test_clearing_the_balance_is_settlement(self) -> None:
        self.assertEqual(classify_payment(1250, 5000, 5000), PaymentType.SETTLEMENT)
        self.assertEqual(classify_payment(1250, 5099, 5000, penalty_due=100), PaymentType.ADVANCE)
        self.assertEqual(classify_payment(1250, 5100, 5000, penalty_due=100), PaymentType.SETTLEMENT)

    def test_last_installment_equal_to_balance_is_regular(self) -> None:
        self.assertEqual(classify_payment(1250, 1250, 1250), PaymentType.REGULAR)

    def test_penalty_only_payment(self) -> None:
        self.assertEqual(classify_payment(0, 30, 5000, penalty_due=50), PaymentType.PENALTY)
        self.assertEqual(classify_payment(0, 60, 5000, penalty_due=50), PaymentType.ADVANCE)

    def test_invalid_amounts(self) -> None:
        for amount in (0, Decimal("-5"), "abc", float("nan"), None, "0.001"):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidPaymentAmount):
                    classify_payment(1250, amount, 5000)

    def test_negative_due_is_inconsistent(self) -> None:
        with self.assertRaises(InconsistentLoanState):
            classify_and_allocate(Decimal("-1"), 100, 1000)


class AllocationTests(unittest.TestCase):
    """Penalty first, then interest, then principal, then advance."""

    def test_partial_payment_with_penalty(self) -> None:
        decision = classify_and_allocate(
            due_amount=Decimal("2108.33"),
            payment_amount=Decimal("1500"),
            outstanding_balance=Decimal("90000"),
            penalty_due=Decimal("100"),
            interest_due=Decimal("288.50"),
        )
        self.assertEqual(decision.payment_type, PaymentType.PARTIAL)
        allocation = decision.allocation
        self.assertEqual(allocation.penalty, Decimal("100.00"))
        self.assertEqual(allocation.interest, Decimal("288.50"))
        self.assertEqual(allocation.principal, Decimal("1111.50"))
        self.assertEqual(allocation.advance, Decimal("0"))
        self.assertEqual(allocation.total, Decimal("1500.00"))

    def test_double_installment_is_advance(self) -> None:
        decision = classify_and_allocate(
            due_amount=Decimal("2108.33"),
            payment_amount=Decimal("4216.66"),
            outstanding_balance=Decimal("90000"),
            interest_due=Decimal("288.50"),
        )
        self.assertEqual(decision.payment_type, PaymentType.ADVANCE)
        self.assertEqual(decision.allocation.interest, Decimal("288.50"))
        self.assertEqual(decision.allocation.principal, Decimal("1819.83"))
        self.assertEqual(decision.allocation.advance, Decimal("2108.33"))
        self.assertEqual(decision.allocation.penalty, Decimal("0"))

    def test_settlement_pays_off_principal_and_keeps_the_excess(self) -> None:
        decision = classify_and_allocate(
            due_amount=Decimal("1250"),
            payment_amount=Decimal("5200"),
            outstanding_balance=Decimal("5000"),
            interest_due=Decimal("250"),
        )
        self.assertEqual(decision.payment_type, PaymentType.SETTLEMENT)
        self.assertEqual(decision.allocation.interest, Decimal("250.00"))
        self.assertEqual(decision.allocation.principal, Decimal("4750.00"))
        self.assertEqual(decision.allocation.advance, Decimal("200.00"))

    def test_settlement_with_penalty(self) -> None:
        decision = classify_and_allocate(
            due_amount=Decimal("1250"),
            payment_amount=Decimal("5100"),
            outstanding_balance=Decimal("5000"),
            penalty_due=Decimal("100"),
            interest_due=Decimal("250"),
        )
        self.assertEqual(decision.payment_type, PaymentType.SETTLEMENT)
        self.assertEqual(decision.allocation.penalty, Decimal("100.00"))
        self.assertEqual(decision.allocation.principal, Decimal("4750.00"))
        self.assertEqual(decision.allocation.advance, Decimal("0"))

    def test_penalty_payment_only_touches_penalty(self) -> None:
        decision = classify_and_allocate(0, Decimal("30"), Decimal("5000"), penalty_due=Decimal("50"))
        self.assertEqual(decision.payment_type, PaymentType.PENALTY)
        self.assertEqual(decision.allocation.as_dict()["penalty"], Decimal("30.00"))
        self.assertEqual(decision.allocation.principal + decision.allocation.interest, Decimal("0"))

    def test_interest_due_is_capped_by_due_amount(self) -> None:
        decision = classify_and_allocate(Decimal("100"), Decimal("100"), Decimal("5000"), interest_due=Decimal("250"))
        self.assertEqual(decision.payment_type, PaymentType.REGULAR)
        self.assertEqual(decision.allocation.interest, Decimal("100.00"))
        self.assertEqual(decision.allocation.principal, Decimal("0"))

    def test_buckets_always_sum_to_the_payment(self) -> None:
        cases = [
            ("1250", "1", "12500", "0", "250"),
            ("1250", "1249.99", "12500", "15", "250"),
            ("1250", "3000", "12500", "15", "250"),
            ("1250", "12515", "12500", "15", "250"),
            ("0", "10", "12500", "15", "0"),
        ]
        for due, amount, outstanding, penalty, interest in cases:
            with self.subTest(amount=amount):
                decision = classify_and_allocate(due, amount, outstanding, penalty, interest)
                self.assertEqual(decision.allocation.total, Decimal(amount))
                for bucket in decision.allocation.as_dict().values():
                    self.assertGreaterEqual(bucket, Decimal("0"))


if __name__ == "__main__":
    unittest.main()
