"""Workflow tests for the customer, loan, payment, collection and report services over in-memory storage."""

from datetime import date
from decimal import Decimal
import unittest

from pydantic import ValidationError

from microlend.core.config import AppSettings
from microlend.models.customers import CustomerModel
from microlend.models.enums import CollectionPriority, LoanStatus, PaymentMethod, PaymentType
from microlend.models.exceptions import (
    DuplicateRecordError,
    InvalidInputError,
    InvalidLoanParameters,
    InvalidLoanTransition,
    InvalidPaymentAmount,
    ModelNotFoundError,
    VersionConflictError,
)
from microlend.repositories.memory_store import (
    InMemoryCustomerRepository,
    InMemoryDocumentStore,
    InMemoryLoanRepository,
    InMemoryPaymentRepository,
)
from microlend.services.collection_service import CollectionService
from microlend.services.customer_service import CustomerService
from microlend.services.loan_service import LoanService
from microlend.services.payment_service import PaymentService
from microlend.services.report_service import ReportService


class _Clock:
    """Settable stand-in for ``date.today``."""

    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


class ServiceTestCase(unittest.TestCase):
    """Wire the services to one shared in-memory store."""

    def setUp(self) -> None:
        self.clock = _Clock(date(2024, 1, 1))
        self.settings = AppSettings(penalty_rate=Decimal("0.02"))
        store = InMemoryDocumentStore()
        self.loans = InMemoryLoanRepository(store)
        self.payments = InMemoryPaymentRepository(store)
        self.customers = InMemoryCustomerRepository(store)
        self.loan_service = LoanService(self.settings, self.loans, self.payments, today=self.clock)
        self.payment_service = PaymentService(self.loan_service, self.loans, self.payments, today=self.clock)
        self.customer_service = CustomerService(self.customers)
        self.collection_service = CollectionService(
            self.settings,
            self.loans,
            self.payments,
            customer_lookup=self.customer_service.lookup,
            today=self.clock,
        )
        self.report_service = ReportService(self.loans, self.payments, today=self.clock)

    def open_active_loan(self, agent_id: str = "agent_1", customer_id: str = "cust_1"):
        loan = self.loan_service.create_application(
            customer_id=customer_id,
            principal=Decimal("10000"),
            interest_rate=Decimal("2.5"),
            duration_weeks=10,
            agent_id=agent_id,
            purpose="Grocery stock",
        )
        self.loan_service.approve(loan.loan_id, approved_by="manager_1")
        return self.loan_service.disburse(loan.loan_id, date(2024, 1, 1))

    def pay(self, loan_id: str, on: date, amount: str, collected_by: str = "agent_1"):
        self.clock.today = on
        return self.payment_service.record_payment(loan_id, Decimal(amount), collected_by=collected_by)


class LoanLifecycleTests(ServiceTestCase):
    """Applications move through approval and disbursement."""

    def test_quote_applies_product_limits(self) -> None:
        terms = self.loan_service.quote(Decimal("10000"), Decimal("2.5"), 10)
        self.assertEqual(terms.installment_amount, Decimal("1250.00"))
        with self.assertRaises(InvalidLoanParameters):
            self.loan_service.quote(Decimal("500"), Decimal("2.5"), 10)
        with self.assertRaises(InvalidLoanParameters):
            self.loan_service.quote(Decimal("10000"), Decimal("2.5"), 60)
        with self.assertRaises(InvalidLoanParameters):
            self.loan_service.quote(Decimal("10000"), Decimal("150"), 10)

    def test_application_numbers_increase_within_the_month(self) -> None:
        first = self.loan_service.create_application("cust_1", Decimal("10000"), Decimal("2.5"), 10)
        second = self.loan_service.create_application("cust_2", Decimal("5000"), Decimal("2"), 8)
        self.assertEqual(first.loan_number, "LN2024010001")
        self.assertEqual(second.loan_number, "LN2024010002")
        self.assertEqual(first.status, LoanStatus.PENDING)
        self.assertEqual(first.installment_amount, Decimal("1250.00"))

    def test_application_requires_customer(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.loan_service.create_application(" ", Decimal("10000"), Decimal("2.5"), 10)

    def test_approve_and_disburse(self) -> None:
        loan = self.loan_service.create_application("cust_1", Decimal("10000"), Decimal("2.5"), 10)
        approved = self.loan_service.approve(loan.loan_id, approved_by="manager_1")
        self.assertEqual(approved.status, LoanStatus.APPROVED)
        self.assertEqual(approved.outstanding_balance, Decimal("12500.00"))
        self.assertEqual(approved.version, 2)
        with self.assertRaises(InvalidLoanTransition):
            self.loan_service.approve(loan.loan_id)

        active = self.loan_service.disburse(loan.loan_id, "2024-01-01")
        self.assertEqual(active.status, LoanStatus.ACTIVE)
        self.assertEqual(active.next_due_date, date(2024, 1, 8))
        self.assertEqual(active.outstanding_balance, Decimal("12500.00"))

    def test_disbursement_date_checks(self) -> None:
        loan = self.loan_service.create_application("cust_1", Decimal("10000"), Decimal("2.5"), 10)
        self.loan_service.approve(loan.loan_id)
        with self.assertRaises(InvalidInputError):
            self.loan_service.disburse(loan.loan_id, date(2024, 1, 2))
        with self.assertRaises(InvalidInputError):
            self.loan_service.disburse(loan.loan_id, date(2023, 12, 31))

    def test_reject_and_default(self) -> None:
        loan = self.loan_service.create_application("cust_1", Decimal("10000"), Decimal("2.5"), 10)
        with self.assertRaises(InvalidInputError):
            self.loan_service.reject(loan.loan_id, "")
        rejected = self.loan_service.reject(loan.loan_id, "Insufficient income")
        self.assertEqual(rejected.status, LoanStatus.REJECTED)
        with self.assertRaises(InvalidLoanTransition):
            self.loan_service.approve(loan.loan_id)

        active = self.open_active_loan()
        defaulted = self.loan_service.mark_defaulted(active.loan_id, "Customer relocated")
        self.assertEqual(defaulted.status, LoanStatus.DEFAULTED)
        self.assertEqual(defaulted.default_reason, "Customer relocated")

    def test_balance_of_active_loan(self) -> None:
        loan = self.open_active_loan()
        balance = self.loan_service.get_balance(loan.loan_id, as_of="2024-01-20")
        self.assertEqual(balance.outstanding_balance, Decimal("12500.00"))
        self.assertEqual(balance.amount_due, Decimal("2500.00"))
        self.assertEqual(balance.penalty_due, Decimal("75.00"))
        self.assertEqual(len(balance.per_installment_split), 10)
        with self.assertRaises(ModelNotFoundError):
            self.loan_service.get_balance("loan_missing")

    def test_stale_update_is_rejected(self) -> None:
        loan = self.loan_service.create_application("cust_1", Decimal("10000"), Decimal("2.5"), 10)
        stale = self.loans.get_by_id(loan.loan_id)
        self.loan_service.approve(loan.loan_id)
        with self.assertRaises(VersionConflictError):
            self.loans.update(stale.evolve(purpose="Changed"))


class PaymentWorkflowTests(ServiceTestCase):
    """Payments classify, allocate and move the loan state."""

    def test_full_repayment_and_reversal(self) -> None:
        loan = self.open_active_loan()

        first = self.pay(loan.loan_id, date(2024, 1, 8), "1250")
        self.assertEqual(first.payment.payment_type, PaymentType.REGULAR)
        self.assertEqual(first.payment.allocation.interest, Decimal("250.00"))
        self.assertEqual(first.payment.allocation.principal, Decimal("1000.00"))
        self.assertEqual(first.payment.receipt_number, "RC202401080001")
        self.assertEqual(first.payment.installments_covered, 1)
        self.assertEqual(first.loan.paid_installments, 1)
        self.assertEqual(first.loan.outstanding_balance, Decimal("11250.00"))
        self.assertEqual(first.loan.next_due_date, date(2024, 1, 15))

        second = self.pay(loan.loan_id, date(2024, 1, 15), "2000")
        self.assertEqual(second.payment.payment_type, PaymentType.ADVANCE)
        self.assertEqual(second.payment.allocation.advance, Decimal("750.00"))
        self.assertEqual(second.loan.paid_installments, 2)
        self.assertEqual(second.loan.advance_credit, Decimal("750.00"))
        self.assertEqual(second.loan.outstanding_balance, Decimal("10000.00"))

        third = self.pay(loan.loan_id, date(2024, 1, 22), "500")
        self.assertEqual(third.payment.payment_type, PaymentType.REGULAR)
        self.assertEqual(third.loan.paid_installments, 3)
        self.assertEqual(third.loan.advance_credit, Decimal("0.00"))
        self.assertEqual(third.loan.outstanding_balance, Decimal("8750.00"))

        settle = self.pay(loan.loan_id, date(2024, 1, 29), "8750")
        self.assertEqual(settle.payment.payment_type, PaymentType.SETTLEMENT)
        self.assertEqual(settle.loan.status, LoanStatus.COMPLETED)
        self.assertEqual(settle.loan.paid_installments, 10)
        self.assertEqual(settle.loan.outstanding_balance, Decimal("0.00"))
        self.assertEqual(settle.loan.completed_on, date(2024, 1, 29))
        self.assertEqual(settle.loan.total_paid, Decimal("12500.00"))
        self.assertEqual(self.loans.get_by_id(loan.loan_id).status, LoanStatus.COMPLETED)

        reversed_ = self.payment_service.reverse_payment(
            settle.payment.payment_id, reason="Cheque bounced", reversed_by="manager_1"
        )
        self.assertTrue(reversed_.payment.is_reversal)
        self.assertEqual(reversed_.payment.receipt_number, "RC202401290002")
        self.assertEqual(reversed_.loan.status, LoanStatus.ACTIVE)
        self.assertEqual(reversed_.loan.paid_installments, 3)
        self.assertEqual(reversed_.loan.outstanding_balance, Decimal("8750.00"))
        self.assertIsNone(reversed_.loan.completed_on)
        self.assertEqual(reversed_.loan.total_paid, Decimal("3750.00"))

        with self.assertRaises(InvalidLoanTransition):
            self.payment_service.reverse_payment(settle.payment.payment_id, reason="Again")
        with self.assertRaises(InvalidLoanTransition):
            self.payment_service.reverse_payment(reversed_.payment.payment_id, reason="Undo undo")

        history = self.payment_service.list_payments(loan.loan_id)
        self.assertEqual(len(history), 5)

    def test_late_payment_pays_penalty_first(self) -> None:
        loan = self.open_active_loan()
        recorded = self.pay(loan.loan_id, date(2024, 1, 20), "1325")
        self.assertEqual(recorded.payment.payment_type, PaymentType.PARTIAL)
        self.assertEqual(recorded.payment.allocation.penalty, Decimal("75.00"))
        self.assertEqual(recorded.payment.allocation.interest, Decimal("500.00"))
        self.assertEqual(recorded.payment.allocation.principal, Decimal("750.00"))
        self.assertEqual(recorded.loan.paid_installments, 1)
        self.assertEqual(recorded.loan.penalty_accrued, Decimal("75.00"))
        self.assertEqual(recorded.balance.penalty_due, Decimal("0.00"))

    def test_each_late_installment_pays_its_own_penalty(self) -> None:
        loan = self.open_active_loan()
        first = self.pay(loan.loan_id, date(2024, 1, 10), "1275")
        self.assertEqual(first.payment.allocation.penalty, Decimal("25.00"))
        self.assertEqual(first.loan.paid_installments, 1)

        second = self.pay(loan.loan_id, date(2024, 1, 17), "1275")
        self.assertEqual(second.payment.allocation.penalty, Decimal("25.00"))
        self.assertEqual(second.payment.allocation.interest, Decimal("250.00"))
        self.assertEqual(second.payment.allocation.principal, Decimal("1000.00"))
        self.assertEqual(second.loan.paid_installments, 2)

        balance = self.loan_service.get_balance(loan.loan_id, as_of=date(2024, 1, 24))
        self.assertEqual(balance.penalty_accrued, Decimal("75.00"))
        self.assertEqual(balance.penalty_due, Decimal("25.00"))

    def test_reversal_date_checks(self) -> None:
        loan = self.open_active_loan()
        paid = self.pay(loan.loan_id, date(2024, 1, 8), "1250")
        with self.assertRaises(InvalidInputError):
            self.payment_service.reverse_payment(
                paid.payment.payment_id, reason="Cheque bounced", reversal_date=date(2024, 1, 9)
            )
        with self.assertRaises(InvalidInputError):
            self.payment_service.reverse_payment(
                paid.payment.payment_id, reason="Cheque bounced", reversal_date=date(2024, 1, 7)
            )
        self.assertEqual(len(self.payment_service.list_payments(loan.loan_id)), 1)

        reversed_ = self.payment_service.reverse_payment(
            paid.payment.payment_id, reason="Cheque bounced", reversal_date="2024-01-08"
        )
        self.assertEqual(reversed_.payment.payment_date, date(2024, 1, 8))

    def test_payment_errors(self) -> None:
        loan = self.open_active_loan()
        self.clock.today = date(2024, 1, 8)
        with self.assertRaises(InvalidInputError):
            self.payment_service.record_payment(loan.loan_id, Decimal("1250"), payment_date=date(2024, 1, 9))
        with self.assertRaises(InvalidPaymentAmount):
            self.payment_service.record_payment(loan.loan_id, Decimal("0"))
        with self.assertRaises(ModelNotFoundError):
            self.payment_service.record_payment("loan_missing", Decimal("1250"))

        pending = self.loan_service.create_application("cust_2", Decimal("10000"), Decimal("2.5"), 10)
        with self.assertRaises(InvalidLoanTransition):
            self.payment_service.record_payment(pending.loan_id, Decimal("1250"))

    def test_daily_collection_summary(self) -> None:
        loan = self.open_active_loan()
        self.pay(loan.loan_id, date(2024, 1, 8), "1250")
        self.clock.today = date(2024, 1, 8)
        self.payment_service.record_payment(
            loan.loan_id, Decimal("100"), payment_method=PaymentMethod.MOBILE_MONEY, collected_by="agent_2"
        )

        summary = self.payment_service.daily_collection_summary("agent_1", date(2024, 1, 8))
        self.assertEqual(summary.payment_count, 1)
        self.assertEqual(summary.total_collected, Decimal("1250.00"))
        self.assertEqual(summary.by_type, {"REGULAR": Decimal("1250.00")})
        self.assertEqual(summary.by_method, {"CASH": Decimal("1250.00")})

        empty = self.payment_service.daily_collection_summary("agent_1", date(2024, 1, 9))
        self.assertEqual(empty.payment_count, 0)
        self.assertEqual(empty.total_collected, Decimal("0"))


class CollectionReportTests(ServiceTestCase):
    """Report over every ACTIVE loan."""

    def test_report_ranks_overdue_loans(self) -> None:
        behind = self.open_active_loan(agent_id="agent_1")
        current = self.open_active_loan(agent_id="agent_2")
        self.pay(behind.loan_id, date(2024, 1, 8), "1250")
        for on in (date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)):
            self.pay(current.loan_id, on, "1250", collected_by="agent_2")

        report = self.collection_service.build_report(as_of=date(2024, 2, 5))
        self.assertEqual([item.loan_id for item in report.items], [behind.loan_id, current.loan_id])
        self.assertEqual(report.items[0].priority, CollectionPriority.HIGH)
        self.assertEqual(report.items[0].overdue_weeks, 4)
        self.assertEqual(report.items[0].due_amount, Decimal("5000.00"))
        self.assertEqual(report.items[1].priority, CollectionPriority.MEDIUM)
        self.assertEqual(report.summary.total_due, Decimal("6250.00"))

        mine = self.collection_service.build_report(as_of=date(2024, 2, 5), agent_id="agent_2")
        self.assertEqual([item.loan_id for item in mine.items], [current.loan_id])

        high = self.collection_service.build_report(as_of="2024-02-05", priority="HIGH", sort_by="amount")
        self.assertEqual(len(high.items), 1)

        with self.assertRaises(InvalidInputError):
            self.collection_service.build_report(as_of=date(2024, 2, 5), sort_by="name")

    def test_report_includes_customer_contact(self) -> None:
        customer = CustomerModel(
            customer_id="cust_1",
            first_name="Nimal",
            last_name="Perera",
            nic="199012345678",
            phone="+94771234567",
            address={"street": "12 Temple Road", "city": "Kandy", "district": "Kandy", "postal_code": "20000"},
        )
        service = CollectionService(
            self.settings,
            self.loans,
            self.payments,
            customer_lookup={"cust_1": customer}.get,
            today=self.clock,
        )
        self.open_active_loan()
        self.clock.today = date(2024, 1, 20)

        report = service.build_report()
        self.assertEqual(report.as_of, date(2024, 1, 20))
        self.assertEqual(report.items[0].customer_name, "Nimal Perera")
        self.assertEqual(report.items[0].customer_phone, "0771234567")
        self.assertEqual(report.items[0].priority, CollectionPriority.HIGH)

    def test_registered_customer_appears_on_report(self) -> None:
        customer = self.customer_service.create_customer(
            first_name="Kumari",
            last_name="Silva",
            nic="856789012V",
            phone="0719876543",
            address={"street": "4 Lake Drive", "city": "Galle", "district": "Galle", "postal_code": "80000"},
        )
        self.open_active_loan(customer_id=customer.customer_id)
        self.open_active_loan(customer_id="cust_unregistered")

        report = self.collection_service.build_report(as_of=date(2024, 1, 20))
        names = {item.customer_id: item.customer_name for item in report.items}
        self.assertEqual(names[customer.customer_id], "Kumari Silva")
        self.assertIsNone(names["cust_unregistered"])


ADDRESS = {"street": "12 Temple Road", "city": "Kandy", "district": "Kandy", "postal_code": "20000"}


class CustomerServiceTests(ServiceTestCase):
    """Borrowers are registered once per NIC."""

    def test_register_and_find(self) -> None:
        customer = self.customer_service.create_customer(
            first_name="Nimal",
            last_name="Perera",
            nic="851234567v",
            phone="+94771234567",
            address=ADDRESS,
            monthly_income=Decimal("45000"),
            agent_id="agent_1",
        )
        self.assertTrue(customer.customer_id.startswith("cust_"))
        self.assertEqual(customer.nic, "851234567V")
        self.assertEqual(customer.phone, "0771234567")

        self.assertEqual(self.customer_service.get_customer(customer.customer_id).full_name, "Nimal Perera")
        self.assertEqual(self.customer_service.get_customer_by_nic("851234567v").customer_id, customer.customer_id)
        self.assertEqual(self.customer_service.lookup(customer.customer_id).nic, "851234567V")
        self.assertIsNone(self.customer_service.lookup("cust_missing"))

    def test_duplicate_nic_is_rejected(self) -> None:
        self.customer_service.create_customer("Nimal", "Perera", "851234567V", "0771234567", ADDRESS)
        with self.assertRaises(DuplicateRecordError):
            self.customer_service.create_customer("Sunil", "Perera", "851234567v", "0777654321", ADDRESS)

    def test_lookup_errors(self) -> None:
        with self.assertRaises(ModelNotFoundError):
            self.customer_service.get_customer_by_nic("199012345678")
        with self.assertRaises(ModelNotFoundError):
            self.customer_service.get_customer("cust_missing")
        with self.assertRaises(InvalidInputError):
            self.customer_service.get_customer_by_nic("12345")
        with self.assertRaises(InvalidInputError):
            self.customer_service.create_customer("Nimal", "Perera", "ABC", "0771234567", ADDRESS)

    def test_invalid_phone_fails_model_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.customer_service.create_customer("Nimal", "Perera", "199012345678", "12345", ADDRESS)
        self.assertIsNone(self.customers.find_by_nic("199012345678"))


class PortfolioReportTests(ServiceTestCase):
    """Portfolio totals replayed from loans and their payment histories."""

    def setUp(self) -> None:
        super().setUp()
        self.behind = self.open_active_loan(agent_id="agent_1")
        self.current = self.open_active_loan(agent_id="agent_2")
        written_off = self.open_active_loan(agent_id="agent_1")
        self.loan_service.create_application("cust_3", Decimal("5000"), Decimal("2"), 8)
        self.loan_service.mark_defaulted(written_off.loan_id, "Customer relocated")

        self.pay(self.behind.loan_id, date(2024, 1, 8), "1250")
        for on in (date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)):
            self.pay(self.current.loan_id, on, "1250", collected_by="agent_2")

    def test_portfolio_summary(self) -> None:
        report = self.report_service.portfolio_summary(as_of=date(2024, 2, 5))
        self.assertEqual(report.total_loans, 4)
        self.assertEqual(report.loans_by_status["ACTIVE"], 2)
        self.assertEqual(report.loans_by_status["PENDING"], 1)
        self.assertEqual(report.loans_by_status["DEFAULTED"], 1)
        self.assertEqual(report.loans_by_status["COMPLETED"], 0)
        self.assertEqual(report.total_disbursed, Decimal("30000.00"))
        self.assertEqual(report.total_collected, Decimal("6250.00"))
        self.assertEqual(report.penalty_collected, Decimal("0.00"))
        self.assertEqual(report.outstanding_amount, Decimal("18750.00"))
        self.assertEqual(report.average_loan_size, Decimal("8750.00"))
        self.assertEqual(report.overdue_loans, 2)
        self.assertEqual(report.portfolio_at_risk, Decimal("11250.00"))
        self.assertEqual(report.portfolio_at_risk_rate, Decimal("60.00"))
        self.assertEqual(report.default_rate, Decimal("33.33"))
        self.assertEqual(report.repayment_rate, Decimal("20.83"))

    def test_portfolio_for_one_agent(self) -> None:
        self.clock.today = date(2024, 2, 5)
        report = self.report_service.portfolio_summary(agent_id="agent_2")
        self.assertEqual(report.as_of, date(2024, 2, 5))
        self.assertEqual(report.total_loans, 1)
        self.assertEqual(report.outstanding_amount, Decimal("7500.00"))
        self.assertEqual(report.overdue_loans, 1)
        self.assertEqual(report.portfolio_at_risk, Decimal("0.00"))
        self.assertEqual(report.default_rate, Decimal("0.00"))

    def test_empty_portfolio(self) -> None:
        report = self.report_service.portfolio_summary(as_of=date(2024, 2, 5), agent_id="agent_9")
        self.assertEqual(report.total_loans, 0)
        self.assertEqual(report.average_loan_size, Decimal("0.00"))
        self.assertEqual(report.repayment_rate, Decimal("0.00"))


if __name__ == "__main__":
    unittest.main()
