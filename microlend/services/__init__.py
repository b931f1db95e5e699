"""Service layer exports."""

from .collection_service import CollectionReport, CollectionService
from .customer_service import CustomerService
from .loan_service import LoanService, loan_state_of, loan_terms_of
from .payment_service import DailyCollectionSummary, PaymentService, RecordedPayment
from .report_service import PortfolioReport, ReportService

__all__ = [
    "CollectionReport",
    "CollectionService",
    "CustomerService",
    "DailyCollectionSummary",
    "LoanService",
    "PaymentService",
    "PortfolioReport",
    "RecordedPayment",
    "ReportService",
    "loan_state_of",
    "loan_terms_of",
]
