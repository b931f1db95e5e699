"""Loan financial engine: pure, synchronous calculations over immutable snapshots."""

from .amortization import BalanceResult, InstallmentSplit, LoanState, build_schedule, compute_balance
from .collection_priority import (
    CollectionCandidate,
    CollectionItem,
    CollectionSummary,
    assign_priority,
    prioritize,
    sort_collection_items,
    summarize,
)
from .loan_terms import LoanTerms, annual_to_weekly_rate, compute_terms, verify_terms
from .money import round_money, to_date, to_money
from .payment_allocation import Allocation, PaymentDecision, classify_and_allocate, classify_payment
from .validators import format_phone, normalize_nic, validate_nic, validate_phone, validate_postal_code

__all__ = [
    "Allocation",
    "BalanceResult",
    "CollectionCandidate",
    "CollectionItem",
    "CollectionSummary",
    "InstallmentSplit",
    "LoanState",
    "LoanTerms",
    "PaymentDecision",
    "annual_to_weekly_rate",
    "assign_priority",
    "build_schedule",
    "classify_and_allocate",
    "classify_payment",
    "compute_balance",
    "compute_terms",
    "format_phone",
    "normalize_nic",
    "prioritize",
    "round_money",
    "sort_collection_items",
    "summarize",
    "to_date",
    "to_money",
    "validate_nic",
    "validate_phone",
    "validate_postal_code",
    "verify_terms",
]
