"""Reusable enums for micro-lending domain models."""

from enum import Enum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class LoanStatus(StringEnum):
    """Loan lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    REJECTED = "REJECTED"


class RepaymentMethod(StringEnum):
    """Interest calculation methods for weekly loans."""

    FLAT = "FLAT"
    REDUCING_BALANCE = "REDUCING_BALANCE"


class PaymentType(StringEnum):
    """Payment classification derived from the amount due at collection time."""

    REGULAR = "REGULAR"
    PARTIAL = "PARTIAL"
    ADVANCE = "ADVANCE"
    PENALTY = "PENALTY"
    SETTLEMENT = "SETTLEMENT"


class PaymentMethod(StringEnum):
    """Channels a field agent can collect a payment through."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    CHEQUE = "CHEQUE"


class CollectionPriority(StringEnum):
    """Field-collection priority tiers."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class CollectionSortKey(StringEnum):
    """Sort keys supported by the collection report."""

    PRIORITY = "priority"
    AMOUNT = "amount"
    OVERDUE = "overdue"


class KycStatus(StringEnum):
    """KYC verification lifecycle states."""

    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
