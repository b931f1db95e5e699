"""Public model package exports for the microlend backend."""

from .base import BaseDocumentModel, Money, Rate
from .customers import AddressModel, CustomerModel
from .enums import (
    CollectionPriority,
    CollectionSortKey,
    KycStatus,
    LoanStatus,
    PaymentMethod,
    PaymentType,
    RepaymentMethod,
)
from .exceptions import (
    InconsistentLoanState,
    InvalidInputError,
    InvalidLoanParameters,
    InvalidLoanTransition,
    DuplicateRecordError,
    InvalidPaymentAmount,
    LendingRuleError,
    ModelError,
    ModelNotFoundError,
    ModelValidationError,
    VersionConflictError,
)
from .loans import LoanModel
from .payments import AllocationModel, PaymentModel
from .repositories import CustomerRepository, LoanRepository, PaymentRepository

__all__ = [
    "BaseDocumentModel",
    "Money",
    "Rate",
    "AddressModel",
    "CustomerModel",
    "LoanModel",
    "AllocationModel",
    "PaymentModel",
    "CollectionPriority",
    "CollectionSortKey",
    "KycStatus",
    "LoanStatus",
    "PaymentMethod",
    "PaymentType",
    "RepaymentMethod",
    "LendingRuleError",
    "InvalidLoanParameters",
    "InconsistentLoanState",
    "InvalidPaymentAmount",
    "InvalidLoanTransition",
    "InvalidInputError",
    "ModelError",
    "ModelValidationError",
    "ModelNotFoundError",
    "VersionConflictError",
    "DuplicateRecordError",
    "CustomerRepository",
    "LoanRepository",
    "PaymentRepository",
]
