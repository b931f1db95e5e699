"""Repository interfaces for datastore-agnostic model access."""

from abc import ABC, abstractmethod
from datetime import date
import logging
from typing import List, Optional

from pydantic import ValidationError

from .customers import CustomerModel
from .enums import LoanStatus
from .exceptions import ModelNotFoundError, VersionConflictError
from .loans import LoanModel
from .payments import PaymentModel


logger = logging.getLogger(__name__)


class CustomerRepository(ABC):
    """Customer data access abstraction."""

    @abstractmethod
    def create(self, model: CustomerModel) -> CustomerModel:
        """Persist a new customer model.

        Raises:
            VersionConflictError: If a customer with the same id exists.
        """

    @abstractmethod
    def get_by_id(self, model_id: str) -> CustomerModel:
        """Fetch a customer by identifier.

        Raises:
            ModelNotFoundError: If customer does not exist.
        """

    @abstractmethod
    def find_by_nic(self, nic: str) -> Optional[CustomerModel]:
        """Return the non-deleted customer registered with ``nic``, if any."""


class LoanRepository(ABC):
    """Loan data access abstraction."""

    @abstractmethod
    def create(self, model: LoanModel) -> LoanModel:
        """Persist a new loan model."""

    @abstractmethod
    def get_by_id(self, model_id: str) -> LoanModel:
        """Fetch a loan by identifier.

        Raises:
            ModelNotFoundError: If loan does not exist.
            ValidationError: If payload is malformed.
        """

    @abstractmethod
    def update(self, model: LoanModel) -> LoanModel:
        """Update loan document with a compare-and-swap on ``version``.

        The stored version must equal ``model.version - 1``.

        Raises:
            ModelNotFoundError: If loan does not exist.
            VersionConflictError: If the stored version moved on since the model was read.
        """

    @abstractmethod
    def list_by_status(self, status: LoanStatus) -> List[LoanModel]:
        """Return non-deleted loans with the given status."""

    @abstractmethod
    def count_by_number_prefix(self, prefix: str) -> int:
        """Count loans whose loan number starts with ``prefix``."""


class PaymentRepository(ABC):
    """Append-only payment data access abstraction.

    Payments are never updated or deleted; corrections are new reversal records.
    """

    @abstractmethod
    def get_by_id(self, model_id: str) -> PaymentModel:
        """Fetch a payment by identifier.

        Raises:
            ModelNotFoundError: If payment does not exist.
        """

    @abstractmethod
    def list_for_loan(self, loan_id: str) -> List[PaymentModel]:
        """Return every payment and reversal for a loan ordered by payment date."""

    @abstractmethod
    def list_by_collector(self, collected_by: str, on: Optional[date] = None) -> List[PaymentModel]:
        """Return payments collected by one agent, optionally for one day."""

    @abstractmethod
    def count_by_receipt_prefix(self, prefix: str) -> int:
        """Count payments whose receipt number starts with ``prefix``."""

    @abstractmethod
    def append(self, payment: PaymentModel, loan: LoanModel) -> PaymentModel:
        """Persist a new payment and the resulting loan update atomically.

        The loan update follows the same version rule as ``LoanRepository.update``;
        on conflict neither document is written.

        Raises:
            ModelNotFoundError: If the loan does not exist.
            VersionConflictError: If the loan changed since it was read.
        """


__all__ = [
    "ValidationError",
    "ModelNotFoundError",
    "VersionConflictError",
    "CustomerRepository",
    "LoanRepository",
    "PaymentRepository",
]
