"""Borrower onboarding and lookup."""

import logging
from typing import Any, Dict, Optional, Union

from microlend.common.identifiers import new_document_id
from microlend.common.validators import normalize_nic, validate_nic
from microlend.models.customers import AddressModel, CustomerModel
from microlend.models.exceptions import DuplicateRecordError, InvalidInputError, ModelNotFoundError
from microlend.models.repositories import CustomerRepository


logger = logging.getLogger(__name__)


class CustomerService:
    """Registers borrowers once per NIC and resolves them for loan and collection screens."""

    def __init__(self, customer_repository: CustomerRepository) -> None:
        self._customers = customer_repository

    def create_customer(
        self,
        first_name: str,
        last_name: str,
        nic: str,
        phone: str,
        address: Union[AddressModel, Dict[str, Any]],
        alternate_phone: Optional[str] = None,
        occupation: Optional[str] = None,
        monthly_income: Any = None,
        agent_id: Optional[str] = None,
    ) -> CustomerModel:
        """Register a borrower.

        Raises:
            InvalidInputError: If the NIC is malformed.
            DuplicateRecordError: If a customer with the same NIC already exists.
            pydantic.ValidationError: If any other field fails model validation.
        """
        if not validate_nic(nic):
            raise InvalidInputError("Invalid NIC format. Use 123456789V or 123456789012.")
        normalized = normalize_nic(nic)
        if self._customers.find_by_nic(normalized) is not None:
            logger.warning("Rejected duplicate customer registration nic=%s", normalized)
            raise DuplicateRecordError("Customer with NIC {0} already exists.".format(normalized))

        customer = CustomerModel(
            customer_id=new_document_id("cust"),
            first_name=first_name,
            last_name=last_name,
            nic=normalized,
            phone=phone,
            alternate_phone=alternate_phone,
            address=address,
            occupation=occupation,
            monthly_income=monthly_income,
            agent_id=agent_id,
        )
        stored = self._customers.create(customer)
        logger.info("Customer registered customer_id=%s agent_id=%s", stored.customer_id, agent_id)
        return stored

    def get_customer(self, customer_id: str) -> CustomerModel:
        return self._customers.get_by_id(customer_id)

    def get_customer_by_nic(self, nic: str) -> CustomerModel:
        """Resolve a customer from an NIC in either case.

        Raises:
            InvalidInputError: If the NIC is malformed.
            ModelNotFoundError: If nobody is registered with it.
        """
        if not validate_nic(nic):
            raise InvalidInputError("Invalid NIC format. Use 123456789V or 123456789012.")
        customer = self._customers.find_by_nic(normalize_nic(nic))
        if customer is None:
            raise ModelNotFoundError("Customer not found for NIC {0}".format(normalize_nic(nic)))
        return customer

    def lookup(self, customer_id: str) -> Optional[CustomerModel]:
        """Return the customer or None; collection reports list loans whose customer record is missing."""
        try:
            return self._customers.get_by_id(customer_id)
        except ModelNotFoundError:
            return None
