"""Customer domain model with KYC identity fields."""

import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from microlend.common.validators import normalize_nic, normalize_phone, validate_postal_code

from .base import BaseDocumentModel, Money
from .enums import KycStatus


logger = logging.getLogger(__name__)


class AddressModel(BaseModel):
    """Postal address of a borrower."""

    street: str = Field(..., min_length=2)
    city: str = Field(..., min_length=2)
    district: str = Field(..., min_length=2)
    postal_code: str = Field(...)

    @field_validator("postal_code")
    @classmethod
    def _validate_postal_code(cls, value: str) -> str:
        """Postal codes are five digits."""
        if not validate_postal_code(value):
            raise ValueError("postal_code must be 5 digits")
        return value.strip()


class CustomerModel(BaseDocumentModel):
    """Represents a borrower onboarded by a field agent."""

    customer_id: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    nic: str = Field(...)
    phone: str = Field(...)
    alternate_phone: Optional[str] = Field(default=None)
    address: AddressModel
    occupation: Optional[str] = Field(default=None)
    monthly_income: Optional[Money] = Field(default=None, ge=0)
    agent_id: Optional[str] = Field(default=None)
    kyc_status: KycStatus = Field(default=KycStatus.NOT_STARTED)
    active_loans: int = Field(default=0, ge=0)

    @field_validator("nic")
    @classmethod
    def _normalize_nic(cls, value: str) -> str:
        """Upper-case a valid old- or new-format NIC."""
        return normalize_nic(value)

    @field_validator("phone", "alternate_phone")
    @classmethod
    def _normalize_phone(cls, value: Optional[str]) -> Optional[str]:
        """Store mobile numbers in the 10-digit local form."""
        if value is None:
            return None
        return normalize_phone(value)

    @property
    def full_name(self) -> str:
        """First and last name joined for display."""
        return "{0} {1}".format(self.first_name, self.last_name)
