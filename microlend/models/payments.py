"""Append-only payment records with their bucket allocation."""

from datetime import date
from decimal import Decimal
import logging
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .base import BaseDocumentModel, Money
from .enums import PaymentMethod, PaymentType


logger = logging.getLogger(__name__)


class AllocationModel(BaseModel):
    """Amounts of one payment assigned to penalty, interest, principal, and advance."""

    principal: Money = Field(default=Decimal("0.00"), ge=0)
    interest: Money = Field(default=Decimal("0.00"), ge=0)
    penalty: Money = Field(default=Decimal("0.00"), ge=0)
    advance: Money = Field(default=Decimal("0.00"), ge=0)

    @property
    def total(self) -> Money:
        """Sum of all buckets."""
        return self.principal + self.interest + self.penalty + self.advance


class PaymentModel(BaseDocumentModel):
    """Represents one collected payment, or the reversal of an earlier one."""

    payment_id: str = Field(..., min_length=3)
    loan_id: str = Field(..., min_length=3)
    customer_id: str = Field(..., min_length=1)
    collected_by: Optional[str] = Field(default=None)

    amount: Money = Field(..., gt=0)
    payment_date: date = Field(...)
    payment_type: PaymentType = Field(...)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    allocation: AllocationModel = Field(default_factory=AllocationModel)
    receipt_number: str = Field(..., min_length=3)
    installments_covered: int = Field(default=0, ge=0)

    is_reversal: bool = Field(default=False)
    reverses_payment_id: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def _validate_allocation(self) -> "PaymentModel":
        """Allocation buckets must add up to the payment amount exactly."""
        try:
            if self.allocation.total != self.amount:
                raise ValueError(
                    "allocation total {0} does not equal amount {1}".format(self.allocation.total, self.amount)
                )
            if self.is_reversal and not self.reverses_payment_id:
                raise ValueError("reverses_payment_id is required for a reversal record")
            return self
        except ValueError:
            logger.exception("Payment validation failed payment_id=%s loan_id=%s", self.payment_id, self.loan_id)
            raise
