"""Loan domain model holding fixed weekly terms and mutable repayment state."""

from datetime import date
from decimal import Decimal
import logging
from typing import Optional

from pydantic import Field, model_validator

from .base import BaseDocumentModel, Money, Rate
from .enums import LoanStatus, RepaymentMethod


logger = logging.getLogger(__name__)

_STATUSES_WITH_TERMS = {
    LoanStatus.APPROVED,
    LoanStatus.ACTIVE,
    LoanStatus.COMPLETED,
    LoanStatus.DEFAULTED,
}
_DISBURSED_STATUSES = {
    LoanStatus.ACTIVE,
    LoanStatus.COMPLETED,
    LoanStatus.DEFAULTED,
}


class LoanModel(BaseDocumentModel):
    """Represents a weekly-installment micro loan."""

    loan_id: str = Field(..., min_length=3)
    loan_number: str = Field(..., min_length=3)
    customer_id: str = Field(..., min_length=1)
    agent_id: Optional[str] = Field(default=None)
    purpose: Optional[str] = Field(default=None)
    currency: str = Field(default="LKR", min_length=3, max_length=3)

    principal: Money = Field(..., gt=0, decimal_places=2)
    interest_rate: Rate = Field(..., ge=0)
    duration_weeks: int = Field(..., ge=1)
    method: RepaymentMethod = Field(default=RepaymentMethod.FLAT)

    installment_amount: Optional[Money] = Field(default=None, gt=0)
    total_repayment: Optional[Money] = Field(default=None, gt=0)
    total_interest: Optional[Money] = Field(default=None)

    status: LoanStatus = Field(default=LoanStatus.PENDING)
    application_date: date = Field(default_factory=date.today)
    approved_by: Optional[str] = Field(default=None)
    rejection_reason: Optional[str] = Field(default=None)
    default_reason: Optional[str] = Field(default=None)
    disbursed_on: Optional[date] = Field(default=None)
    completed_on: Optional[date] = Field(default=None)

    paid_installments: int = Field(default=0, ge=0)
    outstanding_balance: Money = Field(default=Decimal("0.00"), ge=0)
    penalty_accrued: Money = Field(default=Decimal("0.00"), ge=0)
    advance_credit: Money = Field(default=Decimal("0.00"), ge=0)
    total_paid: Money = Field(default=Decimal("0.00"), ge=0)
    next_due_date: Optional[date] = Field(default=None)
    last_payment_date: Optional[date] = Field(default=None)

    @model_validator(mode="after")
    def _validate_lifecycle_fields(self) -> "LoanModel":
        """Require fixed terms once approved and a disbursement date once active."""
        try:
            if self.status in _STATUSES_WITH_TERMS and (
                self.installment_amount is None or self.total_repayment is None or self.total_interest is None
            ):
                raise ValueError("installment_amount, total_repayment and total_interest are required once approved")
            if self.total_repayment is not None and self.total_repayment < self.principal:
                raise ValueError("total_repayment cannot be below principal")
            if self.status in _DISBURSED_STATUSES and self.disbursed_on is None:
                raise ValueError("disbursed_on is required once the loan is disbursed")
            if self.paid_installments > self.duration_weeks and self.status == LoanStatus.ACTIVE:
                raise ValueError("an ACTIVE loan cannot have more paid installments than its duration")
            return self
        except ValueError:
            logger.exception("Loan validation failed loan_id=%s status=%s", self.loan_id, self.status)
            raise
