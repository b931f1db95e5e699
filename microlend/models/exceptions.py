"""Custom exceptions for the lending engine, model, and repository layers."""


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when model data fails custom business validation."""


class ModelNotFoundError(ModelError):
    """Raised when a requested document does not exist."""


class VersionConflictError(ModelError):
    """Raised when optimistic concurrency version checks fail."""


class DuplicateRecordError(ModelError):
    """Raised when a unique business key, such as a customer NIC, is already registered."""


class LendingRuleError(Exception):
    """Base class for loan financial engine failures."""


class InvalidLoanParameters(LendingRuleError):
    """Raised for non-positive principal, negative rate, or non-positive duration."""


class InconsistentLoanState(LendingRuleError):
    """Raised when amortization inputs imply an impossible loan state."""


class InvalidPaymentAmount(LendingRuleError):
    """Raised when a non-positive or malformed payment amount is submitted."""


class InvalidLoanTransition(LendingRuleError):
    """Raised when a loan is moved to a status its lifecycle does not allow."""


class InvalidInputError(LendingRuleError):
    """Raised when a money, date, or identifier value is malformed at the boundary."""
