"""Decimal money and date helpers used at the loan engine input boundary."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import logging
import math
from typing import Any

from microlend.models.exceptions import InvalidInputError


logger = logging.getLogger(__name__)

MINOR_UNIT = Decimal("0.01")
HALF_MINOR_UNIT = Decimal("0.005")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
DAYS_PER_PERIOD = 7


def round_money(value: Decimal) -> Decimal:
    """Round to the currency minor unit using round-half-up."""
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Convert a primitive numeric value into a finite Decimal.

    Floats go through ``str`` so ``2108.33`` stays ``Decimal("2108.33")``.

    Raises:
        InvalidInputError: If the value is missing, boolean, non-numeric, NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        raise InvalidInputError("{0} is required and must be numeric.".format(field_name))

    try:
        if isinstance(value, Decimal):
            candidate = value
        elif isinstance(value, int):
            candidate = Decimal(value)
        elif isinstance(value, float):
            if not math.isfinite(value):
                raise InvalidInputError("{0} must be a finite number.".format(field_name))
            candidate = Decimal(str(value))
        elif isinstance(value, str):
            candidate = Decimal(value.strip().replace(",", ""))
        else:
            raise InvalidInputError("{0} has unsupported type {1}.".format(field_name, type(value).__name__))
    except InvalidOperation:
        logger.warning("Rejected malformed numeric input field=%s value=%r", field_name, value)
        raise InvalidInputError("{0} is not a valid number: {1!r}".format(field_name, value))

    if not candidate.is_finite():
        raise InvalidInputError("{0} must be a finite number.".format(field_name))
    return candidate


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Convert a primitive value into a Decimal rounded to the minor unit."""
    return round_money(to_decimal(value, field_name))


def to_date(value: Any, field_name: str = "date") -> date:
    """Validate a date input, accepting ISO-8601 strings.

    Raises:
        InvalidInputError: If the value cannot be read as a calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise InvalidInputError("{0} must be an ISO date (YYYY-MM-DD): {1!r}".format(field_name, value))
    raise InvalidInputError("{0} is required and must be a date.".format(field_name))
