"""Human-readable loan and receipt numbers plus opaque document ids."""

from datetime import date
from uuid import uuid4


LOAN_NUMBER_PREFIX = "LN"
RECEIPT_NUMBER_PREFIX = "RC"


def new_document_id(prefix: str) -> str:
    """Generate a prefixed unique identifier."""
    return "{0}_{1}".format(prefix, uuid4().hex[:16])


def loan_number_prefix(on: date) -> str:
    """Monthly loan number prefix, e.g. ``LN202401``."""
    return "{0}{1:04d}{2:02d}".format(LOAN_NUMBER_PREFIX, on.year, on.month)


def format_loan_number(on: date, sequence: int) -> str:
    """Loan number for the ``sequence``-th loan of the month, e.g. ``LN2024010007``."""
    return "{0}{1:04d}".format(loan_number_prefix(on), sequence)


def receipt_number_prefix(on: date) -> str:
    """Daily receipt number prefix, e.g. ``RC20240108``."""
    return "{0}{1:04d}{2:02d}{3:02d}".format(RECEIPT_NUMBER_PREFIX, on.year, on.month, on.day)


def format_receipt_number(on: date, sequence: int) -> str:
    """Receipt number for the ``sequence``-th payment of the day, e.g. ``RC202401080003``."""
    return "{0}{1:04d}".format(receipt_number_prefix(on), sequence)
