"""Format-level checks for Sri Lankan customer identifiers run before any financial logic."""

import re
from typing import Optional


# Old NIC: 9 digits + V/X (123456789V). New NIC: 12 digits (199012345678).
_NIC_PATTERN = re.compile(r"^([0-9]{9}[VvXx]|[0-9]{12})$")
_POSTAL_CODE_PATTERN = re.compile(r"^[0-9]{5}$")
_NON_DIGITS = re.compile(r"\D")


def validate_nic(nic: Optional[str]) -> bool:
    """Return True when the value is an old- or new-format national identity card number."""
    if not nic:
        return False
    return bool(_NIC_PATTERN.match(nic.strip()))


def normalize_nic(nic: str) -> str:
    """Return the NIC trimmed and upper-cased (``123456789v`` -> ``123456789V``).

    Raises:
        ValueError: If the NIC format is invalid.
    """
    if not validate_nic(nic):
        raise ValueError("Invalid NIC format. Use 123456789V or 123456789012.")
    return nic.strip().upper()


def _phone_digits(phone: Optional[str]) -> str:
    return _NON_DIGITS.sub("", phone or "")


def validate_phone(phone: Optional[str]) -> bool:
    """Return True for mobile numbers written as 07XXXXXXXX or (+)947XXXXXXXX."""
    digits = _phone_digits(phone)
    if len(digits) == 10 and digits.startswith("07"):
        return True
    if len(digits) == 11 and digits.startswith("947"):
        return True
    return False


def normalize_phone(phone: str) -> str:
    """Return the 10-digit local form of a mobile number (``+94771234567`` -> ``0771234567``).

    Raises:
        ValueError: If the phone number is not a valid mobile number.
    """
    if not validate_phone(phone):
        raise ValueError("Phone number must be 07XXXXXXXX or +947XXXXXXXX.")
    digits = _phone_digits(phone)
    if digits.startswith("94"):
        return "0" + digits[2:]
    return digits


def format_phone(phone: str, international: bool = False) -> str:
    """Format a mobile number for display, returning the input unchanged when it is not valid."""
    if not validate_phone(phone):
        return phone
    local = normalize_phone(phone)
    if international:
        number = local[1:]
        return "+94 {0} {1} {2}".format(number[:2], number[2:5], number[5:])
    return "{0} {1} {2}".format(local[:3], local[3:6], local[6:])


def validate_postal_code(postal_code: Optional[str]) -> bool:
    """Return True for a five-digit postal code."""
    if not postal_code:
        return False
    return bool(_POSTAL_CODE_PATTERN.match(postal_code.strip()))
