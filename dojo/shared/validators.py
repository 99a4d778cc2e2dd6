"""Shared validation utilities"""

import re
from typing import Optional

CANADIAN_POSTAL_CODE = re.compile(r"^[ABCEGHJ-NPRSTVXY]\d[ABCEGHJ-NPRSTV-Z] ?\d[ABCEGHJ-NPRSTV-Z]\d$")
US_ZIP_CODE = re.compile(r"^\d{5}(-\d{4})?$")


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a North American phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits")

    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """Accept Canadian postal codes (normalized to "A1A 1A1") and US ZIP codes"""
    if not postal_code:
        return postal_code

    value = postal_code.strip().upper()

    if CANADIAN_POSTAL_CODE.match(value):
        compact = value.replace(" ", "")
        return f"{compact[:3]} {compact[3:]}"

    if US_ZIP_CODE.match(value):
        return value

    raise ValueError("Invalid postal code")
