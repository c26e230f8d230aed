"""Shared validation utilities (Korean phone numbers, email)"""

import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MOBILE_PATTERN = re.compile(r"^01[0-9]{9}$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Strip everything but digits. Empty results become None."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", str(phone))
    return digits or None


def format_phone(phone: Optional[str]) -> str:
    """
    Format a phone number for display.

    010-1234-5678, 02-123-4567, 02-1234-5678, 031-123-4567.
    Unknown shapes are returned as digits.
    """
    digits = normalize_phone(phone)
    if not digits:
        return ""

    if digits.startswith("02"):
        if len(digits) == 9:
            return f"{digits[:2]}-{digits[2:5]}-{digits[5:]}"
        if len(digits) == 10:
            return f"{digits[:2]}-{digits[2:6]}-{digits[6:]}"
        return digits

    if len(digits) == 11:
        return f"{digits[:3]}-{digits[3:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"
    return digits


def is_valid_phone(phone: Optional[str]) -> bool:
    digits = normalize_phone(phone)
    return bool(digits) and len(digits) >= 8 and digits.startswith("0")


def is_valid_mobile_phone(phone: Optional[str]) -> bool:
    digits = normalize_phone(phone)
    return bool(digits) and bool(MOBILE_PATTERN.match(digits))


def mask_phone_for_log(phone: Optional[str]) -> str:
    """010****5678 - keeps the first 3 and last 4 digits"""
    digits = normalize_phone(phone)
    if not digits:
        return "(none)"
    if len(digits) < 8:
        return "****"
    return f"{digits[:3]}****{digits[-4:]}"


def phone_search_variants(phone: Optional[str]) -> list[str]:
    """Digits plus the hyphenated form, for matching rows stored either way"""
    digits = normalize_phone(phone)
    if not digits:
        return []
    variants = [digits]
    formatted = format_phone(digits)
    if formatted and formatted != digits:
        variants.append(formatted)
    return variants


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
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    return email


def validate_kr_phone(phone: Optional[str]) -> Optional[str]:
    """Pydantic helper: normalize to digits, reject numbers that can't be Korean phones"""
    if not phone:
        return phone
    if not is_valid_phone(phone):
        raise ValueError("Invalid phone number")
    return normalize_phone(phone)
