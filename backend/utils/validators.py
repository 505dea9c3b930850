"""
Input validation utilities for payment requests.

Raise ValidationError (400) so callers get the standard error envelope.
"""
import re
from typing import Optional

from fastapi import Path

from domain.errors import ValidationError

_MSISDN_RE = re.compile(r"^\d{8,15}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_msisdn(mobile: Optional[str]) -> str:
    """
    Normalize a phone number to international MSISDN digits.

    Strips spaces, dashes, parentheses and a leading '+' / '00'.

    Raises:
        ValidationError if the result is not 8-15 digits
    """
    if not mobile:
        raise ValidationError("Mobile number is required", field="mobile")
    digits = re.sub(r"[\s\-().]", "", mobile)
    if digits.startswith("+"):
        digits = digits[1:]
    elif digits.startswith("00"):
        digits = digits[2:]
    if not _MSISDN_RE.match(digits):
        raise ValidationError("Invalid mobile number", field="mobile")
    return digits


def validate_email(email: str) -> str:
    if not email or not _EMAIL_RE.match(email.strip()):
        raise ValidationError("Invalid email address", field="email")
    return email.strip()


def validate_country_code(code: str) -> str:
    """ISO 3166-1 alpha-2, returned upper-cased."""
    normalized = (code or "").strip().upper()
    if not _COUNTRY_RE.match(normalized):
        raise ValidationError("Country code must be 2 letters", field="country_code")
    return normalized


def validate_currency(code: str) -> str:
    """ISO 4217 alpha-3, returned upper-cased."""
    normalized = (code or "").strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise ValidationError("Currency must be a 3-letter ISO code", field="currency")
    return normalized


def validated_currency_path(currency: str = Path(..., description="ISO 4217 currency code")) -> str:
    """FastAPI dependency for validating currency path parameters."""
    return validate_currency(currency)
