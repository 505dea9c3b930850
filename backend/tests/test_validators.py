"""
Tests for payment input validation utilities.

Tests: normalize_msisdn, validate_email, validate_country_code, validate_currency
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from fastapi import HTTPException

from domain.errors import ValidationError
from utils.validators import (
    normalize_msisdn,
    validate_country_code,
    validate_currency,
    validate_email,
)


class TestNormalizeMsisdn:
    """Phone numbers for MoMo request-to-pay."""

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [
        "+237 670 000 000",
        "00237670000000",
        "237-670-000-000",
        "(237) 670.000.000",
    ])
    def test_formats_normalized(self, raw):
        assert normalize_msisdn(raw) == "237670000000"

    @pytest.mark.unit
    def test_missing_raises_400(self):
        with pytest.raises(HTTPException) as exc_info:
            normalize_msisdn(None)
        assert exc_info.value.status_code == 400
        assert "required" in exc_info.value.detail.lower()

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["1234567", "1234567890123456", "+237abc00000"])
    def test_bad_numbers_rejected(self, raw):
        with pytest.raises(ValidationError):
            normalize_msisdn(raw)


class TestValidateEmail:

    @pytest.mark.unit
    def test_valid_email_stripped(self):
        assert validate_email("  buyer@example.com ") == "buyer@example.com"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["", "buyer", "buyer@", "a b@example.com"])
    def test_invalid_email(self, raw):
        with pytest.raises(ValidationError):
            validate_email(raw)


class TestCodes:

    @pytest.mark.unit
    def test_country_code_upper_cased(self):
        assert validate_country_code("cm") == "CM"

    @pytest.mark.unit
    def test_country_code_length(self):
        with pytest.raises(ValidationError):
            validate_country_code("CMR")

    @pytest.mark.unit
    def test_currency_upper_cased(self):
        assert validate_currency(" xaf ") == "XAF"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["", "US", "EURO", "12A"])
    def test_currency_rejected(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            validate_currency(raw)
        assert exc_info.value.status_code == 400
