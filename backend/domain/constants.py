"""
Domain constants used across services/routers.
"""

# Synthetic link returned when TEST_MODE short-circuits the vendor call
TEST_PAYMENT_URL = "https://example.com/test-payment"

# Exchange rates are quoted against USD
BASE_CURRENCY = "USD"

# VAT percentage attached to each fetched exchange rate
DEFAULT_VAT_PERCENT = 5.0
VAT_RATES = {
    "EUR": 5.0, "GBP": 5.0, "JPY": 3.0, "CAD": 5.0, "AUD": 5.0,
    "CHF": 3.0, "CNY": 3.0, "INR": 5.0, "BRL": 5.0, "MXN": 5.0,
    "SGD": 3.0, "HKD": 3.0, "NGN": 5.0, "EGP": 5.0, "KES": 5.0, "GHS": 5.0,
    "XAF": 19.0,  # Cameroon and CEMAC countries
}

# Generic message shown to end users when a vendor rejects a payment
PAYMENT_FAILED_MESSAGE = "Payment failed, please try again."
