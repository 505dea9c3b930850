"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py. Vendor adapters raise them with the provider attached as context;
webhook receivers use the status code to tell "malformed or unauthenticated"
(4xx) apart from "processing failed" (5xx).
"""
from fastapi import HTTPException, status

from domain.constants import PAYMENT_FAILED_MESSAGE


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Missing or malformed request fields (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class AuthenticationError(DomainError):
    """Vendor credential or webhook signature failure (401)."""
    def __init__(self, message: str = "Authentication failed", provider: str | None = None, details: dict | None = None):
        details = dict(details or {})
        if provider:
            details.setdefault("provider", provider)
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)
        self.provider = provider


class UnauthorizedError(DomainError):
    """API caller not authenticated (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class PermissionDeniedError(DomainError):
    """Permission denied (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class UpstreamServiceError(DomainError):
    """An external HTTP service was unreachable or answered garbage (502)."""
    def __init__(self, service: str, reason: str, message: str | None = None, details: dict | None = None):
        details = dict(details or {})
        details.setdefault("service", service)
        super().__init__(
            message or f"Upstream service unavailable: {service}",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
        )
        self.service = service
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.service}: {self.reason}"


class PaymentGatewayError(UpstreamServiceError):
    """
    Vendor-reported business failure (502).

    The vendor message is kept on the exception for logs; clients only see
    the generic payment-failed message.
    """
    def __init__(self, provider: str, vendor_message: str | None = None, details: dict | None = None):
        details = dict(details or {})
        details.setdefault("provider", provider)
        super().__init__(
            provider,
            vendor_message or "unknown vendor error",
            message=PAYMENT_FAILED_MESSAGE,
            details=details,
        )
        self.provider = provider
        self.vendor_message = self.reason


class ConfigurationError(DomainError):
    """Missing required environment credentials (500). Never carries secret values."""
    def __init__(self, message: str = "Payment gateway not configured", provider: str | None = None):
        details = {"provider": provider} if provider else {}
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)


class PersistenceError(DomainError):
    """Database write failure (500)."""
    def __init__(self, message: str = "Failed to persist changes", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class RateLimitError(DomainError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str = "Rate limit exceeded", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_429_TOO_MANY_REQUESTS, details=details)
