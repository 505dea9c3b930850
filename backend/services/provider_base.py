"""
Shared contract for payment vendor adapters.

One adapter per vendor, all parameterized by the same table of class
attributes instead of per-vendor copy-paste:

    minor_unit_factor        how many vendor units make one major unit
    zero_decimal_currencies  currencies the vendor never scales
    required_fields          PaymentLinkRequest fields checked before any I/O
    body_status_field /      where the vendor embeds its own success code
    body_success_codes       in an otherwise-200 JSON body (None = HTTP only)
    status_map               vendor status vocabulary → PaymentStatus

Lifecycle of a call:
    create_payment_link: validate → (TEST_MODE short-circuit) → authenticate → vendor call
    check_status:        (TEST_MODE short-circuit) → authenticate → vendor call → normalize status
    receive_webhook:     verify signature → decode → parse into PaymentEvent
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Optional

import httpx

from config import Settings, settings as default_settings
from domain.constants import TEST_PAYMENT_URL
from domain.enums import OrderStatus, PaymentEventType, PaymentStatus
from domain.errors import (
    AuthenticationError,
    ConfigurationError,
    PaymentGatewayError,
    UpstreamServiceError,
    ValidationError,
)
from services.vendor_http import VendorHTTPClient, json_body

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════
# Value objects
# ════════════════════════════════════════════════════════════════════


@dataclass
class PaymentLinkRequest:
    """Transient input to create_payment_link(); never persisted."""
    amount: Optional[Decimal]
    transaction_id: Optional[str]
    currency: str = "XAF"
    country_code: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    description: Optional[str] = None
    pass_digital_charge: Optional[bool] = None
    order_id: Optional[int] = None
    user_id: Optional[int] = None


@dataclass
class PaymentLink:
    provider: str
    transaction_id: str
    payment_url: Optional[str] = None
    client_secret: Optional[str] = None
    provider_reference: Optional[str] = None
    test_mode: bool = False


@dataclass
class PaymentStatusResult:
    status: PaymentStatus
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    method: Optional[str] = None
    vendor_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass
class PaymentEvent:
    """A vendor callback normalized into the shape the order updater consumes."""
    provider: str
    event_type: PaymentEventType
    event_key: str
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    transaction_id: Optional[str] = None
    provider_reference: Optional[str] = None
    vendor_transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    failure_reason: Optional[str] = None
    success_status: OrderStatus = OrderStatus.PAID
    raw: dict = field(default_factory=dict)


# ════════════════════════════════════════════════════════════════════
# Helpers
# ════════════════════════════════════════════════════════════════════


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def event_type_for(status: PaymentStatus) -> PaymentEventType:
    if status in (PaymentStatus.PAID, PaymentStatus.COMPLETED):
        return PaymentEventType.SUCCEEDED
    if status in (PaymentStatus.FAILED, PaymentStatus.CANCELED):
        return PaymentEventType.FAILED
    return PaymentEventType.PENDING


def verify_hmac_signature(secret: str, payload: bytes, signature: Optional[str]) -> bool:
    """
    Constant-time check of a hex HMAC-SHA256 signature over the raw body.

    Fails closed: a missing secret or signature is a rejection.
    """
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(expected, provided.lower())


def optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


# ════════════════════════════════════════════════════════════════════
# Adapter base
# ════════════════════════════════════════════════════════════════════


class ProviderAdapter(ABC):
    """Base class for all payment vendor adapters."""

    name: str = ""
    minor_unit_factor: int = 1
    zero_decimal_currencies: frozenset = frozenset()
    required_fields: tuple = ("amount", "transaction_id")
    body_status_field: Optional[str] = None
    body_success_codes: tuple = ()
    status_map: dict = {}
    # Which Order column check_status() should be fed with
    status_lookup: str = "transaction_id"

    def __init__(self, http: Optional[VendorHTTPClient] = None, config: Optional[Settings] = None):
        self.http = http or VendorHTTPClient()
        self.settings = config or default_settings

    # ── Configuration ─────────────────────────────────────────────

    @abstractmethod
    def is_configured(self) -> bool:
        """True when all credentials needed for live calls are present."""

    def require_configured(self) -> None:
        if not self.is_configured():
            logger.error(f"{self.name} credentials not configured")
            raise ConfigurationError(provider=self.name)

    # ── Amounts ───────────────────────────────────────────────────

    def minor_factor(self, currency: Optional[str] = None) -> int:
        if currency and currency.upper() in self.zero_decimal_currencies:
            return 1
        return self.minor_unit_factor

    def to_minor_units(self, amount: Decimal | int | str, currency: Optional[str] = None) -> int:
        """Major units → the integer the vendor expects on the wire."""
        value = Decimal(str(amount)) * self.minor_factor(currency)
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def from_minor_units(self, value: int | str | Decimal, currency: Optional[str] = None) -> Decimal:
        """Vendor wire integer → major units."""
        return Decimal(str(value)) / self.minor_factor(currency)

    # ── Status vocabulary ─────────────────────────────────────────

    def normalize_status(self, vendor_status: Optional[str]) -> PaymentStatus:
        key = (vendor_status or "").strip().lower()
        status = self.status_map.get(key)
        if status is None:
            logger.warning(f"  {self.name}: unknown vendor status {vendor_status!r}, treating as pending")
            return PaymentStatus.PENDING
        return status

    # ── Validation ────────────────────────────────────────────────

    def validate(self, request: PaymentLinkRequest) -> None:
        """Raise ValidationError listing every missing required field."""
        missing = [f for f in self.required_fields if _is_missing(getattr(request, f, None))]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"provider": self.name, "required": list(self.required_fields), "missing": missing},
            )
        if request.amount is not None and Decimal(str(request.amount)) <= 0:
            raise ValidationError("Amount must be positive", field="amount")

    # ── Vendor response handling ──────────────────────────────────

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.http.request(self.name, method, url, **kwargs)
        except UpstreamServiceError as e:
            raise PaymentGatewayError(self.name, e.reason) from e

    def _body(self, response: httpx.Response) -> dict:
        try:
            return json_body(self.name, response)
        except UpstreamServiceError as e:
            raise PaymentGatewayError(self.name, e.reason) from e

    def _body_ok(self, body: dict) -> bool:
        if self.body_status_field is None:
            return True
        return body.get(self.body_status_field) in self.body_success_codes

    def _vendor_result(self, response: httpx.Response, action: str) -> dict:
        """
        Return the JSON body of a vendor business call, or raise
        PaymentGatewayError with the vendor's own message attached.
        """
        if response.is_error:
            message = None
            try:
                message = (response.json() or {}).get("message")
            except ValueError:
                pass
            raise PaymentGatewayError(
                self.name, f"{action} failed: HTTP {response.status_code} {message or ''}".strip()
            )
        body = self._body(response)
        if not self._body_ok(body):
            raise PaymentGatewayError(self.name, body.get("message") or f"{action} failed")
        return body

    def _auth_result(self, response: httpx.Response) -> dict:
        """Like _vendor_result but for the login call: failures are AuthenticationError."""
        if response.is_error:
            raise AuthenticationError(
                f"{self.name} authentication failed: HTTP {response.status_code}", provider=self.name
            )
        body = self._body(response)
        if not self._body_ok(body):
            raise AuthenticationError(
                body.get("message") or f"{self.name} authentication failed", provider=self.name
            )
        return body

    # ── Operations ────────────────────────────────────────────────

    @abstractmethod
    async def authenticate(self) -> str:
        """Exchange configured credentials for a bearer token."""

    async def create_payment_link(self, request: PaymentLinkRequest) -> PaymentLink:
        self.validate(request)
        if self.settings.test_mode:
            logger.info(f"  🧪 {self.name}: TEST_MODE payment link for {request.transaction_id}")
            return self._test_link(request)
        token = await self.authenticate()
        link = await self._create_payment_link(token, request)
        logger.info(f"  💳 {self.name} payment link created for {request.transaction_id}")
        return link

    async def check_status(self, reference: str) -> PaymentStatusResult:
        if _is_missing(reference):
            raise ValidationError("Reference is required", field="reference")
        if self.settings.test_mode:
            logger.info(f"  🧪 {self.name}: TEST_MODE status for {reference}")
            return self._test_status(reference)
        return await self.query_vendor_status(reference)

    async def query_vendor_status(self, reference: str) -> PaymentStatusResult:
        """Always asks the vendor, whatever TEST_MODE says."""
        token = await self.authenticate()
        return await self._check_status(token, reference)

    def status_reference(self, order) -> Optional[str]:
        return getattr(order, self.status_lookup, None) or order.transaction_id

    def _test_link(self, request: PaymentLinkRequest) -> PaymentLink:
        return PaymentLink(
            provider=self.name,
            transaction_id=request.transaction_id,
            payment_url=TEST_PAYMENT_URL,
            provider_reference=request.transaction_id,
            test_mode=True,
        )

    def _test_status(self, reference: str) -> PaymentStatusResult:
        return PaymentStatusResult(
            status=PaymentStatus.PAID,
            transaction_id=reference,
            method="test",
            vendor_transaction_id=reference,
        )

    @abstractmethod
    async def _create_payment_link(self, token: str, request: PaymentLinkRequest) -> PaymentLink:
        ...

    @abstractmethod
    async def _check_status(self, token: str, reference: str) -> PaymentStatusResult:
        ...

    # ── Webhooks ──────────────────────────────────────────────────

    def callback_url(self) -> str:
        return f"{self.settings.payment_callback_url}/{self.name}"

    def load_payload(self, body: bytes) -> dict:
        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            raise ValidationError("Invalid JSON payload")
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        return payload

    @abstractmethod
    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        """Raise AuthenticationError unless the callback is authentic."""

    def parse_webhook(self, payload: dict) -> Optional[PaymentEvent]:
        """Normalize a verified payload; None for event types we don't act on."""
        return None

    async def receive_webhook(self, body: bytes, headers: Mapping[str, str]) -> Optional[PaymentEvent]:
        self.verify_webhook(body, headers)
        return self.parse_webhook(self.load_payload(body))
