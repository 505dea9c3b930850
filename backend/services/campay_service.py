"""
Campay adapter.

Campay issues a short-lived token from username/password and expects it as
`Authorization: Token <token>`. Amounts are whole XAF. Webhook callbacks
carry a `signature` field: a JWT signed (HS256) with the app's webhook key.
"""
import logging
from typing import Mapping, Optional

import jwt

from domain.enums import PaymentEventType, PaymentStatus
from domain.errors import AuthenticationError, PaymentGatewayError
from services.provider_base import (
    PaymentEvent,
    PaymentLink,
    PaymentLinkRequest,
    PaymentStatusResult,
    ProviderAdapter,
    event_type_for,
)

logger = logging.getLogger(__name__)

# Body fields a webhook JWT may carry; the reference is mandatory.
SIGNED_FIELDS = ("reference", "status", "amount", "currency", "external_reference")


def _unbound_fields(claims: dict, payload: dict) -> list:
    """Signed fields whose claim is missing (reference) or differs from the body."""
    mismatched = []
    for field in SIGNED_FIELDS:
        if field not in claims:
            if field == "reference":
                mismatched.append(field)
            continue
        if str(claims[field]) != str(payload.get(field)):
            mismatched.append(field)
    return mismatched


class CampayAdapter(ProviderAdapter):
    name = "campay"
    minor_unit_factor = 1
    required_fields = ("amount", "transaction_id", "description")
    status_map = {
        "pending": PaymentStatus.PENDING,
        "successful": PaymentStatus.PAID,
        "success": PaymentStatus.PAID,
        "completed": PaymentStatus.COMPLETED,
        "failed": PaymentStatus.FAILED,
        "cancelled": PaymentStatus.CANCELED,
        "canceled": PaymentStatus.CANCELED,
    }
    # /transaction/{reference}/ only knows Campay's own reference
    status_lookup = "payment_reference"

    @property
    def base_url(self) -> str:
        return self.settings.campay_base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.settings.campay_username and self.settings.campay_password)

    async def authenticate(self) -> str:
        self.require_configured()
        response = await self._send(
            "POST",
            f"{self.base_url}/token/",
            json={"username": self.settings.campay_username, "password": self.settings.campay_password},
        )
        token = self._auth_result(response).get("token")
        if not token:
            raise AuthenticationError("Campay authentication returned no token", provider=self.name)
        return token

    async def _create_payment_link(self, token: str, request: PaymentLinkRequest) -> PaymentLink:
        payload = {
            "amount": str(self.to_minor_units(request.amount, request.currency)),
            "currency": request.currency,
            "description": request.description,
            "external_reference": request.transaction_id,
            "redirect_url": self.settings.payment_return_url,
            "failure_redirect_url": self.settings.payment_return_url,
            "payment_options": "MOMO",
        }
        if request.mobile:
            payload["from"] = request.mobile
        response = await self._send(
            "POST",
            f"{self.base_url}/get_payment_link/",
            json=payload,
            headers={"Authorization": f"Token {token}"},
        )
        body = self._vendor_result(response, "create payment link")
        link = body.get("link")
        if not link:
            raise PaymentGatewayError(self.name, body.get("message") or "no link in response")
        return PaymentLink(
            provider=self.name,
            transaction_id=request.transaction_id,
            payment_url=link,
            provider_reference=body.get("reference") or request.transaction_id,
        )

    async def _check_status(self, token: str, reference: str) -> PaymentStatusResult:
        response = await self._send(
            "GET",
            f"{self.base_url}/transaction/{reference}/",
            headers={"Authorization": f"Token {token}"},
        )
        body = self._vendor_result(response, "check payment status")
        amount = body.get("amount")
        return PaymentStatusResult(
            status=self.normalize_status(body.get("status")),
            transaction_id=body.get("external_reference") or reference,
            amount=self.from_minor_units(amount) if amount not in (None, "") else None,
            currency=body.get("currency"),
            method=body.get("operator"),
            vendor_transaction_id=body.get("reference") or reference,
            failure_reason=body.get("reason"),
        )

    # ── Webhooks ──────────────────────────────────────────────────

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        key = self.settings.campay_webhook_key
        if not key:
            logger.error("CAMPAY_WEBHOOK_KEY not configured; rejecting webhook")
            raise AuthenticationError("Webhook verification not configured", provider=self.name)
        payload = self.load_payload(body)
        signature = payload.get("signature")
        if not signature:
            raise AuthenticationError("Missing webhook signature", provider=self.name)
        try:
            claims = jwt.decode(signature, key, algorithms=["HS256"], options={"verify_aud": False})
        except jwt.InvalidTokenError as e:
            logger.warning(f"  Campay webhook signature rejected: {type(e).__name__}")
            raise AuthenticationError("Invalid webhook signature", provider=self.name)
        mismatched = _unbound_fields(claims, payload)
        if mismatched:
            logger.warning(f"  Campay webhook claims do not match body: {', '.join(mismatched)}")
            raise AuthenticationError("Webhook signature does not match payload", provider=self.name)

    def parse_webhook(self, payload: dict) -> Optional[PaymentEvent]:
        reference = payload.get("reference")
        vendor_status = payload.get("status")
        if not reference or not vendor_status:
            return None
        status = self.normalize_status(vendor_status)
        event_type = event_type_for(status)
        amount = payload.get("amount")
        return PaymentEvent(
            provider=self.name,
            event_type=event_type,
            event_key=f"{reference}:{status.value}",
            transaction_id=payload.get("external_reference"),
            provider_reference=reference,
            vendor_transaction_id=payload.get("operator_reference") or reference,
            amount=self.from_minor_units(amount) if amount not in (None, "") else None,
            currency=payload.get("currency"),
            failure_reason=payload.get("reason") if event_type == PaymentEventType.FAILED else None,
            success_status=status.order_status,
            raw={k: v for k, v in payload.items() if k != "signature"},
        )
