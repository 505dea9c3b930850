"""
Fapshi adapter.

Fapshi authenticates every call with static keys (secret key as bearer plus
the public key header); there is no login round-trip. Amounts travel in
centimes.
"""
import logging
from typing import Mapping, Optional

from domain.enums import PaymentEventType, PaymentStatus
from domain.errors import AuthenticationError, PaymentGatewayError
from services.provider_base import (
    PaymentEvent,
    PaymentLink,
    PaymentLinkRequest,
    PaymentStatusResult,
    ProviderAdapter,
    event_type_for,
    optional_int,
    verify_hmac_signature,
)

logger = logging.getLogger(__name__)


class FapshiAdapter(ProviderAdapter):
    name = "fapshi"
    minor_unit_factor = 100
    required_fields = ("amount", "transaction_id", "email")
    status_map = {
        "created": PaymentStatus.PENDING,
        "pending": PaymentStatus.PENDING,
        "success": PaymentStatus.PAID,
        "successful": PaymentStatus.PAID,
        "completed": PaymentStatus.COMPLETED,
        "failed": PaymentStatus.FAILED,
        "expired": PaymentStatus.FAILED,
        "cancelled": PaymentStatus.CANCELED,
        "canceled": PaymentStatus.CANCELED,
    }
    signature_header = "X-Fapshi-Signature"

    @property
    def base_url(self) -> str:
        return self.settings.fapshi_base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.settings.fapshi_public_key and self.settings.fapshi_secret_key)

    async def authenticate(self) -> str:
        # Static credentials; the secret key is the bearer token.
        self.require_configured()
        return self.settings.fapshi_secret_key

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "X-Public-Key": self.settings.fapshi_public_key,
        }

    async def _create_payment_link(self, token: str, request: PaymentLinkRequest) -> PaymentLink:
        payload = {
            "amount": self.to_minor_units(request.amount, request.currency),
            "currency": request.currency,
            "reference": request.transaction_id,
            "email": request.email,
            "description": request.description or "DigiNum Add Funds",
            "callback_url": self.callback_url(),
            "return_url": self.settings.payment_return_url,
        }
        response = await self._send(
            "POST", f"{self.base_url}/payments/initialize", json=payload, headers=self._headers(token)
        )
        data = self._vendor_result(response, "initialize payment").get("data") or {}
        payment_url = data.get("payment_url")
        if not payment_url:
            raise PaymentGatewayError(self.name, "no payment_url in response")
        return PaymentLink(
            provider=self.name,
            transaction_id=request.transaction_id,
            payment_url=payment_url,
            provider_reference=data.get("reference") or request.transaction_id,
        )

    async def _check_status(self, token: str, reference: str) -> PaymentStatusResult:
        response = await self._send(
            "GET",
            f"{self.base_url}/payments/status",
            params={"reference": reference},
            headers=self._headers(token),
        )
        data = self._vendor_result(response, "check payment status").get("data") or {}
        amount = data.get("amount")
        currency = data.get("currency")
        return PaymentStatusResult(
            status=self.normalize_status(data.get("status")),
            transaction_id=data.get("reference") or reference,
            amount=self.from_minor_units(amount, currency) if amount is not None else None,
            currency=currency,
            method=data.get("medium") or self.name,
            vendor_transaction_id=data.get("transaction_id"),
        )

    # ── Webhooks ──────────────────────────────────────────────────

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        secret = self.settings.fapshi_webhook_secret
        if not secret:
            logger.error("FAPSHI_WEBHOOK_SECRET not configured; rejecting webhook")
            raise AuthenticationError("Webhook verification not configured", provider=self.name)
        if not verify_hmac_signature(secret, body, headers.get(self.signature_header)):
            logger.warning("  Fapshi webhook signature mismatch")
            raise AuthenticationError("Invalid webhook signature", provider=self.name)

    def parse_webhook(self, payload: dict) -> Optional[PaymentEvent]:
        reference = payload.get("reference")
        vendor_status = payload.get("status")
        if not reference or not vendor_status:
            return None
        status = self.normalize_status(vendor_status)
        event_type = event_type_for(status)
        vendor_txn = payload.get("transaction_id")
        amount = payload.get("amount")
        currency = payload.get("currency")
        return PaymentEvent(
            provider=self.name,
            event_type=event_type,
            event_key=f"{vendor_txn or reference}:{status.value}",
            order_id=optional_int(payload.get("order_id")),
            transaction_id=reference,
            vendor_transaction_id=vendor_txn or reference,
            amount=self.from_minor_units(amount, currency) if amount is not None else None,
            currency=currency,
            failure_reason=payload.get("message") if event_type == PaymentEventType.FAILED else None,
            success_status=status.order_status,
            raw=payload,
        )
