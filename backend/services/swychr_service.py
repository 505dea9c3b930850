"""
Swychr (AccountPe Payin API) adapter.

Swychr wraps every answer in `{status, message, data}` where `status == 0`
means success, even on HTTP 200, so the body code is checked on every call.
Amounts are sent as whole major units.
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


class SwychrAdapter(ProviderAdapter):
    name = "swychr"
    minor_unit_factor = 1
    required_fields = (
        "country_code", "name", "email", "amount", "transaction_id", "pass_digital_charge",
    )
    body_status_field = "status"
    body_success_codes = (0,)
    status_map = {
        "pending": PaymentStatus.PENDING,
        "initiated": PaymentStatus.PENDING,
        "processing": PaymentStatus.PENDING,
        "paid": PaymentStatus.PAID,
        "success": PaymentStatus.PAID,
        "successful": PaymentStatus.PAID,
        "completed": PaymentStatus.COMPLETED,
        "failed": PaymentStatus.FAILED,
        "expired": PaymentStatus.FAILED,
        "cancelled": PaymentStatus.CANCELED,
        "canceled": PaymentStatus.CANCELED,
    }
    signature_header = "X-Swychr-Signature"

    @property
    def base_url(self) -> str:
        return self.settings.swychr_base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.settings.swychr_email and self.settings.swychr_password)

    async def authenticate(self) -> str:
        self.require_configured()
        response = await self._send(
            "POST",
            f"{self.base_url}/admin/auth",
            json={"email": self.settings.swychr_email, "password": self.settings.swychr_password},
        )
        body = self._auth_result(response)
        token = (body.get("data") or {}).get("token") or body.get("token")
        if not token:
            raise AuthenticationError("Swychr authentication returned no token", provider=self.name)
        return token

    async def _create_payment_link(self, token: str, request: PaymentLinkRequest) -> PaymentLink:
        payload = {
            "country_code": request.country_code,
            "name": request.name,
            "email": request.email,
            "mobile": request.mobile or "",
            "amount": self.to_minor_units(request.amount, request.currency),
            "transaction_id": request.transaction_id,
            "description": request.description or f"Payment for {request.name}",
            "pass_digital_charge": bool(request.pass_digital_charge),
        }
        response = await self._send(
            "POST",
            f"{self.base_url}/create_payment_links",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        data = self._vendor_result(response, "create payment link").get("data") or {}
        payment_url = data.get("payment_link") or data.get("payment_url")
        if not payment_url:
            raise PaymentGatewayError(self.name, "no payment link in response")
        return PaymentLink(
            provider=self.name,
            transaction_id=request.transaction_id,
            payment_url=payment_url,
            provider_reference=data.get("transaction_id") or request.transaction_id,
        )

    async def _check_status(self, token: str, reference: str) -> PaymentStatusResult:
        response = await self._send(
            "POST",
            f"{self.base_url}/payment_link_status",
            json={"transaction_id": reference},
            headers={"Authorization": f"Bearer {token}"},
        )
        data = self._vendor_result(response, "check payment status").get("data") or {}
        amount = data.get("amount")
        return PaymentStatusResult(
            status=self.normalize_status(data.get("status")),
            transaction_id=data.get("transaction_id") or reference,
            amount=self.from_minor_units(amount) if amount is not None else None,
            currency=data.get("currency"),
            method=data.get("payment_method"),
            vendor_transaction_id=data.get("reference") or data.get("transaction_id"),
        )

    # ── Webhooks ──────────────────────────────────────────────────

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        secret = self.settings.swychr_webhook_secret
        if not secret:
            logger.error("SWYCHR_WEBHOOK_SECRET not configured; rejecting webhook")
            raise AuthenticationError("Webhook verification not configured", provider=self.name)
        if not verify_hmac_signature(secret, body, headers.get(self.signature_header)):
            logger.warning("  Swychr webhook signature mismatch")
            raise AuthenticationError("Invalid webhook signature", provider=self.name)

    def parse_webhook(self, payload: dict) -> Optional[PaymentEvent]:
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        transaction_id = data.get("transaction_id")
        vendor_status = data.get("status")
        if not transaction_id or vendor_status in (None, ""):
            return None
        status = self.normalize_status(str(vendor_status))
        event_type = event_type_for(status)
        amount = data.get("amount")
        vendor_ref = data.get("reference") or data.get("payment_id")
        return PaymentEvent(
            provider=self.name,
            event_type=event_type,
            event_key=f"{transaction_id}:{status.value}",
            order_id=optional_int(data.get("order_id")),
            transaction_id=transaction_id,
            vendor_transaction_id=vendor_ref or transaction_id,
            amount=self.from_minor_units(amount) if amount is not None else None,
            currency=data.get("currency"),
            failure_reason=data.get("message") if event_type == PaymentEventType.FAILED else None,
            success_status=status.order_status,
            raw=payload,
        )
