"""
MTN Mobile Money (Collections API) adapter.

Request-to-pay is a push to the payer's phone, so there is no URL to hand
back: the X-Reference-Id we generate is the handle used for status polling.

MoMo callbacks are unsigned. A callback is only used as a hint: the
reference id it names is re-queried against the Collections API and only
the vendor-returned status is acted upon.
"""
import base64
import logging
import uuid
from typing import Mapping, Optional

from domain.enums import PaymentEventType, PaymentStatus
from domain.errors import AuthenticationError, PaymentGatewayError, ValidationError
from services.provider_base import (
    PaymentEvent,
    PaymentLink,
    PaymentLinkRequest,
    PaymentStatusResult,
    ProviderAdapter,
    event_type_for,
)
from utils.validators import normalize_msisdn

logger = logging.getLogger(__name__)


class MomoAdapter(ProviderAdapter):
    name = "momo"
    minor_unit_factor = 1
    required_fields = ("amount", "mobile", "transaction_id")
    status_map = {
        "pending": PaymentStatus.PENDING,
        "successful": PaymentStatus.PAID,
        "failed": PaymentStatus.FAILED,
        "rejected": PaymentStatus.FAILED,
        "timeout": PaymentStatus.FAILED,
    }
    # X-Reference-Id
    status_lookup = "payment_reference"

    @property
    def base_url(self) -> str:
        return self.settings.mtn_momo_base_url.rstrip("/")

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.mtn_momo_subscription_key and s.mtn_momo_user_id and s.mtn_momo_api_key)

    def _currency(self, requested: Optional[str]) -> str:
        if self.settings.mtn_momo_environment == "sandbox":
            return self.settings.mtn_momo_currency
        return (requested or self.settings.mtn_momo_currency).upper()

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "X-Target-Environment": self.settings.mtn_momo_environment,
            "Ocp-Apim-Subscription-Key": self.settings.mtn_momo_subscription_key,
        }

    async def authenticate(self) -> str:
        self.require_configured()
        basic = base64.b64encode(
            f"{self.settings.mtn_momo_user_id}:{self.settings.mtn_momo_api_key}".encode()
        ).decode()
        response = await self._send(
            "POST",
            f"{self.base_url}/collection/token/",
            headers={
                "Authorization": f"Basic {basic}",
                "Ocp-Apim-Subscription-Key": self.settings.mtn_momo_subscription_key,
            },
        )
        token = self._auth_result(response).get("access_token")
        if not token:
            raise AuthenticationError("MoMo authentication returned no access_token", provider=self.name)
        return token

    def validate(self, request: PaymentLinkRequest) -> None:
        super().validate(request)
        normalize_msisdn(request.mobile)

    async def _create_payment_link(self, token: str, request: PaymentLinkRequest) -> PaymentLink:
        reference_id = str(uuid.uuid4())
        payload = {
            "amount": str(self.to_minor_units(request.amount, request.currency)),
            "currency": self._currency(request.currency),
            "externalId": request.transaction_id,
            "payer": {"partyIdType": "MSISDN", "partyId": normalize_msisdn(request.mobile)},
            "payerMessage": request.description or "Payment for DigiNum",
            "payeeNote": "Payment for DigiNum services",
        }
        headers = self._headers(token)
        headers["X-Reference-Id"] = reference_id
        headers["X-Callback-Url"] = self.callback_url()
        response = await self._send(
            "POST", f"{self.base_url}/collection/v1_0/requesttopay", json=payload, headers=headers
        )
        # 202 Accepted with an empty body
        if response.is_error:
            raise PaymentGatewayError(
                self.name, f"request to pay failed: HTTP {response.status_code} {response.text[:200]}"
            )
        return PaymentLink(
            provider=self.name,
            transaction_id=request.transaction_id,
            payment_url=None,
            provider_reference=reference_id,
        )

    async def _check_status(self, token: str, reference: str) -> PaymentStatusResult:
        response = await self._send(
            "GET",
            f"{self.base_url}/collection/v1_0/requesttopay/{reference}",
            headers=self._headers(token),
        )
        body = self._vendor_result(response, "check payment status")
        amount = body.get("amount")
        return PaymentStatusResult(
            status=self.normalize_status(body.get("status")),
            transaction_id=body.get("externalId"),
            amount=self.from_minor_units(amount) if amount not in (None, "") else None,
            currency=body.get("currency"),
            method="mobile_money",
            vendor_transaction_id=body.get("financialTransactionId") or reference,
            failure_reason=body.get("reason"),
        )

    # ── Webhooks ──────────────────────────────────────────────────

    @staticmethod
    def _reference_id(payload: dict) -> Optional[str]:
        return payload.get("referenceId") or payload.get("reference_id")

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        if not self.is_configured():
            logger.error("MTN MoMo credentials not configured; rejecting callback")
            raise AuthenticationError("Webhook verification not configured", provider=self.name)
        if not self._reference_id(self.load_payload(body)):
            raise ValidationError("Missing reference ID", field="referenceId")

    def _event_from_status(self, reference_id: str, result: PaymentStatusResult) -> Optional[PaymentEvent]:
        event_type = event_type_for(result.status)
        if event_type == PaymentEventType.PENDING:
            return None
        return PaymentEvent(
            provider=self.name,
            event_type=event_type,
            event_key=f"{reference_id}:{result.status.value}",
            transaction_id=result.transaction_id,
            provider_reference=reference_id,
            vendor_transaction_id=result.vendor_transaction_id,
            amount=result.amount,
            currency=result.currency,
            failure_reason=result.failure_reason,
            success_status=result.status.order_status,
            raw={"referenceId": reference_id, "status": result.status.value},
        )

    async def receive_webhook(self, body: bytes, headers: Mapping[str, str]) -> Optional[PaymentEvent]:
        self.verify_webhook(body, headers)
        reference_id = self._reference_id(self.load_payload(body))
        result = await self.query_vendor_status(reference_id)
        logger.info(f"  📲 MoMo callback {reference_id}: vendor status {result.status.value}")
        return self._event_from_status(reference_id, result)
