"""
Stripe adapter (PaymentIntents).

The Stripe SDK is synchronous, so every SDK call goes through
run_blocking(). A "payment link" for Stripe is a PaymentIntent client
secret that the frontend confirms with Stripe.js.

Webhooks are verified with the SDK's signature check against
STRIPE_WEBHOOK_SECRET; the Stripe event id is the dedup key.
"""
import asyncio
import logging
from typing import Mapping, Optional

import stripe

from domain.enums import OrderStatus, PaymentEventType, PaymentStatus
from domain.errors import AuthenticationError, PaymentGatewayError
from services.async_executor import run_blocking
from services.provider_base import (
    PaymentEvent,
    PaymentLink,
    PaymentLinkRequest,
    PaymentStatusResult,
    ProviderAdapter,
    optional_int,
)

logger = logging.getLogger(__name__)

# https://stripe.com/docs/currencies#zero-decimal
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})

# Event type → (event type, order status on success)
_EVENT_TYPES = {
    "payment_intent.succeeded": (PaymentEventType.SUCCEEDED, OrderStatus.PAID),
    "charge.succeeded": (PaymentEventType.SUCCEEDED, OrderStatus.COMPLETED),
    "payment_intent.payment_failed": (PaymentEventType.FAILED, OrderStatus.FAILED),
    "charge.failed": (PaymentEventType.FAILED, OrderStatus.FAILED),
}


class StripeAdapter(ProviderAdapter):
    name = "stripe"
    minor_unit_factor = 100
    zero_decimal_currencies = ZERO_DECIMAL_CURRENCIES
    required_fields = ("amount", "currency", "transaction_id")
    status_map = {
        "requires_payment_method": PaymentStatus.PENDING,
        "requires_confirmation": PaymentStatus.PENDING,
        "requires_action": PaymentStatus.PENDING,
        "processing": PaymentStatus.PENDING,
        "requires_capture": PaymentStatus.PENDING,
        "succeeded": PaymentStatus.PAID,
        "canceled": PaymentStatus.CANCELED,
    }
    # PaymentIntent id
    status_lookup = "payment_reference"

    def is_configured(self) -> bool:
        return bool(self.settings.stripe_secret_key)

    async def authenticate(self) -> str:
        self.require_configured()
        return self.settings.stripe_secret_key

    async def _create_payment_link(self, token: str, request: PaymentLinkRequest) -> PaymentLink:
        metadata = {"transactionId": request.transaction_id}
        if request.order_id is not None:
            metadata["orderId"] = str(request.order_id)
        if request.user_id is not None:
            metadata["userId"] = str(request.user_id)
        try:
            intent = await run_blocking(
                stripe.PaymentIntent.create,
                api_key=token,
                amount=self.to_minor_units(request.amount, request.currency),
                currency=request.currency.lower(),
                payment_method_types=["card"],
                description=request.description,
                receipt_email=request.email,
                metadata=metadata,
                idempotency_key=request.transaction_id,
            )
        except stripe.AuthenticationError as e:
            raise AuthenticationError("Stripe rejected the API key", provider=self.name) from e
        except stripe.StripeError as e:
            raise PaymentGatewayError(self.name, e.user_message or str(e)) from e
        except asyncio.TimeoutError as e:
            raise PaymentGatewayError(self.name, "PaymentIntent create timed out") from e
        return PaymentLink(
            provider=self.name,
            transaction_id=request.transaction_id,
            client_secret=intent["client_secret"],
            provider_reference=intent["id"],
        )

    async def _check_status(self, token: str, reference: str) -> PaymentStatusResult:
        try:
            intent = await run_blocking(stripe.PaymentIntent.retrieve, reference, api_key=token)
        except stripe.AuthenticationError as e:
            raise AuthenticationError("Stripe rejected the API key", provider=self.name) from e
        except stripe.StripeError as e:
            raise PaymentGatewayError(self.name, e.user_message or str(e)) from e
        except asyncio.TimeoutError as e:
            raise PaymentGatewayError(self.name, "PaymentIntent retrieve timed out") from e
        # StripeObject is not a dict on current SDKs
        data = intent.to_dict()
        currency = (data.get("currency") or "").upper() or None
        metadata = data.get("metadata") or {}
        last_error = data.get("last_payment_error") or {}
        return PaymentStatusResult(
            status=self.normalize_status(data.get("status")),
            transaction_id=metadata.get("transactionId"),
            amount=self.from_minor_units(data["amount"], currency),
            currency=currency,
            method="card",
            vendor_transaction_id=intent["id"],
            failure_reason=last_error.get("message"),
        )

    # ── Webhooks ──────────────────────────────────────────────────

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        secret = self.settings.stripe_webhook_secret
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured; rejecting webhook")
            raise AuthenticationError("Webhook verification not configured", provider=self.name)
        signature = headers.get("Stripe-Signature")
        if not signature:
            raise AuthenticationError("Missing Stripe-Signature header", provider=self.name)
        try:
            stripe.WebhookSignature.verify_header(
                body.decode("utf-8"),
                signature,
                secret,
                tolerance=self.settings.stripe_webhook_tolerance,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning(f"  Stripe webhook signature rejected: {type(e).__name__}")
            raise AuthenticationError("Invalid webhook signature", provider=self.name)

    def parse_webhook(self, payload: dict) -> Optional[PaymentEvent]:
        kind = _EVENT_TYPES.get(payload.get("type"))
        if kind is None:
            logger.debug(f"  Stripe event ignored: {payload.get('type')}")
            return None
        event_type, success_status = kind
        obj = (payload.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        currency = (obj.get("currency") or "").upper() or None
        amount = obj.get("amount")
        if obj.get("object") == "charge":
            intent_id = obj.get("payment_intent") or obj.get("id")
            failure_reason = obj.get("failure_message")
        else:
            intent_id = obj.get("id")
            failure_reason = (obj.get("last_payment_error") or {}).get("message")
        return PaymentEvent(
            provider=self.name,
            event_type=event_type,
            event_key=payload.get("id") or f"{intent_id}:{payload.get('type')}",
            order_id=optional_int(metadata.get("orderId")),
            user_id=optional_int(metadata.get("userId")),
            transaction_id=metadata.get("transactionId"),
            provider_reference=intent_id,
            vendor_transaction_id=intent_id,
            amount=self.from_minor_units(amount, currency) if amount is not None else None,
            currency=currency,
            failure_reason=failure_reason if event_type == PaymentEventType.FAILED else None,
            success_status=success_status,
            raw=payload,
        )
