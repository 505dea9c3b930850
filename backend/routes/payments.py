"""
Payment Routes — multi-provider payment links

Endpoints:
    GET  /payment/config                       — Enabled providers + test-mode flag
    POST /payment/{provider}                   — Create order + vendor payment link
    GET  /payment/{provider}/status?reference= — Poll vendor status, reconcile order
"""
import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_current_user, get_rate_cache, get_vendor_http
from domain.errors import AuthenticationError, ConfigurationError, DomainError, NotFoundError
from domain.responses import StandardErrorResponse
from middleware.rate_limit import rate_limit
from models import CreatePaymentRequest, CreatePaymentResponse, PaymentStatusResponse
from services import order_service
from services.exchange_rate_service import ExchangeRateCache
from services.provider_base import PaymentLinkRequest
from services.providers import enabled_providers, get_adapter
from services.vendor_http import VendorHTTPClient
from utils.validators import validate_country_code, validate_currency, validate_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payments"])

_ERROR_RESPONSES = {
    400: {"model": StandardErrorResponse},
    404: {"model": StandardErrorResponse},
    409: {"model": StandardErrorResponse},
    429: {"model": StandardErrorResponse},
    500: {"model": StandardErrorResponse},
    502: {"model": StandardErrorResponse},
}


def _new_transaction_id() -> str:
    return f"DN-{uuid.uuid4().hex[:24]}"


@router.get("/config")
async def get_payment_config():
    """Providers the frontend may offer, and whether links are synthetic."""
    return {
        "providers": enabled_providers(),
        "testMode": settings.test_mode,
        "defaultCurrency": settings.default_account_currency,
    }


@router.post("/{provider}", response_model=CreatePaymentResponse, responses=_ERROR_RESPONSES)
async def create_payment(
    provider: str,
    req: CreatePaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    http: VendorHTTPClient = Depends(get_vendor_http),
    _=Depends(rate_limit(20, 60)),
):
    """
    Create a pending order and a vendor payment link for it.

    Required fields differ per vendor and are checked before the order is
    stored or any vendor is contacted.
    """
    adapter = get_adapter(provider, http=http)

    link_request = PaymentLinkRequest(
        amount=req.amount,
        transaction_id=req.transaction_id or _new_transaction_id(),
        currency=validate_currency(req.currency),
        country_code=validate_country_code(req.country_code) if req.country_code else None,
        name=req.name or user.full_name,
        email=validate_email(req.email) if req.email else user.email,
        mobile=req.mobile or user.phone,
        description=req.description,
        pass_digital_charge=req.pass_digital_charge,
        user_id=user.id,
    )
    adapter.validate(link_request)

    order = await order_service.create_order(
        db,
        buyer_id=user.id,
        provider=adapter.name,
        amount=link_request.amount,
        currency=link_request.currency,
        transaction_id=link_request.transaction_id,
        description=link_request.description,
        seller_id=req.seller_id,
    )
    link_request.order_id = order.id

    try:
        link = await adapter.create_payment_link(link_request)
    except AuthenticationError as e:
        # Our own vendor credentials were rejected: a server-side problem.
        logger.error(f"  ❌ {adapter.name} rejected configured credentials: {e.message}")
        await order_service.mark_failed(db, order, "Payment gateway authentication failed")
        raise ConfigurationError("Payment gateway misconfigured", provider=adapter.name) from e
    except DomainError as e:
        logger.error(f"  ❌ {adapter.name} link for order {order.id} failed: {e}")
        await order_service.mark_failed(db, order, getattr(e, "vendor_message", None) or e.message)
        raise

    await order_service.record_payment_reference(db, order, link.provider_reference)

    return CreatePaymentResponse(
        paymentUrl=link.payment_url,
        clientSecret=link.client_secret,
        transactionId=link.transaction_id,
        orderId=order.id,
        provider=adapter.name,
        testMode=link.test_mode,
    )


@router.get("/{provider}/status", response_model=PaymentStatusResponse, responses=_ERROR_RESPONSES)
async def get_payment_status(
    provider: str,
    reference: str = Query(..., min_length=1, max_length=128),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    http: VendorHTTPClient = Depends(get_vendor_http),
    rate_cache: ExchangeRateCache = Depends(get_rate_cache),
):
    """
    Query the vendor for a payment's status and reconcile the caller's order.

    `reference` is our transaction id or the vendor reference from link creation.
    """
    adapter = get_adapter(provider, http=http)
    order = await order_service.find_order_by_reference(db, adapter.name, reference)
    if order is None or order.buyer_id != user.id:
        raise NotFoundError("Order", reference)

    result = await adapter.check_status(adapter.status_reference(order))
    transition = await order_service.reconcile_from_status(db, order, adapter.name, result, rate_cache)

    return PaymentStatusResponse(
        status=result.status.value,
        transaction_id=order.transaction_id,
        amount=result.amount,
        currency=result.currency,
        method=result.method,
        orderStatus=transition.status,
    )
