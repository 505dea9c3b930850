"""
Vendor webhook receivers.

    POST /webhooks/{provider}

401: signature missing/invalid (nothing is recorded or mutated)
400: malformed payload
404: unknown provider
200: authenticated; outcome recorded in webhook_events (including failures)
500: the outcome could not be recorded; the vendor should redeliver
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_notifier, get_rate_cache, get_vendor_http
from services import webhook_service
from services.exchange_rate_service import ExchangeRateCache
from services.notification_service import NotificationService
from services.providers import get_adapter
from services.vendor_http import VendorHTTPClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    http: VendorHTTPClient = Depends(get_vendor_http),
    rate_cache: ExchangeRateCache = Depends(get_rate_cache),
    notifier: NotificationService = Depends(get_notifier),
):
    adapter = get_adapter(provider, http=http)
    # Signatures are computed over the exact bytes received
    body = await request.body()
    return await webhook_service.handle_webhook(
        db, adapter, body, request.headers, rate_cache, notifier
    )
