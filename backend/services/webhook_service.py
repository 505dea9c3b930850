"""
Webhook receiver pipeline.

    verify (adapter) → dedup on (provider, event_key) → resolve order →
    compare-and-set transition → record in webhook_events → notify buyer

Once a callback is authenticated, the vendor gets a 200 as long as the
outcome (processed, ignored or failed) is durably recorded; failed rows are
left for out-of-band reconciliation. Only a failure to record surfaces as a
500 so the vendor redelivers.
"""
import json
import logging
from datetime import datetime
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import User, WebhookEvent
from domain.enums import PaymentEventType, WebhookEventStatus
from domain.errors import DomainError, PersistenceError
from services import order_service
from services.notification_service import NotificationService
from services.provider_base import PaymentEvent, ProviderAdapter

logger = logging.getLogger(__name__)

_PAYLOAD_MAX_CHARS = 10_000


async def _find_event(db: AsyncSession, provider: str, event_key: str) -> Optional[WebhookEvent]:
    result = await db.execute(
        select(WebhookEvent).where(
            WebhookEvent.provider == provider,
            WebhookEvent.event_key == event_key,
        )
    )
    return result.scalar_one_or_none()


async def _record(
    db: AsyncSession,
    row: Optional[WebhookEvent],
    event: PaymentEvent,
    order_id: Optional[int],
    status: WebhookEventStatus,
    error: Optional[str],
) -> WebhookEvent:
    now = datetime.utcnow()
    if row is None:
        row = WebhookEvent(
            provider=event.provider,
            event_key=event.event_key[:191],
            event_type=event.event_type.value,
            received_at=now,
        )
        db.add(row)
    row.order_id = order_id
    row.status = status.value
    row.error = error
    row.payload = json.dumps(event.raw, default=str)[:_PAYLOAD_MAX_CHARS]
    row.processed_at = now
    await db.commit()
    return row


async def handle_webhook(
    db: AsyncSession,
    adapter: ProviderAdapter,
    body: bytes,
    headers: Mapping[str, str],
    rate_cache,
    notifier: Optional[NotificationService] = None,
) -> dict:
    """
    Process one vendor callback.

    Raises:
        AuthenticationError: signature missing or invalid (401)
        ValidationError: malformed payload (400)
        PersistenceError: the outcome could not be recorded (500)
    """
    event = await adapter.receive_webhook(body, headers)
    if event is None:
        logger.info(f"  📩 {adapter.name} webhook: nothing to act on")
        return {"received": True, "ignored": True}

    logger.info(
        f"  📩 {adapter.name} webhook {event.event_key}: {event.event_type.value} "
        f"(txn={event.transaction_id})"
    )

    existing = await _find_event(db, event.provider, event.event_key)
    if existing is not None and existing.status != WebhookEventStatus.FAILED.value:
        logger.info(f"  Duplicate {adapter.name} event {event.event_key} ({existing.status})")
        return {"received": True, "duplicate": True, "status": existing.status}

    order = await order_service.find_order_for_event(db, event)
    # A rollback inside the updater expires `order`; keep plain values.
    order_id = order.id if order is not None else None
    order_status = order.status if order is not None else None
    buyer_id = order.buyer_id if order is not None else None
    transition = None
    error = None
    if order is None:
        status = WebhookEventStatus.IGNORED
        error = "unknown order"
        logger.warning(f"  {adapter.name} event {event.event_key} for unknown order")
    elif event.event_type == PaymentEventType.PENDING:
        status = WebhookEventStatus.IGNORED
    else:
        try:
            transition = await order_service.apply_event(db, order, event, rate_cache)
            status = WebhookEventStatus.PROCESSED
        except DomainError as e:
            status = WebhookEventStatus.FAILED
            error = e.message
            logger.error(f"  ❌ {adapter.name} event {event.event_key} failed: {e.message}")

    try:
        await _record(db, existing, event, order_id, status, error)
    except IntegrityError:
        # A concurrent delivery of the same event recorded first.
        await db.rollback()
        return {"received": True, "duplicate": True}
    except SQLAlchemyError as e:
        await db.rollback()
        logger.critical(f"  ❌ Could not record {adapter.name} event {event.event_key}: {type(e).__name__}")
        raise PersistenceError("Failed to record webhook event") from e

    if transition is not None and transition.applied:
        await _notify(db, buyer_id, event, transition, notifier or NotificationService())

    response = {"received": True, "status": status.value}
    if order_id is not None:
        response["orderId"] = order_id
        response["orderStatus"] = transition.status if transition else order_status
    return response


async def _notify(db, buyer_id: int, event: PaymentEvent, transition, notifier: NotificationService) -> None:
    buyer = await db.get(User, buyer_id)
    email = buyer.email if buyer else None
    if event.event_type == PaymentEventType.SUCCEEDED:
        await notifier.payment_succeeded(email, transition.credited, transition.credit_currency)
    else:
        await notifier.payment_failed(email, event.failure_reason)
