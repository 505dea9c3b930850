"""
Order state updater.

Orders move pending → paid | completed (success) or pending → failed,
exactly once. Every transition is a compare-and-set:

    UPDATE orders SET ... WHERE id = :id AND status = 'pending'

A zero rowcount means another delivery already settled the order, so the
call is a no-op and the buyer is not credited again. On success the status
change and the credit increment commit in the same transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, User
from domain.enums import OrderStatus, PaymentEventType
from domain.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from services.provider_base import PaymentEvent, PaymentStatusResult, event_type_for

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    order_id: int
    applied: bool
    status: str
    credited: Optional[Decimal] = None
    credit_currency: Optional[str] = None


# ════════════════════════════════════════════════════════════════════
# Creation & lookup
# ════════════════════════════════════════════════════════════════════


async def create_order(
    db: AsyncSession,
    *,
    buyer_id: int,
    provider: str,
    amount: Decimal,
    currency: str,
    transaction_id: str,
    description: Optional[str] = None,
    seller_id: Optional[int] = None,
) -> Order:
    """Insert a pending order. Duplicate transaction ids raise ConflictError."""
    order = Order(
        buyer_id=buyer_id,
        seller_id=seller_id,
        price=Decimal(str(amount)),
        currency=currency.upper(),
        status=OrderStatus.PENDING.value,
        description=description,
        payment_method=provider,
        transaction_id=transaction_id,
    )
    db.add(order)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "An order with this transaction id already exists",
            details={"transactionId": transaction_id},
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"  ❌ Failed to create order {transaction_id}: {type(e).__name__}")
        raise PersistenceError("Failed to create order") from e
    await db.refresh(order)
    logger.info(f"  🧾 Order {order.id} created ({provider}, {order.price} {order.currency})")
    return order


async def record_payment_reference(db: AsyncSession, order: Order, reference: Optional[str]) -> None:
    """Store the vendor reference returned at link creation."""
    if not reference or reference == order.payment_reference:
        return
    try:
        await db.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(payment_reference=reference, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to store payment reference") from e
    await db.refresh(order)


async def get_order(db: AsyncSession, order_id: int, buyer_id: Optional[int] = None) -> Order:
    query = select(Order).where(Order.id == order_id)
    if buyer_id is not None:
        query = query.where(Order.buyer_id == buyer_id)
    order = (await db.execute(query)).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order", str(order_id))
    return order


async def list_orders(
    db: AsyncSession,
    buyer_id: int,
    *,
    limit: int = 50,
    offset: int = 0,
    status: Optional[str] = None,
) -> Tuple[List[Order], int]:
    query = select(Order).where(Order.buyer_id == buyer_id)
    count_query = select(func.count(Order.id)).where(Order.buyer_id == buyer_id)
    if status:
        query = query.where(Order.status == status)
        count_query = count_query.where(Order.status == status)
    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total


async def find_order_by_reference(db: AsyncSession, provider: str, reference: str) -> Optional[Order]:
    """Match a vendor reference against our transaction id or the stored vendor reference."""
    result = await db.execute(
        select(Order).where(
            Order.payment_method == provider,
            or_(Order.transaction_id == reference, Order.payment_reference == reference),
        )
    )
    return result.scalars().first()


async def find_order_for_event(db: AsyncSession, event: PaymentEvent) -> Optional[Order]:
    """
    Resolve the order a vendor event refers to: by order id, then by our
    transaction id, then by the vendor reference stored at link creation.
    """
    if event.order_id is not None:
        order = await db.get(Order, event.order_id)
        if order is not None:
            if event.transaction_id and order.transaction_id != event.transaction_id:
                logger.warning(
                    f"  {event.provider} event {event.event_key}: order {order.id} "
                    f"does not match transaction {event.transaction_id}"
                )
                return None
            return order
    if event.transaction_id:
        result = await db.execute(select(Order).where(Order.transaction_id == event.transaction_id))
        order = result.scalar_one_or_none()
        if order is not None:
            return order
    if event.provider_reference:
        return await find_order_by_reference(db, event.provider, event.provider_reference)
    return None


# ════════════════════════════════════════════════════════════════════
# Transitions
# ════════════════════════════════════════════════════════════════════


def _check_provider(order: Order, provider: str) -> None:
    if order.payment_method and order.payment_method != provider:
        raise ValidationError(
            f"Order {order.id} was created for {order.payment_method}, not {provider}"
        )


async def _credit_amount(db: AsyncSession, order: Order, event: PaymentEvent, rate_cache) -> Tuple[Decimal, str]:
    """Settled amount converted into the buyer's unit of account."""
    amount = event.amount if event.amount is not None else Decimal(str(order.price))
    currency = (event.currency or order.currency).upper()
    if currency == order.currency and amount != Decimal(str(order.price)):
        logger.warning(
            f"  Order {order.id}: settled {amount} {currency} differs from price {order.price}"
        )
    buyer = await db.get(User, order.buyer_id)
    if buyer is None:
        raise NotFoundError("User", str(order.buyer_id))
    target = (buyer.currency or currency).upper()
    if target == currency:
        return amount, target
    return await rate_cache.convert(db, amount, currency, target), target


async def mark_paid(db: AsyncSession, order: Order, event: PaymentEvent, rate_cache) -> TransitionResult:
    """
    Settle a pending order successfully and credit the buyer.

    Raises:
        PersistenceError: the write failed and was rolled back
    """
    order_id = order.id
    _check_provider(order, event.provider)
    target_status = event.success_status
    if target_status not in (OrderStatus.PAID, OrderStatus.COMPLETED):
        target_status = OrderStatus.PAID
    credit, credit_currency = await _credit_amount(db, order, event, rate_cache)

    try:
        result = await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING.value)
            .values(
                status=target_status.value,
                payment_method=event.provider,
                payment_id=event.vendor_transaction_id,
                error_message=None,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            await db.refresh(order)
            logger.info(f"  Order {order.id} already {order.status}; {event.event_key} is a no-op")
            return TransitionResult(order_id=order.id, applied=False, status=order.status)

        await db.execute(
            update(User)
            .where(User.id == order.buyer_id)
            .values(credit=User.credit + credit)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"  ❌ Failed to settle order {order_id}: {type(e).__name__}")
        raise PersistenceError("Failed to update order", details={"orderId": order_id}) from e

    await db.refresh(order)
    # Core UPDATEs bypass the identity map
    buyer = await db.get(User, order.buyer_id)
    if buyer is not None:
        await db.refresh(buyer)
    logger.info(
        f"  ✅ Order {order.id} → {order.status} via {event.provider}; "
        f"credited {credit} {credit_currency} to user {order.buyer_id}"
    )
    return TransitionResult(
        order_id=order.id,
        applied=True,
        status=order.status,
        credited=credit,
        credit_currency=credit_currency,
    )


async def mark_failed(
    db: AsyncSession,
    order: Order,
    reason: Optional[str],
    provider: Optional[str] = None,
) -> TransitionResult:
    """Fail a pending order. The buyer's balance is never touched."""
    order_id = order.id
    if provider:
        _check_provider(order, provider)
    message = (reason or "Payment failed")[:1000]
    values = {
        "status": OrderStatus.FAILED.value,
        "error_message": message,
        "updated_at": datetime.utcnow(),
    }
    if provider:
        values["payment_method"] = provider
    try:
        result = await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            await db.refresh(order)
            logger.info(f"  Order {order.id} already {order.status}; failure is a no-op")
            return TransitionResult(order_id=order.id, applied=False, status=order.status)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"  ❌ Failed to mark order {order_id} failed: {type(e).__name__}")
        raise PersistenceError("Failed to update order", details={"orderId": order_id}) from e

    await db.refresh(order)
    logger.warning(f"  ⚠️ Order {order.id} → failed: {message}")
    return TransitionResult(order_id=order.id, applied=True, status=order.status)


async def apply_event(db: AsyncSession, order: Order, event: PaymentEvent, rate_cache) -> TransitionResult:
    if event.event_type == PaymentEventType.SUCCEEDED:
        return await mark_paid(db, order, event, rate_cache)
    if event.event_type == PaymentEventType.FAILED:
        return await mark_failed(db, order, event.failure_reason, provider=event.provider)
    return TransitionResult(order_id=order.id, applied=False, status=order.status)


async def reconcile_from_status(
    db: AsyncSession,
    order: Order,
    provider: str,
    result: PaymentStatusResult,
    rate_cache,
) -> TransitionResult:
    """Apply a polled vendor status through the same compare-and-set path."""
    event = PaymentEvent(
        provider=provider,
        event_type=event_type_for(result.status),
        event_key=f"poll:{order.transaction_id}:{result.status.value}",
        order_id=order.id,
        transaction_id=order.transaction_id,
        provider_reference=order.payment_reference,
        vendor_transaction_id=result.vendor_transaction_id or order.payment_reference,
        amount=result.amount,
        currency=result.currency,
        failure_reason=result.failure_reason or f"Payment {result.status.value}",
        success_status=result.status.order_status,
    )
    return await apply_event(db, order, event, rate_cache)
