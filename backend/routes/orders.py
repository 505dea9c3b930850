"""
Order history for the authenticated buyer.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Order, User
from deps import Pagination, get_current_user, pagination_params
from domain.enums import OrderStatus
from domain.responses import paginated_response, success_response
from models import OrderOut
from services import order_service

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_out(order: Order) -> dict:
    return OrderOut(
        id=order.id,
        status=order.status,
        price=order.price,
        currency=order.currency,
        payment_method=order.payment_method,
        transaction_id=order.transaction_id,
        payment_id=order.payment_id,
        error_message=order.error_message,
        description=order.description,
        created_at=order.created_at.isoformat() if order.created_at else None,
        updated_at=order.updated_at.isoformat() if order.updated_at else None,
    ).model_dump(by_alias=True, mode="json")


@router.get("")
async def list_my_orders(
    status: Optional[OrderStatus] = Query(None),
    page: Pagination = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db,
        user.id,
        limit=page["limit"],
        offset=page["offset"],
        status=status.value if status else None,
    )
    return paginated_response(
        [_order_out(o) for o in orders], limit=page["limit"], offset=page["offset"], total=total
    )


@router.get("/{order_id}")
async def get_my_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id, buyer_id=user.id)
    return success_response(_order_out(order))
