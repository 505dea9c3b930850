"""
Shared FastAPI dependencies.

Centralized here so routers import from a single place (DB session, auth
guard, pagination, vendor HTTP client, rate cache).
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from domain.errors import UnauthorizedError
from middleware.auth import require_user_id
from services.exchange_rate_service import ExchangeRateCache
from services.notification_service import NotificationService
from services.vendor_http import VendorHTTPClient


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


async def get_current_user(
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The authenticated caller's User row; a token for a deleted user is rejected."""
    user = await db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("User account not found for access token.")
    return user


def get_vendor_http() -> VendorHTTPClient:
    """Outbound vendor client; overridden in tests with a MockTransport-backed one."""
    return VendorHTTPClient()


def get_rate_cache(request: Request) -> ExchangeRateCache:
    """The process-wide rate cache created at startup (lazily if lifespan did not run)."""
    cache = getattr(request.app.state, "rate_cache", None)
    if cache is None:
        cache = ExchangeRateCache()
        request.app.state.rate_cache = cache
    return cache


def get_notifier() -> NotificationService:
    return NotificationService()
