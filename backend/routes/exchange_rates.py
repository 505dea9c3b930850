"""
Exchange Rate Routes

Endpoints:
    GET  /exchange-rates             — Stored USD-based rates (no Fixer call)
    GET  /exchange-rates/{currency}  — One stored rate
    POST /exchange-rates/update      — Refresh from Fixer if older than the TTL
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_rate_cache
from domain.errors import NotFoundError
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from models import ExchangeRateOut, ExchangeRateSetResponse
from services.exchange_rate_service import ExchangeRateCache, RateSet
from utils.validators import validated_currency_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exchange-rates", tags=["exchange-rates"])


def _rate_set_out(rate_set: RateSet, cache: ExchangeRateCache) -> dict:
    updated = rate_set.updated_at.isoformat() if rate_set.updated_at else None
    next_update = rate_set.next_update(cache.ttl)
    return ExchangeRateSetResponse(
        rates=[
            ExchangeRateOut(currency=cur, rate=r.rate, vat=r.vat, updatedAt=updated or "")
            for cur, r in sorted(rate_set.rates.items())
        ],
        updatedAt=updated,
        nextUpdate=next_update.isoformat() if next_update else None,
        refreshed=rate_set.refreshed,
    ).model_dump(by_alias=True)


@router.get("")
async def list_rates(
    db: AsyncSession = Depends(get_db),
    cache: ExchangeRateCache = Depends(get_rate_cache),
):
    return success_response(_rate_set_out(await cache.current(db), cache))


@router.post("/update")
async def update_rates(
    db: AsyncSession = Depends(get_db),
    cache: ExchangeRateCache = Depends(get_rate_cache),
    _=Depends(rate_limit(5, 60)),
):
    """Fetch fresh rates unless the stored set is younger than the TTL."""
    rate_set = await cache.refresh_if_stale(db)
    return success_response(_rate_set_out(rate_set, cache))


@router.get("/{currency}")
async def get_rate(
    currency: str = Depends(validated_currency_path),
    db: AsyncSession = Depends(get_db),
    cache: ExchangeRateCache = Depends(get_rate_cache),
):
    rate_set = await cache.current(db)
    rate = rate_set.rates.get(currency)
    if rate is None:
        raise NotFoundError("Exchange rate", currency)
    return success_response(
        ExchangeRateOut(
            currency=currency,
            rate=rate.rate,
            vat=rate.vat,
            updatedAt=rate_set.updated_at.isoformat() if rate_set.updated_at else "",
        ).model_dump(by_alias=True)
    )
