"""
Exchange rate cache backed by the `exchange_rates` table.

Rates are quoted as units of currency per 1 USD (Fixer, base=USD) and carry
the VAT percentage applied to prices in that currency. The stored set is
replaced wholesale at most once per TTL (24h by default).

One ExchangeRateCache is created at startup and kept on `app.state`; its
asyncio.Lock serialises concurrent refreshes inside this process, and the
database row timestamps make the TTL hold across processes.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, settings as default_settings
from db_models import ExchangeRate
from domain.constants import BASE_CURRENCY, DEFAULT_VAT_PERCENT, VAT_RATES
from domain.errors import ConfigurationError, NotFoundError, PersistenceError, UpstreamServiceError
from services.vendor_http import VendorHTTPClient, json_body

logger = logging.getLogger(__name__)

_SERVICE = "fixer"


@dataclass
class Rate:
    rate: float
    vat: float


@dataclass
class RateSet:
    rates: Dict[str, Rate] = field(default_factory=dict)
    updated_at: Optional[datetime] = None
    refreshed: bool = False

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return self.updated_at is not None and now - self.updated_at < ttl

    def next_update(self, ttl: timedelta) -> Optional[datetime]:
        return self.updated_at + ttl if self.updated_at else None


def vat_for(currency: str) -> float:
    return VAT_RATES.get(currency.upper(), DEFAULT_VAT_PERCENT)


class ExchangeRateCache:
    """USD-based conversion rates with a database-backed 24h TTL."""

    def __init__(self, http: Optional[VendorHTTPClient] = None, config: Optional[Settings] = None):
        self.http = http or VendorHTTPClient()
        self.settings = config or default_settings
        self.ttl = timedelta(hours=self.settings.exchange_rate_ttl_hours)
        self._lock = asyncio.Lock()

    async def current(self, db: AsyncSession) -> RateSet:
        """Return the stored rate set without contacting Fixer."""
        result = await db.execute(select(ExchangeRate))
        rows = result.scalars().all()
        if not rows:
            return RateSet()
        return RateSet(
            rates={row.currency: Rate(rate=row.rate, vat=row.vat) for row in rows},
            updated_at=min(row.updated_at for row in rows),
        )

    async def refresh_if_stale(self, db: AsyncSession, now: Optional[datetime] = None) -> RateSet:
        """
        Return the stored set if it is younger than the TTL, otherwise fetch
        from Fixer and replace the stored set.
        """
        now = now or datetime.utcnow()
        async with self._lock:
            stored = await self.current(db)
            if stored.is_fresh(now, self.ttl):
                logger.debug(f"Exchange rates fresh (updated {stored.updated_at.isoformat()})")
                return stored

            fetched = await self.fetch_rates()
            await self._replace(db, fetched, now)
            logger.info(f"💱 Exchange rates refreshed: {len(fetched)} currencies")
            return RateSet(
                rates={cur: Rate(rate=rate, vat=vat_for(cur) if cur != BASE_CURRENCY else 0.0)
                       for cur, rate in fetched.items()},
                updated_at=now,
                refreshed=True,
            )

    async def fetch_rates(self) -> Dict[str, float]:
        """Fetch USD-based rates from Fixer. USD itself is always 1.0."""
        if not self.settings.fixer_api_key:
            raise ConfigurationError("Exchange rate provider not configured")
        response = await self.http.request(
            _SERVICE,
            "GET",
            f"{self.settings.fixer_base_url.rstrip('/')}/latest",
            params={"access_key": self.settings.fixer_api_key, "base": BASE_CURRENCY},
        )
        if response.is_error:
            raise UpstreamServiceError(_SERVICE, f"HTTP {response.status_code}")
        body = json_body(_SERVICE, response)
        if not body.get("success"):
            info = (body.get("error") or {}).get("info") or "Unknown error"
            raise UpstreamServiceError(_SERVICE, info)

        rates: Dict[str, float] = {BASE_CURRENCY: 1.0}
        for currency, rate in (body.get("rates") or {}).items():
            currency = currency.upper()
            if currency == BASE_CURRENCY:
                continue
            try:
                rates[currency] = float(rate)
            except (TypeError, ValueError):
                logger.warning(f"  Skipping non-numeric Fixer rate for {currency}: {rate!r}")
        return rates

    async def _replace(self, db: AsyncSession, rates: Dict[str, float], now: datetime) -> None:
        try:
            await db.execute(delete(ExchangeRate))
            for currency, rate in rates.items():
                db.add(ExchangeRate(
                    currency=currency,
                    rate=rate,
                    vat=0.0 if currency == BASE_CURRENCY else vat_for(currency),
                    updated_at=now,
                ))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"  ❌ Failed to store exchange rates: {type(e).__name__}")
            raise PersistenceError("Failed to store exchange rates") from e

    async def convert(
        self,
        db: AsyncSession,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
    ) -> Decimal:
        """
        Convert `amount` between currencies through USD using the stored rates.

        Raises:
            NotFoundError: no stored rate for one of the currencies
        """
        src, dst = from_currency.upper(), to_currency.upper()
        amount = Decimal(str(amount))
        if src == dst:
            return amount
        rates = (await self.current(db)).rates
        if src != BASE_CURRENCY and src not in rates:
            raise NotFoundError("Exchange rate", src)
        if dst != BASE_CURRENCY and dst not in rates:
            raise NotFoundError("Exchange rate", dst)
        src_rate = Decimal("1") if src == BASE_CURRENCY else Decimal(str(rates[src].rate))
        dst_rate = Decimal("1") if dst == BASE_CURRENCY else Decimal(str(rates[dst].rate))
        converted = amount / src_rate * dst_rate
        return converted.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
