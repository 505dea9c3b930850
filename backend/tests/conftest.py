"""
Pytest configuration and shared fixtures for the payments backend tests.

Provides an in-memory SQLite DB, an ASGI client with dependency overrides,
and a MockTransport-backed vendor stub so no test touches the network.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# Must be set before config/database are imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"

TEST_SECRETS = {
    "swychr_email": "merchant@example.com",
    "swychr_password": "swychr-pass",
    "swychr_webhook_secret": "swychr-webhook-secret",
    "fapshi_public_key": "fapshi-public",
    "fapshi_secret_key": "fapshi-secret",
    "fapshi_webhook_secret": "fapshi-webhook-secret",
    "campay_username": "campay-user",
    "campay_password": "campay-pass",
    "campay_webhook_key": "campay-webhook-key",
    "stripe_secret_key": "sk_test_123",
    "stripe_webhook_secret": "whsec_test_123",
    "mtn_momo_subscription_key": "momo-sub",
    "mtn_momo_user_id": "momo-user",
    "mtn_momo_api_key": "momo-key",
    "fixer_api_key": "fixer-key",
}


# ── Vendor HTTP stub ─────────────────────────────────────────────────


class VendorStub:
    """
    Routes outbound vendor requests by (method, path suffix) to canned
    responses and records every request it sees.
    """

    def __init__(self):
        self.routes: list[tuple[str, str, object]] = []
        self.calls: list[httpx.Request] = []

    def add(self, method: str, path_suffix: str, status_code: int = 200, json=None, handler=None):
        """Register a response; `handler(request)` overrides status/json when given."""
        responder = handler or (lambda request: httpx.Response(status_code, json=json))
        self.routes.insert(0, (method.upper(), path_suffix, responder))

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        for method, suffix, responder in self.routes:
            if request.method == method and request.url.path.endswith(suffix):
                return responder(request)
        return httpx.Response(404, json={"message": f"no stub for {request.method} {request.url.path}"})

    def calls_to(self, path_suffix: str) -> list[httpx.Request]:
        return [c for c in self.calls if c.url.path.endswith(path_suffix)]

    def client(self, max_retries: int = 2):
        from services.vendor_http import VendorHTTPClient

        return VendorHTTPClient(
            transport=httpx.MockTransport(self._dispatch),
            max_retries=max_retries,
            backoff_base=0.0,
            backoff_max=0.0,
        )


@pytest.fixture
def vendor() -> VendorStub:
    return VendorStub()


@pytest.fixture
def vendor_http(vendor: VendorStub):
    return vendor.client()


# ── Settings Fixtures ────────────────────────────────────────────────


@pytest.fixture
def configured(monkeypatch):
    """All vendor credentials and webhook secrets present, live mode."""
    for key, value in TEST_SECRETS.items():
        monkeypatch.setattr(settings, key, value)
    monkeypatch.setattr(settings, "test_mode", False)
    return settings


@pytest.fixture
def test_mode(monkeypatch):
    monkeypatch.setattr(settings, "test_mode", True)
    return settings


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    from middleware.rate_limit import limiter

    limiter.reset()
    yield
    limiter.reset()


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def rate_cache(vendor_http):
    from services.exchange_rate_service import ExchangeRateCache

    return ExchangeRateCache(http=vendor_http)


@pytest_asyncio.fixture
async def api_client(db_session, vendor_http, rate_cache) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client against the real app with DB, vendor HTTP and rate cache overridden."""
    from main import app
    from deps import get_rate_cache, get_vendor_http

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_vendor_http] = lambda: vendor_http
    app.dependency_overrides[get_rate_cache] = lambda: rate_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture
async def buyer(db_session: AsyncSession):
    """A buyer whose credit is kept in XAF."""
    from db_models import User

    user = User(
        email="buyer@example.com",
        full_name="Test Buyer",
        phone="+237 670 000 000",
        credit=Decimal("0"),
        currency="XAF",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(buyer) -> dict:
    from middleware.auth import issue_access_token

    return {"Authorization": f"Bearer {issue_access_token(user_id=buyer.id, email=buyer.email)}"}


@pytest_asyncio.fixture
async def make_order(db_session: AsyncSession, buyer):
    """Factory for pending orders owned by `buyer`."""
    from services import order_service

    async def _make(provider: str = "fapshi", amount: str = "1000", currency: str = "XAF",
                    transaction_id: str = "DN-TXN-1", reference: str | None = None):
        order = await order_service.create_order(
            db_session,
            buyer_id=buyer.id,
            provider=provider,
            amount=Decimal(amount),
            currency=currency,
            transaction_id=transaction_id,
            description="Add funds",
        )
        if reference:
            await order_service.record_payment_reference(db_session, order, reference)
        return order

    return _make
