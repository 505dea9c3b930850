"""
Tests for order creation and the compare-and-set settlement path.

Tests: success credits the buyer exactly once, failure never touches the
balance, cross-currency credit, provider mismatch, polled reconciliation.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from db_models import ExchangeRate, Order, User
from domain.enums import OrderStatus, PaymentEventType, PaymentStatus
from domain.errors import ConflictError, NotFoundError, ValidationError
from services import order_service
from services.provider_base import PaymentEvent, PaymentStatusResult


def _event(provider="fapshi", event_type=PaymentEventType.SUCCEEDED, **overrides) -> PaymentEvent:
    fields = dict(
        provider=provider,
        event_type=event_type,
        event_key="evt-1",
        transaction_id="DN-TXN-1",
        vendor_transaction_id="VENDOR-1",
        amount=Decimal("1000"),
        currency="XAF",
    )
    fields.update(overrides)
    return PaymentEvent(**fields)


async def _seed_rates(db, **rates):
    now = datetime.utcnow()
    for currency, rate in rates.items():
        db.add(ExchangeRate(currency=currency, rate=rate, vat=0.0, updated_at=now))
    await db.commit()


class TestCreateOrder:

    @pytest.mark.integration
    async def test_pending_on_create(self, make_order, buyer):
        order = await make_order()
        assert order.status == OrderStatus.PENDING.value
        assert order.buyer_id == buyer.id
        assert order.payment_method == "fapshi"
        assert order.payment_id is None

    @pytest.mark.integration
    async def test_duplicate_transaction_id_conflicts(self, make_order):
        await make_order()
        with pytest.raises(ConflictError):
            await make_order()

    @pytest.mark.integration
    async def test_record_payment_reference(self, db_session, make_order):
        order = await make_order(provider="campay")
        await order_service.record_payment_reference(db_session, order, "cam-ref-1")
        found = await order_service.find_order_by_reference(db_session, "campay", "cam-ref-1")
        assert found.id == order.id
        assert await order_service.find_order_by_reference(db_session, "fapshi", "cam-ref-1") is None

    @pytest.mark.integration
    async def test_get_order_scoped_to_buyer(self, db_session, make_order, buyer):
        order = await make_order()
        assert (await order_service.get_order(db_session, order.id, buyer.id)).id == order.id
        with pytest.raises(NotFoundError):
            await order_service.get_order(db_session, order.id, buyer.id + 1)

    @pytest.mark.integration
    async def test_list_orders_filters_and_counts(self, db_session, make_order, buyer, rate_cache):
        first = await make_order(transaction_id="DN-A")
        await make_order(transaction_id="DN-B")
        await order_service.mark_failed(db_session, first, "declined")

        items, total = await order_service.list_orders(db_session, buyer.id, limit=1)
        assert total == 2
        assert len(items) == 1

        failed, failed_total = await order_service.list_orders(db_session, buyer.id, status="failed")
        assert failed_total == 1
        assert failed[0].transaction_id == "DN-A"


class TestMarkPaid:

    @pytest.mark.integration
    async def test_success_settles_and_credits(self, db_session, make_order, buyer, rate_cache):
        order = await make_order()
        result = await order_service.mark_paid(db_session, order, _event(), rate_cache)

        assert result.applied is True
        assert order.status == OrderStatus.PAID.value
        assert order.payment_id == "VENDOR-1"
        assert Decimal(str(buyer.credit)) == Decimal("1000")
        assert result.credited == Decimal("1000")
        assert result.credit_currency == "XAF"

    @pytest.mark.integration
    async def test_replay_is_a_noop(self, db_session, make_order, buyer, rate_cache):
        order = await make_order()
        await order_service.mark_paid(db_session, order, _event(), rate_cache)
        again = await order_service.mark_paid(db_session, order, _event(event_key="evt-2"), rate_cache)

        assert again.applied is False
        assert again.status == OrderStatus.PAID.value
        await db_session.refresh(buyer)
        assert Decimal(str(buyer.credit)) == Decimal("1000")

    @pytest.mark.integration
    async def test_failure_after_success_does_not_regress(self, db_session, make_order, buyer, rate_cache):
        order = await make_order()
        await order_service.mark_paid(db_session, order, _event(), rate_cache)
        result = await order_service.mark_failed(db_session, order, "late failure", provider="fapshi")

        assert result.applied is False
        assert order.status == OrderStatus.PAID.value
        assert order.error_message is None

    @pytest.mark.integration
    async def test_completed_success_status(self, db_session, make_order, rate_cache):
        order = await make_order(provider="stripe")
        await order_service.mark_paid(
            db_session, order,
            _event(provider="stripe", success_status=OrderStatus.COMPLETED),
            rate_cache,
        )
        assert order.status == OrderStatus.COMPLETED.value

    @pytest.mark.integration
    async def test_credit_converted_to_buyer_currency(self, db_session, make_order, buyer, rate_cache):
        await _seed_rates(db_session, XAF=600.0)
        order = await make_order(provider="stripe", amount="10", currency="USD")
        result = await order_service.mark_paid(
            db_session, order,
            _event(provider="stripe", amount=Decimal("10"), currency="USD"),
            rate_cache,
        )
        assert result.credited == Decimal("6000")
        assert Decimal(str(buyer.credit)) == Decimal("6000")

    @pytest.mark.integration
    async def test_missing_rate_leaves_order_pending(self, db_session, make_order, buyer, rate_cache):
        order = await make_order(provider="stripe", amount="10", currency="USD")
        with pytest.raises(NotFoundError):
            await order_service.mark_paid(
                db_session, order,
                _event(provider="stripe", amount=Decimal("10"), currency="USD"),
                rate_cache,
            )
        await db_session.refresh(order)
        assert order.status == OrderStatus.PENDING.value

    @pytest.mark.integration
    async def test_provider_mismatch_rejected(self, db_session, make_order, buyer, rate_cache):
        order = await make_order(provider="fapshi")
        with pytest.raises(ValidationError):
            await order_service.mark_paid(db_session, order, _event(provider="swychr"), rate_cache)
        await db_session.refresh(buyer)
        assert Decimal(str(buyer.credit)) == Decimal("0")


class TestMarkFailed:

    @pytest.mark.integration
    async def test_failure_sets_reason_and_keeps_balance(self, db_session, make_order, buyer):
        order = await make_order()
        result = await order_service.mark_failed(db_session, order, "Insufficient funds", provider="fapshi")

        assert result.applied is True
        assert order.status == OrderStatus.FAILED.value
        assert order.error_message == "Insufficient funds"
        await db_session.refresh(buyer)
        assert Decimal(str(buyer.credit)) == Decimal("0")

    @pytest.mark.integration
    async def test_success_after_failure_is_noop(self, db_session, make_order, buyer, rate_cache):
        order = await make_order()
        await order_service.mark_failed(db_session, order, "declined")
        result = await order_service.mark_paid(db_session, order, _event(), rate_cache)

        assert result.applied is False
        assert order.status == OrderStatus.FAILED.value
        await db_session.refresh(buyer)
        assert Decimal(str(buyer.credit)) == Decimal("0")


class TestEventResolution:

    @pytest.mark.integration
    async def test_find_by_transaction_id(self, db_session, make_order):
        order = await make_order()
        found = await order_service.find_order_for_event(db_session, _event())
        assert found.id == order.id

    @pytest.mark.integration
    async def test_find_by_vendor_reference(self, db_session, make_order):
        order = await make_order(provider="campay", reference="cam-ref-9")
        event = _event(provider="campay", transaction_id=None, provider_reference="cam-ref-9")
        assert (await order_service.find_order_for_event(db_session, event)).id == order.id

    @pytest.mark.integration
    async def test_order_id_must_match_transaction(self, db_session, make_order):
        order = await make_order()
        event = _event(order_id=order.id, transaction_id="SOMEONE-ELSE")
        assert await order_service.find_order_for_event(db_session, event) is None

    @pytest.mark.integration
    async def test_unknown_order(self, db_session):
        assert await order_service.find_order_for_event(db_session, _event(transaction_id="NOPE")) is None


class TestReconcile:

    @pytest.mark.integration
    async def test_polled_success_settles(self, db_session, make_order, buyer, rate_cache):
        order = await make_order(provider="campay", reference="cam-ref-1")
        result = await order_service.reconcile_from_status(
            db_session, order, "campay",
            PaymentStatusResult(status=PaymentStatus.PAID, amount=Decimal("1000"), currency="XAF",
                                vendor_transaction_id="OP-77"),
            rate_cache,
        )
        assert result.applied is True
        assert order.status == OrderStatus.PAID.value
        assert order.payment_id == "OP-77"
        assert Decimal(str(buyer.credit)) == Decimal("1000")

    @pytest.mark.integration
    async def test_polled_pending_changes_nothing(self, db_session, make_order, rate_cache):
        order = await make_order()
        result = await order_service.reconcile_from_status(
            db_session, order, "fapshi", PaymentStatusResult(status=PaymentStatus.PENDING), rate_cache,
        )
        assert result.applied is False
        assert order.status == OrderStatus.PENDING.value

    @pytest.mark.integration
    async def test_polled_failure(self, db_session, make_order, rate_cache):
        order = await make_order()
        await order_service.reconcile_from_status(
            db_session, order, "fapshi",
            PaymentStatusResult(status=PaymentStatus.FAILED, failure_reason="expired"),
            rate_cache,
        )
        assert order.status == OrderStatus.FAILED.value
        assert order.error_message == "expired"

    @pytest.mark.integration
    async def test_one_order_per_transaction(self, db_session, make_order):
        await make_order()
        rows = (await db_session.execute(select(Order).where(Order.transaction_id == "DN-TXN-1"))).scalars().all()
        assert len(rows) == 1
        assert (await db_session.get(User, rows[0].buyer_id)) is not None
