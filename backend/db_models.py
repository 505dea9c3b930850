"""
SQLAlchemy ORM models for the DigiNum payments backend.

Tables:
    users           — buyers/sellers with a credit balance
    orders          — one row per purchase / add-funds attempt
    webhook_events  — durable log of authenticated vendor callbacks
    exchange_rates  — USD-based conversion rates with VAT, replaced wholesale
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, ForeignKey, Numeric,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base


class User(Base):
    """Marketplace account holding a credit balance."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(32), nullable=True)
    credit = Column(Numeric(18, 4), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")  # unit of account for credit
    created_at = Column(DateTime, default=datetime.utcnow)

    orders = relationship(
        "Order", back_populates="buyer", foreign_keys="Order.buyer_id", lazy="select"
    )


class Order(Base):
    """
    A purchase awaiting settlement by a payment vendor.

    status moves pending → paid | completed | failed exactly once; the
    transition is a compare-and-set in services/order_service.py.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    price = Column(Numeric(18, 4), nullable=False)  # major units of `currency`
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending", index=True)
    description = Column(Text, nullable=True)

    payment_method = Column(String(20), nullable=True)  # provider name
    transaction_id = Column(String(128), unique=True, nullable=False, index=True)  # client idempotency key
    payment_reference = Column(String(128), nullable=True, index=True)  # vendor ref at link creation
    payment_id = Column(String(128), unique=True, nullable=True)  # vendor ref at settlement
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    buyer = relationship("User", back_populates="orders", foreign_keys=[buyer_id])

    __table_args__ = (
        Index("ix_orders_buyer_created", "buyer_id", "created_at"),
    )


class WebhookEvent(Base):
    """
    Durable record of every authenticated vendor callback.

    (provider, event_key) is the redelivery dedup key. Rows with
    status='failed' are picked up by out-of-band reconciliation.
    """
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False)
    event_key = Column(String(191), nullable=False)
    event_type = Column(String(20), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="processed")  # processed | ignored | failed
    error = Column(Text, nullable=True)
    payload = Column(Text, nullable=True)
    received_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "event_key", name="uq_webhook_provider_event"),
        Index("ix_webhook_events_status_received", "status", "received_at"),
    )


class ExchangeRate(Base):
    """Conversion rate relative to USD, with the VAT percentage applied to prices."""
    __tablename__ = "exchange_rates"

    currency = Column(String(3), primary_key=True)
    rate = Column(Float, nullable=False)
    vat = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
