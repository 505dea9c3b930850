"""
Domain enums shared by services and routers.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class PaymentStatus(str, Enum):
    """Normalized vendor payment status."""
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def order_status(self) -> OrderStatus:
        """Order state this vendor status settles into."""
        return {
            PaymentStatus.PAID: OrderStatus.PAID,
            PaymentStatus.COMPLETED: OrderStatus.COMPLETED,
            PaymentStatus.FAILED: OrderStatus.FAILED,
            PaymentStatus.CANCELED: OrderStatus.FAILED,
        }.get(self, OrderStatus.PENDING)


class Provider(str, Enum):
    STRIPE = "stripe"
    SWYCHR = "swychr"
    FAPSHI = "fapshi"
    CAMPAY = "campay"
    MOMO = "momo"


class PaymentEventType(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


class WebhookEventStatus(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"
