"""
Pydantic models for request/response validation.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIBase(BaseModel):
    """Shared base — allows construction by Python name or camelCase alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Payment Models ──────────────────────────────────────────────────

class CreatePaymentRequest(APIBase):
    """
    Body for POST /payment/{provider}.

    Only `amount` is required at this layer; each vendor adapter enforces
    its own required fields so that missing ones fail before any network
    call is made.
    """
    amount: Decimal = Field(..., gt=0, description="Amount in major currency units")
    currency: str = Field("XAF", min_length=3, max_length=3)
    country_code: Optional[str] = Field(None, alias="countryCode", max_length=2)
    name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=255)
    mobile: Optional[str] = Field(None, max_length=32)
    description: Optional[str] = Field(None, max_length=500)
    transaction_id: Optional[str] = Field(
        None,
        alias="transactionId",
        max_length=128,
        description="Client-generated idempotency key; generated server-side when omitted",
    )
    pass_digital_charge: Optional[bool] = Field(None, alias="passDigitalCharge")
    seller_id: Optional[int] = Field(None, alias="sellerId")


class CreatePaymentResponse(APIBase):
    payment_url: Optional[str] = Field(None, alias="paymentUrl")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    transaction_id: str = Field(..., alias="transactionId")
    order_id: int = Field(..., alias="orderId")
    provider: str
    test_mode: bool = Field(False, alias="testMode")


class PaymentStatusResponse(APIBase):
    status: str
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    method: Optional[str] = None
    order_status: Optional[str] = Field(None, alias="orderStatus")


# ── Order Models ────────────────────────────────────────────────────

class OrderOut(APIBase):
    id: int
    status: str
    price: Decimal
    currency: str
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    transaction_id: str = Field(..., alias="transactionId")
    payment_id: Optional[str] = Field(None, alias="paymentId")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    description: Optional[str] = None
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


# ── Exchange Rate Models ────────────────────────────────────────────

class ExchangeRateOut(APIBase):
    currency: str
    rate: float
    vat: float
    updated_at: str = Field(..., alias="updatedAt")


class ExchangeRateSetResponse(APIBase):
    rates: List[ExchangeRateOut]
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    next_update: Optional[str] = Field(None, alias="nextUpdate")
    refreshed: bool = False
