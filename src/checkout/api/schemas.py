"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. The STK push endpoint keeps the storefront's
camelCase field names.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Payment Schemas
# ---------------------------------------------------------------------------
class StkPushRequest(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "phone": "0722000000",
                    "amount": 1500,
                    "orderId": "6f1c2d3e-0000-4000-8000-000000000001",
                }
            ]
        },
    )

    phone: str = Field(min_length=1)
    amount: float = Field(gt=0)
    order_id: str = Field(alias="orderId", min_length=1)


class StkPushResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    checkout_request_id: str | None = Field(default=None, alias="checkoutRequestId")
    demo: bool | None = None


class CallbackAckResponse(BaseModel):
    ResultCode: int
    ResultDesc: str


class ErrorResponse(BaseModel):
    error: str


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool
    failure_reason: str = "Request cancelled by user"
    failure_mode: str = "rejected"  # rejected, auth, unavailable
    checkout_request_id: str | None = None


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    failure_mode: str


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    customer_email: str
    customer_name: str | None = None
    amount: float = Field(gt=0)
    currency: str = "KES"
    phone: str | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str  # shipped, delivered, cancelled
    notes: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str = "Cancelled by administrator"


class RefundPaymentRequest(BaseModel):
    reason: str


class OrderIdResponse(BaseModel):
    order_id: str


class StatusResponse(BaseModel):
    status: str


class StatusChangeSchema(BaseModel):
    status: str
    payment_status: str | None = None
    notes: str | None = None
    changed_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    tracking_code: str | None = None
    customer_email: str
    customer_name: str | None = None
    amount: float
    currency: str
    phone: str | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    status: str
    correlation_token: str | None = None
    last_correlation_token: str | None = None
    settlement_reference: str | None = None
    failure_reason: str | None = None
    demo: bool = False
    history: list[StatusChangeSchema] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
