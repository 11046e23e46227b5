"""FastAPI routes for the Checkout domain: M-Pesa payments and orders."""

import os

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    CallbackAckResponse,
    CancelOrderRequest,
    ConfigureGatewayRequest,
    ErrorResponse,
    GatewayConfigResponse,
    OrderIdResponse,
    OrderResponse,
    PlaceOrderRequest,
    RefundPaymentRequest,
    StatusChangeSchema,
    StatusResponse,
    StkPushRequest,
    StkPushResponse,
    UpdateOrderStatusRequest,
)
from checkout.domain import checkout
from checkout.gateway import get_gateway
from checkout.gateway.fake_adapter import FakeGateway
from checkout.gateway.port import AuthFailure, GatewayUnavailable, RejectedByGateway
from checkout.order.administration import CancelOrder, RefundPayment, UpdateOrderStatus
from checkout.order.locks import process_locked
from checkout.order.order import Order
from checkout.order.placement import PlaceOrder
from checkout.payment.callback import MalformedCallback, parse_stk_callback
from checkout.payment.initiation import PaymentInitiator
from checkout.payment.reconciliation import CallbackReconciler
from checkout.utils.logging import bind_payment_context

logger = structlog.get_logger(__name__)

CALLBACK_ACCEPTED = {"ResultCode": 0, "ResultDesc": "Accepted"}


def _not_found(order_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Order {order_id} not found")


def _in_domain(func, *args, **kwargs):
    with checkout.domain_context():
        return func(*args, **kwargs)


async def _off_loop(func, *args, **kwargs):
    """Run blocking domain work (gateway I/O, lookup backoff, order locks) in the threadpool."""
    return await run_in_threadpool(_in_domain, func, *args, **kwargs)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post(
    "/mpesa/stk-push",
    response_model=StkPushResponse,
    response_model_exclude_none=True,
    responses={502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def stk_push(body: StkPushRequest):
    """Ask the payer's phone for an M-Pesa payment of an order."""
    bind_payment_context(order_id=body.order_id)
    try:
        result = await _off_loop(
            PaymentInitiator().initiate,
            order_id=body.order_id,
            phone=body.phone,
            amount=body.amount,
        )
    except ObjectNotFoundError:
        raise _not_found(body.order_id) from None
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.messages) from exc
    except (RejectedByGateway, AuthFailure) as exc:
        return JSONResponse(status_code=502, content={"error": str(exc)})
    except GatewayUnavailable as exc:
        return JSONResponse(status_code=503, content={"error": str(exc)})

    if result.demo:
        return StkPushResponse(success=result.success, demo=True, message=result.message)
    return StkPushResponse(
        success=result.success,
        message=result.message,
        checkout_request_id=result.checkout_request_id,
    )


@payment_router.post("/mpesa/callback", response_model=CallbackAckResponse)
async def mpesa_callback(request: Request):
    """Receive the gateway's asynchronous payment confirmation.

    Every recognisable callback is acknowledged, including those that match
    no order. Only an unreadable envelope is answered with an error so that
    the gateway retries it.
    """
    try:
        payload = await request.json()
        confirmation = parse_stk_callback(payload)
    except (ValueError, MalformedCallback) as exc:
        logger.error("mpesa_callback_malformed", error=str(exc))
        return JSONResponse(status_code=500, content={"ResultCode": 1, "ResultDesc": str(exc)})

    bind_payment_context(checkout_request_id=confirmation.correlation_token)
    logger.info(
        "mpesa_callback_received",
        checkout_request_id=confirmation.correlation_token,
        result_code=confirmation.result_code,
    )
    try:
        await _off_loop(CallbackReconciler().reconcile, confirmation)
    except Exception as exc:
        # The confirmation is on record in the log; acknowledging stops redelivery loops
        logger.exception(
            "mpesa_callback_processing_failed",
            checkout_request_id=confirmation.correlation_token,
            error=str(exc),
        )
    return CallbackAckResponse(**CALLBACK_ACCEPTED)


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    This endpoint is only available when PROTEAN_ENV is not 'production'.
    It allows toggling success/failure behavior for manual API testing.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    try:
        gateway.configure(
            should_succeed=body.should_succeed,
            failure_reason=body.failure_reason,
            failure_mode=body.failure_mode,
            checkout_request_id=body.checkout_request_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        failure_mode=gateway.failure_mode,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest) -> OrderIdResponse:
    """Record a storefront order so that it can be paid for."""
    command = PlaceOrder(
        customer_email=body.customer_email,
        customer_name=body.customer_name,
        amount=body.amount,
        currency=body.currency,
        phone=body.phone,
    )
    try:
        order_id = current_domain.process(command, asynchronous=False)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.messages) from exc
    return OrderIdResponse(order_id=order_id)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise _not_found(order_id) from None

    return OrderResponse(
        order_id=str(order.id),
        tracking_code=order.tracking_code,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        amount=order.amount,
        currency=order.currency,
        phone=order.phone,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        status=order.status,
        correlation_token=order.correlation_token,
        last_correlation_token=order.last_correlation_token,
        settlement_reference=order.settlement_reference,
        failure_reason=order.failure_reason,
        demo=bool(order.demo),
        history=[
            StatusChangeSchema(
                status=entry.status,
                payment_status=entry.payment_status,
                notes=entry.notes,
                changed_at=entry.changed_at,
            )
            for entry in sorted(order.history, key=lambda e: e.changed_at)
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


async def _administer(order_id: str, command) -> None:
    try:
        await _off_loop(process_locked, order_id, command)
    except ObjectNotFoundError:
        raise _not_found(order_id) from None
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.messages) from exc


@order_router.post("/{order_id}/status", response_model=StatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> StatusResponse:
    """Admin override: move the order along its fulfillment lifecycle."""
    await _administer(order_id, UpdateOrderStatus(order_id=order_id, status=body.status, notes=body.notes))
    return StatusResponse(status=body.status)


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest | None = None) -> StatusResponse:
    """Admin override: cancel the order (and fail a still-pending payment)."""
    reason = body.reason if body else CancelOrderRequest().reason
    await _administer(order_id, CancelOrder(order_id=order_id, reason=reason))
    return StatusResponse(status="cancelled")


@order_router.post("/{order_id}/refund", response_model=StatusResponse)
async def refund_payment(order_id: str, body: RefundPaymentRequest) -> StatusResponse:
    """Admin override: mark a completed payment as refunded."""
    await _administer(order_id, RefundPayment(order_id=order_id, reason=body.reason))
    return StatusResponse(status="refunded")
