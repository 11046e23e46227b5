"""Order notifier — forwards order events to the notification sink.

A failing sink must never undo or block the transition that triggered it, so
delivery errors are logged here and go no further.
"""

import structlog
from protean import handle

from checkout.domain import checkout
from checkout.notification.sink import get_sink
from checkout.order.events import (
    OrderCancelled,
    OrderStatusChanged,
    PaymentConfirmed,
    PaymentFailed,
    PaymentRefunded,
)
from checkout.order.order import FulfillmentStatus, Order, PaymentStatus

logger = structlog.get_logger(__name__)


def _deliver(kind: str, order_id: str, send) -> None:
    try:
        send(get_sink())
    except Exception as exc:
        logger.error(
            "notification_delivery_failed",
            kind=kind,
            order_id=order_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )


@checkout.event_handler(part_of=Order)
class OrderNotifier:
    """Reacts to Order events to inform the notification sink."""

    @handle(PaymentConfirmed)
    def on_payment_confirmed(self, event: PaymentConfirmed) -> None:
        _deliver(
            "payment_confirmed",
            str(event.order_id),
            lambda sink: sink.payment_confirmed(
                order_id=str(event.order_id),
                tracking_code=event.tracking_code,
                customer_email=event.customer_email,
                amount=event.amount,
                currency=event.currency,
                settlement_reference=event.settlement_reference,
                demo=bool(event.demo),
            ),
        )

    @handle(PaymentFailed)
    def on_payment_failed(self, event: PaymentFailed) -> None:
        _deliver(
            "payment_failed",
            str(event.order_id),
            lambda sink: sink.payment_failed(
                order_id=str(event.order_id),
                tracking_code=event.tracking_code,
                customer_email=event.customer_email,
                reason=event.reason,
            ),
        )

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        _deliver(
            "order_status_changed",
            str(event.order_id),
            lambda sink: sink.order_status_changed(
                order_id=str(event.order_id),
                tracking_code=event.tracking_code,
                customer_email=event.customer_email,
                previous_status=event.previous_status,
                new_status=event.new_status,
                notes=event.notes,
            ),
        )

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        _deliver(
            "order_status_changed",
            str(event.order_id),
            lambda sink: sink.order_status_changed(
                order_id=str(event.order_id),
                tracking_code=event.tracking_code,
                customer_email=event.customer_email,
                previous_status=event.previous_status,
                new_status=FulfillmentStatus.CANCELLED.value,
                notes=event.reason,
            ),
        )

    @handle(PaymentRefunded)
    def on_payment_refunded(self, event: PaymentRefunded) -> None:
        _deliver(
            "order_status_changed",
            str(event.order_id),
            lambda sink: sink.order_status_changed(
                order_id=str(event.order_id),
                tracking_code=event.tracking_code,
                customer_email=event.customer_email,
                previous_status=PaymentStatus.COMPLETED.value,
                new_status=PaymentStatus.REFUNDED.value,
                notes=event.reason,
            ),
        )
