"""Domain events for the Order aggregate.

Events are raised only when a transition is actually applied, so a replayed
gateway confirmation never produces a second PaymentConfirmed. The
notification handler consumes them to inform the Notification Sink.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """A storefront order was recorded and awaits payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_code = String(required=True)
    customer_email = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentInitiated:
    """The customer asked to pay the order by mobile money."""

    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    phone = String(required=True)
    initiated_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentRequested:
    """A push request was accepted and its correlation token recorded."""

    __version__ = 1

    order_id = Identifier(required=True)
    correlation_token = String(required=True)
    demo = Boolean(default=False)
    requested_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentConfirmed:
    """The payment was confirmed and the order moved to processing."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_code = String()
    customer_email = String()
    amount = Float(required=True)
    currency = String(required=True)
    correlation_token = String(required=True)
    settlement_reference = String(required=True)
    demo = Boolean(default=False)
    confirmed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentFailed:
    """The gateway reported a failed payment; the order was cancelled."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_code = String()
    customer_email = String()
    correlation_token = String()
    reason = String(required=True)
    failed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderStatusChanged:
    """An administrator moved the order along its fulfillment lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_code = String()
    customer_email = String()
    previous_status = String(required=True)
    new_status = String(required=True)
    notes = String()
    changed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled outside the gateway flow."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_code = String()
    customer_email = String()
    previous_status = String(required=True)
    reason = String(required=True)
    payment_status = String()
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentRefunded:
    """A completed payment was refunded by an administrator."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_code = String()
    customer_email = String()
    amount = Float(required=True)
    currency = String(required=True)
    settlement_reference = String()
    reason = String(required=True)
    refunded_at = DateTime(required=True)
