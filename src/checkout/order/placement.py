"""Order placement — command and handler.

Orders normally arrive from the storefront checkout; this entry point records
one so that a payment can be initiated against it.
"""

from protean import handle
from protean.fields import Float, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order


@checkout.command(part_of="Order")
class PlaceOrder:
    """Record a storefront order awaiting payment."""

    customer_email = String(required=True, max_length=255)
    customer_name = String(max_length=255)
    amount = Float(required=True)
    currency = String(max_length=3, default="KES")
    phone = String(max_length=20)


@checkout.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            customer_email=command.customer_email,
            customer_name=command.customer_name,
            amount=command.amount,
            currency=command.currency or "KES",
            phone=command.phone,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
