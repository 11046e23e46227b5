"""Order payment — commands and handler.

Each command is one read-modify-write of a single order. Callers process
them through ``process_locked`` so that concurrent initiation,
reconciliation, demo confirmation and admin overrides of the same order are
serialised. Network calls never happen inside these handlers.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import ConfirmationOutcome, Order

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class BeginPayment:
    """Mark the order as awaiting a mobile-money payment."""

    order_id = Identifier(required=True)
    phone = String(required=True, max_length=20)


@checkout.command(part_of="Order")
class RecordCheckoutRequest:
    """Persist the correlation token issued for the order's push request."""

    order_id = Identifier(required=True)
    correlation_token = String(required=True, max_length=255)
    demo = Boolean(default=False)


@checkout.command(part_of="Order")
class ApplyGatewayConfirmation:
    """Apply a gateway callback already matched to ``order_id``."""

    order_id = Identifier(required=True)
    correlation_token = String(required=True, max_length=255)
    result_code = Integer(required=True)
    result_desc = String(max_length=500)
    receipt_number = String(max_length=255)


@checkout.command(part_of="Order")
class ApplyDemoConfirmation:
    """Apply the synthetic confirmation produced by the demo fallback."""

    order_id = Identifier(required=True)
    correlation_token = String(required=True, max_length=255)


@checkout.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(BeginPayment)
    def begin_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.begin_payment(phone=command.phone)
        repo.add(order)

    @handle(RecordCheckoutRequest)
    def record_checkout_request(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_correlation_token(
            correlation_token=command.correlation_token,
            demo=bool(command.demo),
        )
        repo.add(order)

    @handle(ApplyGatewayConfirmation)
    def apply_gateway_confirmation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if command.result_code == 0:
            outcome = order.confirm_payment(
                correlation_token=command.correlation_token,
                settlement_reference=command.receipt_number,
            )
        else:
            outcome = order.fail_payment(
                correlation_token=command.correlation_token,
                reason=command.result_desc or f"Result code {command.result_code}",
            )

        if outcome == ConfirmationOutcome.APPLIED:
            repo.add(order)
        return outcome.value

    @handle(ApplyDemoConfirmation)
    def apply_demo_confirmation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        outcome = order.apply_demo_confirmation(correlation_token=command.correlation_token)
        if outcome == ConfirmationOutcome.APPLIED:
            repo.add(order)
        else:
            logger.info(
                "demo_confirmation_skipped",
                order_id=str(order.id),
                payment_status=order.payment_status,
                status=order.status,
            )
        return outcome.value
