"""Callback reconciliation — match a gateway confirmation to its order.

The confirmation can legitimately race the initiation call that recorded its
correlation token, so a lookup miss is retried with bounded exponential
backoff before it is treated as permanent. A permanent miss is logged and
reported as ``ConfirmationOutcome.MISS``; it is never raised, because the
gateway must always be acknowledged.
"""

import structlog
from protean.utils.globals import current_domain
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from checkout.config import CheckoutSettings, get_settings
from checkout.order.locks import process_locked
from checkout.order.order import ConfirmationOutcome, Order
from checkout.order.payment import ApplyGatewayConfirmation
from checkout.payment.callback import Confirmation

logger = structlog.get_logger(__name__)


class CorrelationNotVisible(Exception):
    """No order carries the token yet."""


class CallbackReconciler:
    """Applies gateway confirmations to the orders that requested them."""

    def __init__(self, settings: CheckoutSettings | None = None) -> None:
        settings = settings or get_settings()
        self.lookup_attempts = settings.reconcile_lookup_attempts
        self.backoff_multiplier = settings.reconcile_backoff_multiplier
        self.backoff_max = settings.reconcile_backoff_max_seconds

    def _find(self, correlation_token: str) -> Order:
        order = current_domain.repository_for(Order).find_by_correlation_token(correlation_token)
        if order is None:
            raise CorrelationNotVisible(correlation_token)
        return order

    def lookup(self, correlation_token: str) -> Order | None:
        """Find the order for ``correlation_token``, retrying while it is not visible."""
        retrying = Retrying(
            retry=retry_if_exception_type(CorrelationNotVisible),
            stop=stop_after_attempt(self.lookup_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            reraise=False,
        )
        try:
            return retrying(self._find, correlation_token)
        except RetryError:
            return None

    def reconcile(self, confirmation: Confirmation) -> ConfirmationOutcome:
        log = logger.bind(
            correlation_token=confirmation.correlation_token,
            result_code=confirmation.result_code,
        )

        order = self.lookup(confirmation.correlation_token)
        if order is None:
            log.warning("reconciliation_miss", result_desc=confirmation.result_desc)
            return ConfirmationOutcome.MISS

        order_id = str(order.id)
        receipt_number = confirmation.receipt_number
        if confirmation.succeeded and receipt_number is None:
            log.warning("confirmation_without_receipt_number", order_id=order_id)

        outcome = ConfirmationOutcome(
            process_locked(
                order_id,
                ApplyGatewayConfirmation(
                    order_id=order_id,
                    correlation_token=confirmation.correlation_token,
                    result_code=confirmation.result_code,
                    result_desc=confirmation.result_desc,
                    receipt_number=receipt_number,
                ),
            )
        )

        if outcome == ConfirmationOutcome.APPLIED:
            log.info(
                "confirmation_applied",
                order_id=order_id,
                succeeded=confirmation.succeeded,
                receipt_number=receipt_number,
            )
        elif outcome == ConfirmationOutcome.DUPLICATE:
            log.info("confirmation_replayed", order_id=order_id)
        else:
            log.warning("confirmation_stale", order_id=order_id, succeeded=confirmation.succeeded)
        return outcome
