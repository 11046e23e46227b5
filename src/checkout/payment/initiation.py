"""Payment initiation — orchestrates the push request for an order.

The order is marked pending first, then either the live gateway is asked to
push a prompt to the payer's phone or, when no credentials are configured,
the demo fallback is armed. In both cases the correlation token is committed
to the order before ``initiate`` returns, so a confirmation can always be
matched once it is visible.

The gateway call is made outside the order lock; only the two short order
updates around it are serialised.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.config import CheckoutSettings, get_settings
from checkout.gateway import get_gateway
from checkout.gateway.port import GatewayError, MobileMoneyGateway
from checkout.order.locks import process_locked
from checkout.order.order import Order
from checkout.order.payment import BeginPayment, RecordCheckoutRequest
from checkout.payment.demo import DemoPaymentScheduler, demo_correlation_token, get_demo_scheduler
from checkout.shared.phone import normalize_msisdn

logger = structlog.get_logger(__name__)

GATEWAY_MESSAGE = "Payment request sent. Please check your phone."

# Amounts are pushed as whole currency units
AMOUNT_TOLERANCE = 0.005
MINIMUM_AMOUNT = 1


@dataclass(frozen=True)
class InitiationResult:
    success: bool
    message: str
    checkout_request_id: str | None = None
    demo: bool = False


class PaymentInitiator:
    """Starts mobile-money payments for orders."""

    def __init__(
        self,
        settings: CheckoutSettings | None = None,
        gateway: MobileMoneyGateway | None = None,
        scheduler: DemoPaymentScheduler | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._gateway = gateway
        self._scheduler = scheduler

    @property
    def gateway(self) -> MobileMoneyGateway | None:
        return self._gateway or get_gateway(self.settings)

    @property
    def scheduler(self) -> DemoPaymentScheduler:
        return self._scheduler or get_demo_scheduler()

    def _validate(self, order_id: str, phone: str, amount: float) -> str:
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Amount must be greater than zero"]})
        if amount < MINIMUM_AMOUNT:
            raise ValidationError({"amount": [f"Amount must be at least {MINIMUM_AMOUNT}"]})

        msisdn = normalize_msisdn(phone, country_code=self.settings.country_code)

        order = current_domain.repository_for(Order).get(order_id)
        if abs(float(order.amount) - float(amount)) > AMOUNT_TOLERANCE:
            raise ValidationError({"amount": [f"Amount {amount} does not match the order total {order.amount}"]})
        return msisdn

    def initiate(self, order_id: str, phone: str, amount: float) -> InitiationResult:
        """Request payment of ``amount`` for ``order_id`` from ``phone``.

        Raises:
            ValidationError: bad amount or phone, or the payment is already settled.
            ObjectNotFoundError: no such order.
            GatewayError: the gateway refused or could not be reached. The
                order stays pending without a token so the customer can retry.
        """
        order_id = str(order_id)
        msisdn = self._validate(order_id, phone, amount)
        log = logger.bind(order_id=order_id)

        process_locked(order_id, BeginPayment(order_id=order_id, phone=msisdn))

        gateway = self.gateway
        if gateway is None:
            return self._initiate_demo(order_id, log)

        log.info("mpesa_stk_push_requested", amount=amount)
        try:
            result = gateway.initiate(order_id=order_id, amount=amount, phone=msisdn)
        except GatewayError as exc:
            log.warning("mpesa_stk_push_failed", error_type=type(exc).__name__, error=str(exc))
            raise

        process_locked(
            order_id,
            RecordCheckoutRequest(
                order_id=order_id,
                correlation_token=result.correlation_token,
                demo=False,
            ),
        )
        log.info("mpesa_stk_push_accepted", checkout_request_id=result.correlation_token)

        return InitiationResult(
            success=True,
            message=GATEWAY_MESSAGE,
            checkout_request_id=result.correlation_token,
        )

    def _initiate_demo(self, order_id: str, log) -> InitiationResult:
        token = demo_correlation_token()
        process_locked(
            order_id,
            RecordCheckoutRequest(order_id=order_id, correlation_token=token, demo=True),
        )
        ticket = self.scheduler.schedule(order_id, correlation_token=token)
        log.info("demo_payment_initiated", correlation_token=token)

        return InitiationResult(
            success=True,
            message=f"Demo payment initiated. Payment will be confirmed in {ticket.delay_seconds:g} seconds.",
            demo=True,
        )
