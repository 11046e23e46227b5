"""Demo fallback — synthetic payment confirmation when no gateway is configured.

Initiation returns immediately and a one-shot timer, keyed by order id,
settles the payment after ``demo_delay_seconds``. The timer applies the
confirmation straight to the order (there is no external message to
validate), and only while the payment is still pending, so an order that was
cancelled in the meantime is never pushed back into processing. Cancelling
an order also cancels its timer.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from protean import handle
from protean.domain import Domain

from checkout.config import CheckoutSettings, get_settings
from checkout.domain import checkout
from checkout.order.events import OrderCancelled
from checkout.order.locks import process_locked
from checkout.order.order import ConfirmationOutcome, Order
from checkout.order.payment import ApplyDemoConfirmation

logger = structlog.get_logger(__name__)

DEMO_TOKEN_PREFIX = "DEMO"


def demo_correlation_token() -> str:
    """Locally generated token; it never round-trips through a gateway."""
    return f"{DEMO_TOKEN_PREFIX}{int(time.time() * 1000)}"


@dataclass(frozen=True)
class DemoTicket:
    order_id: str
    correlation_token: str
    delay_seconds: float


class DemoPaymentScheduler:
    """Cancellable deferred demo confirmations, one per order."""

    def __init__(
        self,
        settings: CheckoutSettings | None = None,
        domain: Domain | None = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        settings = settings or get_settings()
        self.delay_seconds = settings.demo_delay_seconds
        self.domain = domain or checkout
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._scheduled: dict[str, tuple[DemoTicket, threading.Timer]] = {}

    def schedule(self, order_id: str, correlation_token: str | None = None) -> DemoTicket:
        """Arm the demo confirmation for ``order_id``, replacing any earlier one.

        ``correlation_token`` is the token already recorded on the order; a
        fresh one is generated when it is omitted.
        """
        order_id = str(order_id)
        ticket = DemoTicket(
            order_id=order_id,
            correlation_token=correlation_token or demo_correlation_token(),
            delay_seconds=self.delay_seconds,
        )
        timer = self._timer_factory(self.delay_seconds, self._fire, args=(ticket,))
        timer.daemon = True

        with self._lock:
            previous = self._scheduled.pop(order_id, None)
            if previous is not None:
                previous[1].cancel()
            self._scheduled[order_id] = (ticket, timer)

        timer.start()
        logger.info(
            "demo_payment_scheduled",
            order_id=order_id,
            correlation_token=ticket.correlation_token,
            delay_seconds=self.delay_seconds,
        )
        return ticket

    def cancel(self, order_id: str) -> bool:
        """Abort the pending demo confirmation for ``order_id``, if any."""
        with self._lock:
            entry = self._scheduled.pop(str(order_id), None)
        if entry is None:
            return False

        entry[1].cancel()
        logger.info("demo_payment_cancelled", order_id=str(order_id))
        return True

    def is_scheduled(self, order_id: str) -> bool:
        with self._lock:
            return str(order_id) in self._scheduled

    def shutdown(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            entries = list(self._scheduled.values())
            self._scheduled.clear()
        for _, timer in entries:
            timer.cancel()

    def _fire(self, ticket: DemoTicket) -> None:
        with self._lock:
            entry = self._scheduled.get(ticket.order_id)
            if entry is None or entry[0] is not ticket:
                # Cancelled or superseded after the timer started
                return
            del self._scheduled[ticket.order_id]

        try:
            with self.domain.domain_context():
                outcome = ConfirmationOutcome(
                    process_locked(
                        ticket.order_id,
                        ApplyDemoConfirmation(
                            order_id=ticket.order_id,
                            correlation_token=ticket.correlation_token,
                        ),
                    )
                )
        except Exception:
            logger.exception("demo_payment_failed", order_id=ticket.order_id)
            return

        logger.info(
            "demo_payment_completed",
            order_id=ticket.order_id,
            correlation_token=ticket.correlation_token,
            outcome=outcome.value,
        )


_scheduler: DemoPaymentScheduler | None = None


def get_demo_scheduler() -> DemoPaymentScheduler:
    """Return the process-wide demo scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DemoPaymentScheduler()
    return _scheduler


def set_demo_scheduler(scheduler: DemoPaymentScheduler) -> None:
    global _scheduler
    _scheduler = scheduler


def reset_demo_scheduler() -> None:
    """Cancel outstanding timers and drop the singleton (useful for testing)."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown()
    _scheduler = None


@checkout.event_handler(part_of=Order)
class DemoTimerCleanup:
    """Cancels a pending demo confirmation when its order is cancelled."""

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        if _scheduler is not None:
            _scheduler.cancel(str(event.order_id))
