"""Notification sink port — where terminal order transitions are announced.

The storefront's customer-facing messaging (receipts, status-update emails)
lives outside this service. The sink is the narrow interface to it; the
default adapter only writes structured log lines.
"""

from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class NotificationSink(ABC):
    """Abstract interface for order notification adapters."""

    @abstractmethod
    def payment_confirmed(
        self,
        order_id: str,
        tracking_code: str | None,
        customer_email: str | None,
        amount: float,
        currency: str,
        settlement_reference: str | None,
        demo: bool = False,
    ) -> None: ...

    @abstractmethod
    def payment_failed(
        self,
        order_id: str,
        tracking_code: str | None,
        customer_email: str | None,
        reason: str | None,
    ) -> None: ...

    @abstractmethod
    def order_status_changed(
        self,
        order_id: str,
        tracking_code: str | None,
        customer_email: str | None,
        previous_status: str | None,
        new_status: str,
        notes: str | None = None,
    ) -> None:
        """Announce an admin-driven change (status update, cancellation, refund)."""
        ...


class LoggingNotificationSink(NotificationSink):
    """Writes every notification as a log event."""

    def payment_confirmed(
        self,
        order_id,
        tracking_code,
        customer_email,
        amount,
        currency,
        settlement_reference,
        demo=False,
    ):
        logger.info(
            "notify_payment_confirmed",
            order_id=order_id,
            tracking_code=tracking_code,
            customer_email=customer_email,
            amount=amount,
            currency=currency,
            settlement_reference=settlement_reference,
            demo=demo,
        )

    def payment_failed(self, order_id, tracking_code, customer_email, reason):
        logger.info(
            "notify_payment_failed",
            order_id=order_id,
            tracking_code=tracking_code,
            customer_email=customer_email,
            reason=reason,
        )

    def order_status_changed(
        self,
        order_id,
        tracking_code,
        customer_email,
        previous_status,
        new_status,
        notes=None,
    ):
        logger.info(
            "notify_order_status_changed",
            order_id=order_id,
            tracking_code=tracking_code,
            customer_email=customer_email,
            previous_status=previous_status,
            new_status=new_status,
            notes=notes,
        )


_current_sink: NotificationSink | None = None


def get_sink() -> NotificationSink:
    """Return the active sink (LoggingNotificationSink by default)."""
    global _current_sink
    if _current_sink is None:
        _current_sink = LoggingNotificationSink()
    return _current_sink


def set_sink(sink: NotificationSink) -> None:
    """Override the active sink (useful for tests)."""
    global _current_sink
    _current_sink = sink


def reset_sink() -> None:
    global _current_sink
    _current_sink = None
