"""Fake notification sink — records notifications for testing."""

from checkout.notification.sink import NotificationSink


class FakeNotificationSink(NotificationSink):
    """Sink that records notifications in memory for test assertions."""

    def __init__(self):
        self.notifications: list[dict] = []
        self.should_fail = False

    def configure(self, should_fail: bool = False):
        """Make every notification raise, to exercise error isolation."""
        self.should_fail = should_fail

    def _record(self, kind: str, **details) -> None:
        if self.should_fail:
            raise RuntimeError(f"Notification delivery failed: {kind}")
        self.notifications.append({"kind": kind, **details})

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
        self._record(
            "payment_confirmed",
            order_id=order_id,
            tracking_code=tracking_code,
            customer_email=customer_email,
            amount=amount,
            currency=currency,
            settlement_reference=settlement_reference,
            demo=demo,
        )

    def payment_failed(self, order_id, tracking_code, customer_email, reason):
        self._record(
            "payment_failed",
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
        self._record(
            "order_status_changed",
            order_id=order_id,
            tracking_code=tracking_code,
            customer_email=customer_email,
            previous_status=previous_status,
            new_status=new_status,
            notes=notes,
        )

    def of_kind(self, kind: str) -> list[dict]:
        return [n for n in self.notifications if n["kind"] == kind]

    def reset(self):
        """Clear recorded notifications (useful between tests)."""
        self.notifications.clear()
        self.should_fail = False
