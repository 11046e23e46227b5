"""Order aggregate (CQRS) — the record the payment core reads and updates.

The storefront owns most of an order; this aggregate carries the subset the
mobile-money core needs: amount and phone as payment inputs, the payment and
fulfillment statuses, and the gateway identifiers used to correlate an
asynchronous confirmation with the order that requested it.

Payment state machine:
    (unset) → PENDING → COMPLETED → REFUNDED (admin only)
                      → FAILED

Fulfillment state machine:
    PENDING → PROCESSING → SHIPPED → DELIVERED
    PENDING / PROCESSING → CANCELLED

Fulfillment may only enter PROCESSING as the direct effect of the payment
becoming COMPLETED.

Gateway identifiers:
    correlation_token       ephemeral CheckoutRequestID of the outstanding push
    last_correlation_token  token of the confirmation that settled the payment
    settlement_reference    permanent receipt number, set once
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, String

from checkout.domain import checkout
from checkout.order.events import (
    OrderCancelled,
    OrderPlaced,
    OrderStatusChanged,
    PaymentConfirmed,
    PaymentFailed,
    PaymentInitiated,
    PaymentRefunded,
    PaymentRequested,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class FulfillmentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ConfirmationOutcome(Enum):
    """What happened to a confirmation offered to an order."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"  # replay of the confirmation that settled the order
    STALE = "stale"  # token is not current, or conflicts with the settled state
    MISS = "miss"  # no order carries the token


PAYMENT_METHOD_MPESA = "mpesa"

# State machine transition maps. ``None`` is the implicit unset payment status.
_PAYMENT_TRANSITIONS = {
    None: {PaymentStatus.PENDING},
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}

_FULFILLMENT_TRANSITIONS = {
    FulfillmentStatus.PENDING: {FulfillmentStatus.PROCESSING, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.PROCESSING: {FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.DELIVERED},
    FulfillmentStatus.DELIVERED: set(),  # Terminal
    FulfillmentStatus.CANCELLED: set(),  # Terminal
}

# Payment statuses this core never moves away from on its own
TERMINAL_PAYMENT_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.FAILED}


def _generate_tracking_code() -> str:
    return f"TRK-{uuid4().hex[:8].upper()}"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class StatusChange:
    """One entry of the order's status history."""

    status = String(max_length=50, required=True)
    payment_status = String(max_length=50)
    notes = String(max_length=500)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    customer_email = String(required=True, max_length=255)
    customer_name = String(max_length=255)
    tracking_code = String(max_length=20)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="KES")
    phone = String(max_length=20)
    payment_method = String(max_length=50)
    payment_status = String(choices=PaymentStatus)
    status = String(
        choices=FulfillmentStatus,
        default=FulfillmentStatus.PENDING.value,
    )
    correlation_token = String(max_length=255)
    last_correlation_token = String(max_length=255)
    settlement_reference = String(max_length=255)
    failure_reason = String(max_length=500)
    demo = Boolean(default=False)
    history = HasMany(StatusChange)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_email: str,
        amount: float,
        currency: str = "KES",
        customer_name: str | None = None,
        phone: str | None = None,
    ):
        """Record a new storefront order awaiting payment."""
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Order amount must be greater than zero"]})

        now = datetime.now(UTC)
        order = cls(
            customer_email=customer_email,
            customer_name=customer_name,
            tracking_code=_generate_tracking_code(),
            amount=amount,
            currency=currency or "KES",
            phone=phone,
            status=FulfillmentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        order._record_history(notes="Order placed", at=now)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                tracking_code=order.tracking_code,
                customer_email=customer_email,
                amount=amount,
                currency=order.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State machine helpers
    # -------------------------------------------------------------------
    @property
    def current_payment_status(self) -> PaymentStatus | None:
        return PaymentStatus(self.payment_status) if self.payment_status else None

    @property
    def current_status(self) -> FulfillmentStatus:
        return FulfillmentStatus(self.status)

    def _assert_payment_transition(self, target: PaymentStatus) -> None:
        current = self.current_payment_status
        if target not in _PAYMENT_TRANSITIONS.get(current, set()):
            label = current.value if current else "unset"
            raise ValidationError({"payment_status": [f"Cannot transition payment from {label} to {target.value}"]})

    def _assert_status_transition(self, target: FulfillmentStatus) -> None:
        current = self.current_status
        if target not in _FULFILLMENT_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

    def _record_history(self, notes: str | None = None, at: datetime | None = None) -> None:
        self.add_history(
            StatusChange(
                status=self.status,
                payment_status=self.payment_status,
                notes=notes,
                changed_at=at or datetime.now(UTC),
            )
        )

    def _settle_token(self) -> str | None:
        """Retire the outstanding correlation token once the payment is settled."""
        token = self.correlation_token
        if token:
            self.last_correlation_token = token
        self.correlation_token = None
        return token

    # -------------------------------------------------------------------
    # Payment initiation
    # -------------------------------------------------------------------
    def begin_payment(self, phone: str) -> None:
        """Enter (or re-enter) the pending payment state for a push request.

        A pending order may be re-initiated: a rejected push leaves it
        pending with no new token so the customer can retry.
        """
        current = self.current_payment_status
        if current is not None and current != PaymentStatus.PENDING:
            raise ValidationError({"payment_status": [f"Payment is already {current.value}"]})
        if self.current_status != FulfillmentStatus.PENDING:
            raise ValidationError({"status": [f"Cannot take payment for an order that is {self.status}"]})

        now = datetime.now(UTC)
        if current is None:
            self._assert_payment_transition(PaymentStatus.PENDING)
            self.payment_status = PaymentStatus.PENDING.value
            self._record_history(notes="Awaiting mobile money payment", at=now)

        self.phone = phone
        self.payment_method = PAYMENT_METHOD_MPESA
        self.failure_reason = None
        self.updated_at = now

        self.raise_(
            PaymentInitiated(
                order_id=str(self.id),
                amount=self.amount,
                phone=phone,
                initiated_at=now,
            )
        )

    def record_correlation_token(self, correlation_token: str, demo: bool = False) -> None:
        """Remember the gateway token that the eventual confirmation will carry."""
        if not correlation_token:
            raise ValidationError({"correlation_token": ["Correlation token is required"]})
        if self.current_payment_status != PaymentStatus.PENDING:
            raise ValidationError({"payment_status": ["Correlation token can only be recorded for a pending payment"]})

        now = datetime.now(UTC)
        self.correlation_token = correlation_token
        self.demo = demo
        self.updated_at = now

        self.raise_(
            PaymentRequested(
                order_id=str(self.id),
                correlation_token=correlation_token,
                demo=demo,
                requested_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------
    def classify_confirmation(self, correlation_token: str, succeeded: bool) -> ConfirmationOutcome | None:
        """Decide whether a confirmation may be applied.

        Returns None when it should be applied, otherwise the no-op outcome.
        """
        current = self.current_payment_status
        if correlation_token and correlation_token == self.correlation_token and current == PaymentStatus.PENDING:
            return None

        known_tokens = {self.correlation_token, self.last_correlation_token} - {None}
        if correlation_token in known_tokens and current in TERMINAL_PAYMENT_STATUSES:
            expected = PaymentStatus.COMPLETED if succeeded else PaymentStatus.FAILED
            if current == expected:
                return ConfirmationOutcome.DUPLICATE

        return ConfirmationOutcome.STALE

    def confirm_payment(self, correlation_token: str, settlement_reference: str | None = None) -> ConfirmationOutcome:
        """Apply a successful confirmation carrying ``correlation_token``."""
        outcome = self.classify_confirmation(correlation_token, succeeded=True)
        if outcome is not None:
            return outcome

        self._assert_payment_transition(PaymentStatus.COMPLETED)
        self._assert_status_transition(FulfillmentStatus.PROCESSING)

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.COMPLETED.value
        self.status = FulfillmentStatus.PROCESSING.value
        self.settlement_reference = settlement_reference or correlation_token
        self._settle_token()
        self.failure_reason = None
        self.updated_at = now
        self._record_history(notes=f"Payment confirmed ({self.settlement_reference})", at=now)

        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                tracking_code=self.tracking_code,
                customer_email=self.customer_email,
                amount=self.amount,
                currency=self.currency,
                correlation_token=correlation_token,
                settlement_reference=self.settlement_reference,
                demo=bool(self.demo),
                confirmed_at=now,
            )
        )
        return ConfirmationOutcome.APPLIED

    def fail_payment(self, correlation_token: str, reason: str) -> ConfirmationOutcome:
        """Apply a failed confirmation: the payment fails and the order is cancelled."""
        outcome = self.classify_confirmation(correlation_token, succeeded=False)
        if outcome is not None:
            return outcome

        self._assert_payment_transition(PaymentStatus.FAILED)
        self._assert_status_transition(FulfillmentStatus.CANCELLED)

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.status = FulfillmentStatus.CANCELLED.value
        self.failure_reason = reason or "Payment failed"
        self._settle_token()
        self.updated_at = now
        self._record_history(notes=f"Payment failed: {self.failure_reason}", at=now)

        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                tracking_code=self.tracking_code,
                customer_email=self.customer_email,
                correlation_token=correlation_token,
                reason=self.failure_reason,
                failed_at=now,
            )
        )
        return ConfirmationOutcome.APPLIED

    def apply_demo_confirmation(self, correlation_token: str) -> ConfirmationOutcome:
        """Settle a demo-mode payment, but only while it is still pending."""
        if self.current_payment_status != PaymentStatus.PENDING:
            return ConfirmationOutcome.STALE

        self.demo = True
        return self.confirm_payment(correlation_token, settlement_reference=correlation_token)

    # -------------------------------------------------------------------
    # Admin overrides
    # -------------------------------------------------------------------
    def update_status(self, new_status: str, notes: str | None = None) -> None:
        """Move the order along its fulfillment lifecycle."""
        try:
            target = FulfillmentStatus(new_status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status {new_status!r}"]}) from None

        if target == FulfillmentStatus.CANCELLED:
            self.cancel(reason=notes or "Cancelled by administrator")
            return

        if target == FulfillmentStatus.PROCESSING:
            # Processing is reached only through a completed payment
            raise ValidationError({"status": ["Orders enter processing only when their payment completes"]})

        self._assert_status_transition(target)

        now = datetime.now(UTC)
        previous = self.status
        self.status = target.value
        self.updated_at = now
        self._record_history(notes=notes, at=now)

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                tracking_code=self.tracking_code,
                customer_email=self.customer_email,
                previous_status=previous,
                new_status=target.value,
                notes=notes,
                changed_at=now,
            )
        )

    def cancel(self, reason: str) -> None:
        """Cancel the order. A still-pending payment is failed with it."""
        self._assert_status_transition(FulfillmentStatus.CANCELLED)

        now = datetime.now(UTC)
        previous = self.status
        self.status = FulfillmentStatus.CANCELLED.value
        if self.current_payment_status == PaymentStatus.PENDING:
            self.payment_status = PaymentStatus.FAILED.value
            self.failure_reason = reason
            self._settle_token()
        self.updated_at = now
        self._record_history(notes=reason, at=now)

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                tracking_code=self.tracking_code,
                customer_email=self.customer_email,
                previous_status=previous,
                reason=reason,
                payment_status=self.payment_status,
                cancelled_at=now,
            )
        )

    def refund(self, reason: str) -> None:
        """Refund a completed payment."""
        self._assert_payment_transition(PaymentStatus.REFUNDED)

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.REFUNDED.value
        self.updated_at = now
        self._record_history(notes=f"Payment refunded: {reason}", at=now)

        self.raise_(
            PaymentRefunded(
                order_id=str(self.id),
                tracking_code=self.tracking_code,
                customer_email=self.customer_email,
                amount=self.amount,
                currency=self.currency,
                settlement_reference=self.settlement_reference,
                reason=reason,
                refunded_at=now,
            )
        )
