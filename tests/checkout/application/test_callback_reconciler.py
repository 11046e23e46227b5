"""Tests for CallbackReconciler: matching, idempotence, ordering and the lookup race."""

import threading
import time
from unittest.mock import patch

from protean import current_domain

from checkout.config import CheckoutSettings
from checkout.domain import checkout
from checkout.order.locks import process_locked
from checkout.order.order import ConfirmationOutcome, FulfillmentStatus, Order, PaymentStatus
from checkout.order.payment import BeginPayment, RecordCheckoutRequest
from checkout.order.repository import OrderRepository
from checkout.payment.callback import parse_stk_callback
from checkout.payment.initiation import PaymentInitiator
from checkout.payment.reconciliation import CallbackReconciler


def _get(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _initiated(place_order, fake_gateway, token):
    fake_gateway.configure(should_succeed=True, checkout_request_id=token)
    order_id = place_order(amount=1500.0)
    PaymentInitiator().initiate(order_id, phone="0722000000", amount=1500.0)
    return order_id


def _reconcile(callback_payload, token, **kwargs):
    return CallbackReconciler().reconcile(parse_stk_callback(callback_payload(token, **kwargs)))


class TestApplyConfirmation:
    def test_success_completes_order(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_success")

        outcome = _reconcile(callback_payload, "ws_CO_success", receipt="NLJ7RT61SV")

        assert outcome == ConfirmationOutcome.APPLIED
        order = _get(order_id)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.status == FulfillmentStatus.PROCESSING.value
        assert order.settlement_reference == "NLJ7RT61SV"
        assert order.correlation_token is None

    def test_failure_cancels_order(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_failure")

        outcome = _reconcile(callback_payload, "ws_CO_failure", result_code=1032)

        assert outcome == ConfirmationOutcome.APPLIED
        order = _get(order_id)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.status == FulfillmentStatus.CANCELLED.value
        assert order.failure_reason == "Request cancelled by user"

    def test_success_without_receipt_uses_token(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_noreceipt")
        _reconcile(callback_payload, "ws_CO_noreceipt", receipt=None)
        assert _get(order_id).settlement_reference == "ws_CO_noreceipt"


class TestIdempotence:
    def test_replayed_success_is_duplicate(self, place_order, fake_gateway, callback_payload, fake_sink):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_replay")
        _reconcile(callback_payload, "ws_CO_replay", receipt="QAB123")

        outcome = _reconcile(callback_payload, "ws_CO_replay", receipt="QAB123")

        assert outcome == ConfirmationOutcome.DUPLICATE
        assert _get(order_id).settlement_reference == "QAB123"
        assert len(fake_sink.of_kind("payment_confirmed")) == 1

    def test_failure_after_success_is_stale(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_order")
        _reconcile(callback_payload, "ws_CO_order")

        outcome = _reconcile(callback_payload, "ws_CO_order", result_code=1)

        assert outcome == ConfirmationOutcome.STALE
        order = _get(order_id)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.status == FulfillmentStatus.PROCESSING.value

    def test_success_after_failure_is_stale(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_late")
        _reconcile(callback_payload, "ws_CO_late", result_code=1032)

        outcome = _reconcile(callback_payload, "ws_CO_late")

        assert outcome == ConfirmationOutcome.STALE
        assert _get(order_id).status == FulfillmentStatus.CANCELLED.value

    def test_superseded_token_no_longer_matches(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_first")
        fake_gateway.configure(should_succeed=True, checkout_request_id="ws_CO_second")
        PaymentInitiator().initiate(order_id, phone="0722000000", amount=1500.0)

        assert _reconcile(callback_payload, "ws_CO_first") == ConfirmationOutcome.MISS
        assert _get(order_id).payment_status == PaymentStatus.PENDING.value

        assert _reconcile(callback_payload, "ws_CO_second") == ConfirmationOutcome.APPLIED


class TestUnknownToken:
    def test_unknown_token_is_a_miss(self, callback_payload):
        assert _reconcile(callback_payload, "ws_CO_unknown") == ConfirmationOutcome.MISS

    def test_lookup_is_retried_before_giving_up(self, callback_payload):
        with patch.object(OrderRepository, "find_by_correlation_token", return_value=None) as lookup:
            outcome = _reconcile(callback_payload, "ws_CO_never")

        assert outcome == ConfirmationOutcome.MISS
        assert lookup.call_count == 5


class TestLookupRace:
    def test_confirmation_arriving_before_token_is_visible(self, place_order, fake_gateway, callback_payload):
        order_id = _initiated(place_order, fake_gateway, "ws_CO_race")
        order = _get(order_id)

        with patch.object(
            OrderRepository,
            "find_by_correlation_token",
            side_effect=[None, None, order],
        ) as lookup:
            outcome = _reconcile(callback_payload, "ws_CO_race")

        assert outcome == ConfirmationOutcome.APPLIED
        assert lookup.call_count == 3
        assert _get(order_id).payment_status == PaymentStatus.COMPLETED.value


class TestLookupBackoff:
    """Real waits between lookups, with a short schedule."""

    def _reconciler(self, attempts):
        settings = CheckoutSettings(
            _env_file=None,
            reconcile_lookup_attempts=attempts,
            reconcile_backoff_multiplier=0.05,
            reconcile_backoff_max_seconds=1.0,
        )
        return CallbackReconciler(settings)

    def test_miss_waits_out_the_exponential_schedule(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_gone"))

        started = time.monotonic()
        outcome = self._reconciler(attempts=4).reconcile(confirmation)
        elapsed = time.monotonic() - started

        assert outcome == ConfirmationOutcome.MISS
        # 0.05 + 0.1 + 0.2 seconds between the four lookups
        assert 0.3 <= elapsed < 2.0

    def test_token_committed_during_backoff_is_found(self, place_order, callback_payload):
        order_id = place_order(amount=1500.0)
        process_locked(order_id, BeginPayment(order_id=order_id, phone="254722000000"))

        def _record_token():
            with checkout.domain_context():
                process_locked(
                    order_id,
                    RecordCheckoutRequest(order_id=order_id, correlation_token="ws_CO_late"),
                )

        writer = threading.Timer(0.1, _record_token)
        writer.start()
        try:
            outcome = self._reconciler(attempts=5).reconcile(
                parse_stk_callback(callback_payload("ws_CO_late", receipt="QLATE1"))
            )
        finally:
            writer.join()

        assert outcome == ConfirmationOutcome.APPLIED
        order = _get(order_id)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.settlement_reference == "QLATE1"
