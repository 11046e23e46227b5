"""Shared BDD fixtures and step definitions for M-Pesa payment reconciliation."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from checkout.order.order import Order
from checkout.payment.callback import parse_stk_callback
from checkout.payment.initiation import PaymentInitiator
from checkout.payment.reconciliation import CallbackReconciler


@pytest.fixture()
def error():
    """Container for captured gateway errors."""
    return {"exc": None}


@pytest.fixture(autouse=True)
def _recording_sink(fake_sink):
    return fake_sink


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the gateway is not configured", target_fixture="scheduler")
def gateway_not_configured(demo_scheduler):
    return demo_scheduler


@given(parsers.cfparse('the gateway accepts pushes with checkout request "{token}"'))
def gateway_accepts(fake_gateway, token):
    fake_gateway.configure(should_succeed=True, checkout_request_id=token)


@given(parsers.cfparse('the gateway rejects pushes with reason "{reason}"'))
def gateway_rejects(fake_gateway, reason):
    fake_gateway.configure(should_succeed=False, failure_reason=reason)


@given(parsers.cfparse("an order for {amount:d} KES"), target_fixture="order_id")
def an_order(place_order, amount):
    return place_order(amount=float(amount))


@given(parsers.cfparse('the customer paid from "{phone}"'), target_fixture="initiation")
def customer_paid(order_id, phone):
    amount = _order(order_id).amount
    return PaymentInitiator().initiate(order_id, phone=phone, amount=amount)


@given(parsers.cfparse('a success callback for "{token}" with receipt "{receipt}" arrived'))
def success_callback_arrived(callback_payload, token, receipt):
    CallbackReconciler().reconcile(parse_stk_callback(callback_payload(token, receipt=receipt)))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order payment status is "{status}"'))
def order_payment_status(order_id, status):
    assert _order(order_id).payment_status == status


@then(parsers.cfparse('the order status is "{status}"'))
def order_status(order_id, status):
    assert _order(order_id).status == status


@then(parsers.cfparse('the order correlation token is "{token}"'))
def order_correlation_token(order_id, token):
    assert _order(order_id).correlation_token == token


@then(parsers.cfparse('the settlement reference is "{reference}"'))
def settlement_reference(order_id, reference):
    assert _order(order_id).settlement_reference == reference


@then(parsers.cfparse('the settlement reference starts with "{prefix}"'))
def settlement_reference_prefix(order_id, prefix):
    assert _order(order_id).settlement_reference.startswith(prefix)


@then(parsers.cfparse("the customer was notified of {count:d} confirmed payment"))
def notified_confirmed(fake_sink, count):
    assert len(fake_sink.of_kind("payment_confirmed")) == count
