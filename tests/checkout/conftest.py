import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _isolated_adapters(monkeypatch):
    """Demo mode by default; no credentials leak in from the developer's environment."""
    from checkout.config import reset_settings
    from checkout.gateway import reset_gateway
    from checkout.notification.sink import reset_sink
    from checkout.payment.demo import reset_demo_scheduler

    for name in ("CONSUMER_KEY", "CONSUMER_SECRET", "SHORTCODE", "PASSKEY"):
        monkeypatch.setenv(f"MPESA_{name}", "")
    monkeypatch.setenv("MPESA_RECONCILE_BACKOFF_MULTIPLIER", "0")

    reset_settings()
    reset_gateway()
    reset_sink()
    reset_demo_scheduler()

    yield

    reset_demo_scheduler()
    reset_sink()
    reset_gateway()
    reset_settings()


class FakeTimer:
    """Stands in for threading.Timer; fires only when the test says so."""

    instances: list["FakeTimer"] = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Run the callback as the timer thread would, unless cancelled."""
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


@pytest.fixture()
def fake_timers():
    FakeTimer.instances = []
    yield FakeTimer.instances
    FakeTimer.instances = []


@pytest.fixture()
def demo_scheduler(fake_timers):
    """Installs a demo scheduler whose timers are fired by hand."""
    from checkout.payment.demo import DemoPaymentScheduler, set_demo_scheduler

    scheduler = DemoPaymentScheduler(timer_factory=FakeTimer)
    set_demo_scheduler(scheduler)
    return scheduler


@pytest.fixture()
def fake_gateway():
    from checkout.gateway import set_gateway
    from checkout.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway()
    set_gateway(gateway)
    return gateway


@pytest.fixture()
def fake_sink():
    from checkout.notification.fake_sink import FakeNotificationSink
    from checkout.notification.sink import set_sink

    sink = FakeNotificationSink()
    set_sink(sink)
    return sink


@pytest.fixture()
def place_order():
    """Factory that records an order through the PlaceOrder command."""
    from protean import current_domain

    from checkout.order.placement import PlaceOrder

    def _place(amount=1500.0, customer_email="wanjiru@example.com", **overrides):
        command = PlaceOrder(
            customer_email=customer_email,
            customer_name=overrides.pop("customer_name", "Wanjiru Kamau"),
            amount=amount,
            **overrides,
        )
        return current_domain.process(command, asynchronous=False)

    return _place


def _stk_callback(checkout_request_id, result_code=0, result_desc=None, receipt="QAB1C2D3E4", amount=1500):
    """Build a gateway callback envelope."""
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc
        or ("The service request is processed successfully." if result_code == 0 else "Request cancelled by user"),
    }
    if result_code == 0:
        items = [
            {"Name": "Amount", "Value": amount},
            {"Name": "TransactionDate", "Value": 20240101120000},
            {"Name": "PhoneNumber", "Value": 254722000000},
        ]
        if receipt is not None:
            items.insert(1, {"Name": "MpesaReceiptNumber", "Value": receipt})
        callback["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": callback}}


@pytest.fixture()
def callback_payload():
    """Builder for gateway callback envelopes."""
    return _stk_callback
