"""Configurable fake mobile-money gateway for development and testing.

Simulates the push-request half of the gateway without any network calls.
Accepted requests return a CheckoutRequestID-style token; the confirmation
is then delivered by posting a callback envelope to the callback endpoint,
exactly as the real gateway would.
"""

from uuid import uuid4

from checkout.gateway.port import (
    AuthFailure,
    GatewayUnavailable,
    MobileMoneyGateway,
    PushResult,
    RejectedByGateway,
)

FAILURE_MODES = ("rejected", "auth", "unavailable")


class FakeGateway(MobileMoneyGateway):
    """Configurable fake gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Request cancelled by user"
        self.failure_mode: str = "rejected"
        self.checkout_request_id: str | None = None
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Request cancelled by user",
        failure_mode: str = "rejected",
        checkout_request_id: str | None = None,
    ) -> None:
        """Configure gateway behavior at runtime.

        ``checkout_request_id`` pins the token returned by the next pushes;
        otherwise a random ``ws_CO_`` token is issued per call.
        """
        if failure_mode not in FAILURE_MODES:
            raise ValueError(f"Unknown failure mode: {failure_mode}")
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failure_mode = failure_mode
        self.checkout_request_id = checkout_request_id

    def initiate(self, order_id: str, amount: float, phone: str) -> PushResult:
        self.calls.append(
            {
                "method": "initiate",
                "order_id": order_id,
                "amount": amount,
                "phone": phone,
            }
        )

        if not self.should_succeed:
            if self.failure_mode == "auth":
                raise AuthFailure("Failed to get M-Pesa access token")
            if self.failure_mode == "unavailable":
                raise GatewayUnavailable("M-Pesa gateway unreachable")
            raise RejectedByGateway(self.failure_reason, response_code="1")

        return PushResult(
            correlation_token=self.checkout_request_id or f"ws_CO_{uuid4().hex[:12]}",
            merchant_request_id=f"fake-{uuid4().hex[:8]}",
            response_description="Success. Request accepted for processing",
            customer_message="Success. Request accepted for processing",
        )
