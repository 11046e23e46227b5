"""Mobile-money gateway port (abstract interface).

Defines the contract every gateway adapter implements: request a payment
push for an order and hand back the correlation token that the gateway's
asynchronous confirmation will carry. This enables swapping between
FakeGateway (dev/test) and DarajaGateway (live) without touching the
initiation or reconciliation code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PushResult:
    """Result of an accepted payment push request."""

    correlation_token: str
    merchant_request_id: str | None = None
    response_description: str | None = None
    customer_message: str | None = None


class GatewayError(Exception):
    """Base class for failures talking to the payment gateway."""


class GatewayUnavailable(GatewayError):
    """The gateway could not be reached or answered with a server error."""


class AuthFailure(GatewayError):
    """The client-credentials token exchange was refused."""


class RejectedByGateway(GatewayError):
    """The gateway declined the push request."""

    def __init__(self, reason: str, response_code: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.response_code = response_code


class MobileMoneyGateway(ABC):
    """Abstract mobile-money gateway interface."""

    @abstractmethod
    def initiate(self, order_id: str, amount: float, phone: str) -> PushResult:
        """Push a payment prompt to ``phone`` for ``amount``.

        ``phone`` is already normalised to international form.

        Raises:
            AuthFailure, RejectedByGateway, GatewayUnavailable
        """
        ...
