"""Safaricom Daraja (M-Pesa Express / STK push) gateway adapter.

Two sequential round-trips per push:

    GET  /oauth/v1/generate?grant_type=client_credentials   (HTTP Basic auth)
    POST /mpesa/stkpush/v1/processrequest                   (Bearer token)

Access tokens are cached until shortly before ``expires_in`` runs out. The
push payload is signed with ``base64(shortcode + passkey + timestamp)`` where
the timestamp is the UTC time as ``YYYYMMDDHHMMSS``.
"""

import base64
import threading
import time
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import requests
import structlog

from checkout.config import CheckoutSettings
from checkout.gateway.port import (
    AuthFailure,
    GatewayUnavailable,
    MobileMoneyGateway,
    PushResult,
    RejectedByGateway,
)

logger = structlog.get_logger(__name__)

ACCEPTED_RESPONSE_CODE = "0"


def stk_timestamp(now: datetime | None = None) -> str:
    """Fixed-width numeric UTC stamp used to sign push requests."""
    return (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode("ascii")


def stk_amount(amount: float) -> int:
    """Whole currency units, halves rounded up."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class DarajaGateway(MobileMoneyGateway):
    """Live gateway adapter built from the process-wide settings."""

    _EP_AUTH = "/oauth/v1/generate"
    _EP_STK_PUSH = "/mpesa/stkpush/v1/processrequest"

    def __init__(self, settings: CheckoutSettings, session: requests.Session | None = None) -> None:
        if not settings.is_gateway_configured:
            raise ValueError("DarajaGateway requires consumer key, consumer secret, shortcode and passkey")

        self.settings = settings
        self.base_url = settings.gateway_base_url
        self.shortcode = str(settings.shortcode)
        self.timeout = settings.request_timeout_seconds

        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

        # Token cache
        self._token_lock = threading.Lock()
        self._access_token: str | None = None
        self._token_expiry: float = 0.0

    # -------------------------------------------------------------------
    # Token exchange
    # -------------------------------------------------------------------
    def _get_access_token(self) -> str:
        """Return a valid bearer token, exchanging client credentials if needed."""
        with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expiry:
                return self._access_token

            try:
                resp = self._session.get(
                    f"{self.base_url}{self._EP_AUTH}",
                    params={"grant_type": "client_credentials"},
                    auth=(self.settings.consumer_key, self.settings.consumer_secret),
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise GatewayUnavailable(f"M-Pesa token endpoint unreachable: {exc}") from exc

            if not resp.ok:
                logger.warning("mpesa_token_exchange_failed", status_code=resp.status_code)
                raise AuthFailure(f"Failed to get M-Pesa access token (HTTP {resp.status_code})")

            try:
                data = resp.json()
            except ValueError as exc:
                raise AuthFailure("M-Pesa token endpoint returned a non-JSON body") from exc

            token = data.get("access_token")
            if not token:
                raise AuthFailure("M-Pesa token endpoint returned no access_token")

            expires_in = int(data.get("expires_in", 3599))
            self._access_token = token
            self._token_expiry = time.monotonic() + max(expires_in - self.settings.token_expiry_margin_seconds, 0)
            return token

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._access_token = None
            self._token_expiry = 0.0

    # -------------------------------------------------------------------
    # Push request
    # -------------------------------------------------------------------
    def build_push_payload(self, order_id: str, amount: float, phone: str, timestamp: str) -> dict[str, Any]:
        callback_url = self.settings.callback_url or ""
        return {
            "BusinessShortCode": self.shortcode,
            "Password": stk_password(self.shortcode, str(self.settings.passkey), timestamp),
            "Timestamp": timestamp,
            "TransactionType": self.settings.transaction_type,
            "Amount": stk_amount(amount),
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": callback_url,
            "AccountReference": str(order_id)[:12],
            "TransactionDesc": f"Payment for order {str(order_id)[:8]}",
        }

    def initiate(self, order_id: str, amount: float, phone: str) -> PushResult:
        token = self._get_access_token()
        payload = self.build_push_payload(order_id, amount, phone, stk_timestamp())

        try:
            resp = self._session.post(
                f"{self.base_url}{self._EP_STK_PUSH}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayUnavailable(f"M-Pesa STK push failed: {exc}") from exc

        if resp.status_code == 401:
            self._invalidate_token()
            raise AuthFailure("M-Pesa rejected the access token")
        if resp.status_code >= 500:
            raise GatewayUnavailable(f"M-Pesa STK push failed (HTTP {resp.status_code})")

        try:
            data = resp.json()
        except ValueError as exc:
            raise GatewayUnavailable("M-Pesa STK push returned a non-JSON body") from exc

        response_code = str(data.get("ResponseCode", "")).strip()
        logger.info(
            "mpesa_stk_push_response",
            order_id=str(order_id),
            status_code=resp.status_code,
            response_code=response_code,
            checkout_request_id=data.get("CheckoutRequestID"),
        )

        if not resp.ok or response_code != ACCEPTED_RESPONSE_CODE:
            reason = data.get("ResponseDescription") or data.get("errorMessage") or "STK Push failed"
            raise RejectedByGateway(reason, response_code=response_code or data.get("errorCode"))

        checkout_request_id = data.get("CheckoutRequestID")
        if not checkout_request_id:
            raise GatewayUnavailable("M-Pesa accepted the push without a CheckoutRequestID")

        return PushResult(
            correlation_token=checkout_request_id,
            merchant_request_id=data.get("MerchantRequestID"),
            response_description=data.get("ResponseDescription"),
            customer_message=data.get("CustomerMessage"),
        )
