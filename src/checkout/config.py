"""Checkout settings loaded once from the environment.

Gateway credentials are optional: when any of the consumer key, consumer
secret, shortcode or passkey is missing the checkout runs in demo mode and
payments are confirmed locally after ``demo_delay_seconds``.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"


class CheckoutSettings(BaseSettings):
    """M-Pesa gateway credentials and payment-core tuning knobs."""

    # Daraja credentials
    consumer_key: str | None = Field(default=None, description="Daraja app consumer key")
    consumer_secret: str | None = Field(default=None, description="Daraja app consumer secret")
    shortcode: str | None = Field(default=None, description="PayBill / till shortcode")
    passkey: str | None = Field(default=None, description="Lipa na M-Pesa Online passkey")
    callback_url: str | None = Field(default=None, description="Public URL of the callback endpoint")

    # Gateway endpoint
    environment: str = Field(default="sandbox", description="sandbox or production")
    base_url: str | None = Field(default=None, description="Override for the Daraja base URL")
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    token_expiry_margin_seconds: int = Field(default=60, ge=0)
    transaction_type: str = Field(default="CustomerPayBillOnline")
    country_code: str = Field(default="254", description="Dialling code used to normalise local numbers")

    # Demo fallback
    demo_delay_seconds: float = Field(default=3.0, ge=0)

    # Reconciliation lookup backoff
    reconcile_lookup_attempts: int = Field(default=5, ge=1)
    reconcile_backoff_multiplier: float = Field(default=0.2, ge=0)
    reconcile_backoff_max_seconds: float = Field(default=2.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="MPESA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Only the sandbox and production Daraja environments exist."""
        if v.lower() not in ("sandbox", "production"):
            raise ValueError("Invalid M-Pesa environment. Must be 'sandbox' or 'production'")
        return v.lower()

    @field_validator("consumer_key", "consumer_secret", "shortcode", "passkey", "callback_url")
    @classmethod
    def blank_as_missing(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def is_gateway_configured(self) -> bool:
        """True when every credential needed for an STK push is present."""
        return all((self.consumer_key, self.consumer_secret, self.shortcode, self.passkey))

    @property
    def gateway_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        if self.environment == "production":
            return PRODUCTION_BASE_URL
        return SANDBOX_BASE_URL


@lru_cache()
def get_settings() -> CheckoutSettings:
    """Return the process-wide settings, built on first use."""
    return CheckoutSettings()


def reset_settings() -> None:
    """Drop the cached settings (useful for testing)."""
    get_settings.cache_clear()
