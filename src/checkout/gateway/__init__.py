"""Mobile-money gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- DarajaGateway when M-Pesa credentials are configured
- None when they are absent, which puts initiation into demo mode
- FakeGateway installed explicitly for development and testing
"""

from checkout.config import CheckoutSettings, get_settings
from checkout.gateway.port import MobileMoneyGateway

_current_gateway: MobileMoneyGateway | None = None


def get_gateway(settings: CheckoutSettings | None = None) -> MobileMoneyGateway | None:
    """Return the active gateway, or None when running in demo mode."""
    global _current_gateway
    if _current_gateway is None:
        settings = settings or get_settings()
        if not settings.is_gateway_configured:
            return None

        from checkout.gateway.daraja_adapter import DarajaGateway

        _current_gateway = DarajaGateway(settings)
    return _current_gateway


def set_gateway(gateway: MobileMoneyGateway) -> None:
    """Override the active gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the configuration-driven default."""
    global _current_gateway
    _current_gateway = None
