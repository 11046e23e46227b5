"""Checkout domain API package."""

from checkout.api.routes import order_router, payment_router

__all__ = ["payment_router", "order_router"]
