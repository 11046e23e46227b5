"""Checkout bounded context — M-Pesa payment initiation and reconciliation.

Owns the Order records the payment core reads and updates, the STK push
initiation flow, the demo fallback used when no gateway credentials are
configured, and reconciliation of the gateway's asynchronous callbacks.
"""

import structlog
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
