"""Repository for the Order aggregate — the correlation store lives here."""

from checkout.domain import checkout
from checkout.order.order import Order


@checkout.repository(part_of=Order)
class OrderRepository:
    """Order store with lookups by gateway correlation token."""

    def find_by_correlation_token(self, correlation_token: str) -> Order | None:
        """Find the order a confirmation carrying ``correlation_token`` belongs to.

        The outstanding token is checked first; the retired token of a settled
        order is checked next so that replays are recognised as duplicates.
        """
        if not correlation_token:
            return None

        for field_name in ("correlation_token", "last_correlation_token"):
            matches = self._dao.query.filter(**{field_name: correlation_token}).all().items
            if matches:
                return matches[0]
        return None
