"""Mobile number normalisation for STK push requests.

The gateway expects the payer's MSISDN as an international numeric string
(``2547XXXXXXXX``). Customers type numbers in local form (``0722 000 000``),
with a leading ``+`` or with separators; all are reduced to the same form.
"""

import re

from protean.exceptions import ValidationError

# Subscriber number length after the country code
SUBSCRIBER_DIGITS = 9


def normalize_msisdn(raw: str | None, country_code: str = "254") -> str:
    """Return ``raw`` as ``<country_code><subscriber>`` digits.

    A leading trunk prefix ``0`` is replaced with the country code, a leading
    ``+`` is dropped, and spaces, hyphens and parentheses are ignored.

    Raises:
        ValidationError: if the result is not a valid mobile number.
    """
    number = (raw or "").strip()

    # Only allow: digits, spaces, hyphens, parentheses, leading +
    if not re.match(r"^\+?[\d\s\-()]+$", number):
        raise ValidationError({"phone": [f"Invalid phone number: {raw!r}"]})

    digits = re.sub(r"\D", "", number)

    if digits.startswith("0"):
        digits = country_code + digits[1:]
    elif len(digits) == SUBSCRIBER_DIGITS:
        digits = country_code + digits

    if not digits.startswith(country_code) or len(digits) != len(country_code) + SUBSCRIBER_DIGITS:
        raise ValidationError({"phone": [f"Invalid phone number: {raw!r}"]})

    return digits
