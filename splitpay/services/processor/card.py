"""Card field validation run before any money moves.

All checks are pure functions.  ``CardData`` keeps the raw number and
CVC for the duration of one request and hides them from ``repr``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from splitpay.core.exceptions import ValidationError

CARD_PATTERNS = {
    "visa": re.compile(r"^4[0-9]{12}(?:[0-9]{3})?$"),
    "mastercard": re.compile(r"^5[1-5][0-9]{14}$"),
    "amex": re.compile(r"^3[47][0-9]{13}$"),
    "discover": re.compile(r"^6(?:011|5[0-9]{2})[0-9]{12}$"),
    "diners": re.compile(r"^3[0689][0-9]{11}$"),
    "jcb": re.compile(r"^(?:2131|1800|35\d{3})\d{11}$"),
}

_EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/([0-9]{2})$")
_SEPARATORS_RE = re.compile(r"[\s-]")


@dataclass(frozen=True)
class CardData:
    """Card fields as typed by the customer."""

    number: str = field(repr=False)
    expiry: str
    cvc: str = field(repr=False)

    @property
    def digits(self) -> str:
        return normalize_number(self.number)

    @property
    def expiry_mmyy(self) -> str:
        """Expiry in the processor's MMYY form."""
        return self.expiry.replace("/", "").strip()

    @property
    def last4(self) -> str:
        return self.digits[-4:]


def normalize_number(number: str) -> str:
    return _SEPARATORS_RE.sub("", number or "")


def luhn_valid(number: str) -> bool:
    """Luhn checksum over 13-19 digits."""
    digits = normalize_number(number)
    if not digits.isdigit() or not 13 <= len(digits) <= 19:
        return False

    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def card_type(number: str) -> str:
    digits = normalize_number(number)
    for name, pattern in CARD_PATTERNS.items():
        if pattern.match(digits):
            return name
    return "unknown"


def expiry_valid(expiry: str, today: Optional[date] = None) -> bool:
    """MM/YY format and not before the current month."""
    match = _EXPIRY_RE.match((expiry or "").strip())
    if not match:
        return False
    today = today or date.today()
    month = int(match.group(1))
    year = 2000 + int(match.group(2))
    if year < today.year:
        return False
    if year == today.year and month < today.month:
        return False
    return True


def cvc_valid(cvc: str, brand: str) -> bool:
    cvc = (cvc or "").strip()
    expected = 4 if brand == "amex" else 3
    return cvc.isdigit() and len(cvc) == expected


def validate_card(card: CardData, today: Optional[date] = None) -> str:
    """Check every card field and return the detected card type.

    Raises:
        ValidationError: with a customer-facing message for the first
            field that fails.
    """
    if not card.number or not card.expiry or not card.cvc:
        raise ValidationError("Please fill in all credit card fields.")
    if not luhn_valid(card.number):
        raise ValidationError("Invalid card number. Please check and try again.")
    if not expiry_valid(card.expiry, today):
        raise ValidationError(
            "Invalid or expired card expiry date. Please use MM/YY format."
        )
    brand = card_type(card.number)
    if not cvc_valid(card.cvc, brand):
        raise ValidationError("Invalid security code. Please check and try again.")
    return brand
