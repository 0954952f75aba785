"""Best-effort parsing of free-text money amounts ("$30-$200", "$127.43", "Over $100")."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from found_money.models.candidate import AmountRange

_NUMBER = re.compile(
    r"(\d[\d,]*(?:\.\d+)?)\s*(k|thousand|million|mm|m|billion|bn|b)?\b",
    re.IGNORECASE,
)
_RANGE_SEPARATOR = re.compile(r"\d[^\d]*?(?:-|–|—|\bto\b)[^\d]*?\d", re.IGNORECASE)

_MULTIPLIERS = {
    "k": Decimal("1000"),
    "thousand": Decimal("1000"),
    "m": Decimal("1000000"),
    "mm": Decimal("1000000"),
    "million": Decimal("1000000"),
    "b": Decimal("1000000000"),
    "bn": Decimal("1000000000"),
    "billion": Decimal("1000000000"),
}


def _to_decimal(digits: str, suffix: Optional[str]) -> Optional[Decimal]:
    try:
        value = Decimal(digits.replace(",", ""))
    except InvalidOperation:
        return None
    if suffix:
        value *= _MULTIPLIERS[suffix.lower()]
    return value


def parse_amount(text: Optional[str]) -> Optional[AmountRange]:
    """
    Parse an amount string into a range. Lossy by design:
    - "$30-$200" / "$30 to $200" -> 30..200
    - "$127.43" -> point 127.43
    - "Over $100" / "At least $100" -> point 100 (the stated floor)
    - "Up to $50" -> 0..50
    - "Unknown", "", None -> None
    """
    if not text or not text.strip():
        return None
    values = [
        v
        for v in (_to_decimal(m.group(1), m.group(2)) for m in _NUMBER.finditer(text))
        if v is not None
    ]
    if not values:
        return None

    lowered = text.lower()
    if len(values) >= 2 and _RANGE_SEPARATOR.search(text):
        low, high = min(values[:2]), max(values[:2])
        return AmountRange(low=low, high=high)
    if "up to" in lowered:
        return AmountRange(low=Decimal("0"), high=values[0])
    return AmountRange(low=values[0], high=values[0])


def amount_numeric(text: Optional[str]) -> Optional[Decimal]:
    """Single numeric value for storage: range upper bound or point value."""
    parsed = parse_amount(text)
    return parsed.upper if parsed else None


def amount_contribution(amount: Optional[AmountRange], floor: Decimal) -> Decimal:
    """Contribution to an estimated total: upper bound, point value, or the source floor."""
    if amount is None:
        return floor
    return max(amount.upper, Decimal("0"))
