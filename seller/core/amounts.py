"""
Exact conversion between human decimal strings and integer token units.

No float ever touches an on-chain amount: parsing works on the string
digits, formatting on the integer.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Union

from .recovery.errors import AmountError

_AMOUNT_RE = re.compile(r"^(\d*)(?:\.(\d*))?$")


def parse_units(amount: str, decimals: int) -> int:
    """Convert ``amount`` (e.g. ``"1.5"``) into smallest units at ``decimals`` precision.

    Raises:
        AmountError: for empty, negative, non-decimal input or when the
            fraction carries more digits than ``decimals``.
    """

    if decimals < 0:
        raise AmountError(f"Invalid token precision: {decimals}")

    text = str(amount).strip() if amount is not None else ""
    if not text:
        raise AmountError("Amount is required")
    if text.startswith("-"):
        raise AmountError(f"Amount must be positive: {text}")
    if text.startswith("+"):
        text = text[1:]

    match = _AMOUNT_RE.match(text)
    if not match or text in {"", "."}:
        raise AmountError(f"Invalid amount: {amount}")

    whole = match.group(1).lstrip("0")
    fraction = (match.group(2) or "").rstrip("0")

    if len(fraction) > decimals:
        raise AmountError(
            f"Amount {text} has more than {decimals} decimal places",
        )

    digits = whole + fraction.ljust(decimals, "0")
    return int(digits) if digits else 0


def format_units(value: int, decimals: int) -> str:
    """Inverse of :func:`parse_units`; trailing zeros are stripped."""

    if value < 0:
        return "-" + format_units(-value, decimals)
    if decimals == 0:
        return str(value)
    digits = str(value).rjust(decimals + 1, "0")
    whole, fraction = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{whole}.{fraction}" if fraction else whole


def to_decimal(amount: Union[str, int, Decimal]) -> Decimal:
    """Parse a human amount into a finite Decimal or raise AmountError."""

    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as exc:
        raise AmountError(f"Invalid amount: {amount}") from exc
    if not value.is_finite():
        raise AmountError(f"Invalid amount: {amount}")
    return value


def format_amount(value: Union[str, int, Decimal], significant: int = 8) -> str:
    """Render a human amount with at most ``significant`` significant digits."""

    number = to_decimal(value)
    if number == 0:
        return "0"
    rounded = Decimal(format(number, f".{significant}g"))
    text = format(rounded, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def is_decimal_string(amount: str) -> bool:
    """True when ``amount`` is a plain decimal accepted by :func:`parse_units`."""

    text = str(amount).strip()
    if text.startswith("+"):
        text = text[1:]
    return text not in {"", "."} and _AMOUNT_RE.match(text) is not None


def fraction_digits(amount: str) -> int:
    text = str(amount).strip()
    if "." not in text:
        return 0
    return len(text.split(".", 1)[1].rstrip("0"))
