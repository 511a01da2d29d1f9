"""
units.py - Fixed-point conversion between decimal strings and base units

Token amounts travel in two shapes:
- Decimal strings typed by a holder ("10000.5")
- Integer base units stored by the ledger (10000500000000000000000 at 18 decimals)

parse_units() and format_units() convert between them exactly. Both work on
Python ints only, so quantities far beyond float precision survive intact.

Truncation policy:
    Fraction digits beyond `decimals` are dropped, never rounded. Parsing is
    deterministic and can never produce more base units than were typed.
"""

from __future__ import annotations

from .core import InvalidAmount

_DIGITS = frozenset("0123456789")


def _is_digits(text: str) -> bool:
    # str.isdigit() accepts superscripts and other scripts' digits
    return bool(text) and all(ch in _DIGITS for ch in text)


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise TypeError(f"decimals must be int, got {type(decimals).__name__}")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")


def parse_units(text: str, decimals: int, require_positive: bool = False) -> int:
    """
    Parse a decimal string into integer base units.

    The fractional part is right-padded with zeros or truncated to exactly
    `decimals` digits. An empty whole part reads as zero (".5" == "0.5").

    Args:
        text: Amount as typed, e.g. "10000.5"
        decimals: Number of fractional digits of the token
        require_positive: Reject amounts that parse to zero

    Returns:
        whole * 10**decimals + fraction

    Raises:
        InvalidAmount: If the text is empty, contains anything but digits and
            one '.', or is zero while require_positive is set
        ValueError: If decimals is negative

    Example:
        parse_units("10000.5", 18) == 10000500000000000000000
        parse_units("1.23456789", 4) == parse_units("1.2345", 4)
    """
    _check_decimals(decimals)
    if not isinstance(text, str):
        raise InvalidAmount(f"amount must be a string, got {type(text).__name__}")
    stripped = text.strip()
    if not stripped:
        raise InvalidAmount("amount cannot be empty")

    whole, _, fraction = stripped.partition(".")
    if not whole and not fraction:
        raise InvalidAmount(f"not a decimal amount: {text!r}")
    if not whole:
        whole = "0"

    fraction = (fraction + "0" * decimals)[:decimals]
    if not _is_digits(whole):
        raise InvalidAmount(f"not a decimal amount: {text!r}")
    if fraction and not _is_digits(fraction):
        raise InvalidAmount(f"not a decimal amount: {text!r}")

    value = int(whole) * 10**decimals + (int(fraction) if fraction else 0)
    if require_positive and value <= 0:
        raise InvalidAmount(f"amount must be positive, got {text!r}")
    return value


def format_units(value: int, decimals: int) -> str:
    """
    Render integer base units as the shortest exact decimal string.

    Trailing fractional zeros are stripped; the separator is omitted when
    the fraction is zero. Negative values keep their sign.

    Example:
        format_units(10000500000000000000000, 18) == "10000.5"
        format_units(5 * 10**18, 18) == "5"
    """
    _check_decimals(decimals)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"value must be int, got {type(value).__name__}")

    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10**decimals)
    if decimals == 0 or fraction == 0:
        return f"{sign}{whole}"
    digits = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{digits}"
