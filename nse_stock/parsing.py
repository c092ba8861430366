"""Text-to-number parsing for scraped quote fields.

Every parser here is total: garbage in gives ``0.0`` out, never an
exception. A quote page that renders "--" for a missing change value must
produce a usable record, not abort the check.

Negative values are recognised in both notations the NSE pages use:
a leading minus (``-12.30``) and accounting parentheses (``(12.30)``).
"""

import re
from urllib.parse import parse_qs, urlparse

_CURRENCY_NOISE = re.compile(r"[₹$€£¥,\s+]")
_PERCENT_NOISE = re.compile(r"[%,\s+]")
_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def _parse_signed(text: str | None, noise: re.Pattern[str]) -> float:
    if not text:
        return 0.0

    cleaned = noise.sub("", text)
    negative = "-" in cleaned or "(" in cleaned

    match = _NUMBER.search(cleaned)
    if match is None:
        return 0.0

    try:
        value = float(match.group())
    except ValueError:
        return 0.0

    return -value if negative else value


def parse_price(text: str | None) -> float:
    """Parse a displayed price or price change into a float.

    Args:
        text: Raw element text, e.g. ``"₹1,234.56"`` or ``"(45.50)"``.

    Returns:
        The signed value, or 0.0 when no number can be read.

    Example:
        >>> parse_price("₹1,234.56")
        1234.56
        >>> parse_price("(45.50)")
        -45.5
    """
    return _parse_signed(text, _CURRENCY_NOISE)


def parse_percentage(text: str | None) -> float:
    """Parse a displayed percentage such as ``"-1.25%"`` or ``"(0.40%)"``."""
    return _parse_signed(text, _PERCENT_NOISE)


def first_token(text: str | None) -> str:
    """Return the first whitespace-delimited token of ``text`` or ``""``."""
    if not text:
        return ""
    parts = text.split()
    return parts[0] if parts else ""


def symbol_from_url(url: str | None) -> str:
    """Read the ``symbol`` query parameter from a quote page address.

    Args:
        url: Current page URL, e.g. ``".../get-quotes/equity?symbol=INFY"``.

    Returns:
        The upper-cased symbol, or ``""`` if the parameter is absent.
    """
    if not url:
        return ""
    try:
        query = urlparse(url).query
    except ValueError:
        return ""
    values = parse_qs(query).get("symbol")
    if not values:
        return ""
    return values[0].strip().upper()
