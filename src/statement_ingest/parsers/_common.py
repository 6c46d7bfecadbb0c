"""Helpers shared by the statement parsers: amounts, dates and text cleanup."""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# Matches "Jan", "Jan.", "Sept", "June" and so on.
MONTH_PATTERN = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sept?|Oct|Nov|Dec)[a-z]*\.?"

_CURRENCY_RE = re.compile(r"(?:CAD|USD|C\$|US\$|[$€£])", re.IGNORECASE)


def clean_text(text: str) -> str:
    """Collapse all whitespace runs to single spaces and strip the ends."""
    return " ".join(text.split())


def parse_amount(raw: str) -> Decimal:
    """Parse a printed amount into a Decimal, keeping the printed sign.

    Tolerates currency symbols and codes, thousands separators, a leading
    or trailing minus, parentheses and a trailing ``CR`` credit marker.
    ``"$1,234.56"`` is ``1234.56``; ``"-$5.00"``, ``"5.00-"``,
    ``"(5.00)"`` and ``"5.00 CR"`` are all ``-5.00``.

    Raises:
        ValueError: If *raw* does not contain a number.
    """
    text = raw.strip()
    negative = False

    if text.upper().endswith("CR"):
        negative = True
        text = text[:-2].strip()
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    if text.endswith("-"):
        negative = True
        text = text[:-1].strip()

    text = _CURRENCY_RE.sub("", text).replace(",", "").replace(" ", "")
    if text.startswith("-"):
        negative = not negative
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    if not text:
        raise ValueError(f"no amount in {raw!r}")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"invalid amount {raw!r}") from None
    return -value if negative else value


def month_number(raw: str) -> int:
    """Map a month name or abbreviation (``"Jan."``, ``"Sept"``) to 1-12.

    Raises:
        ValueError: If *raw* is not a month name.
    """
    key = raw.strip().rstrip(".").lower()
    if key in MONTHS:
        return MONTHS[key]
    if key[:3] in MONTHS and len(key) > 3:
        return MONTHS[key[:3]]
    raise ValueError(f"unknown month {raw!r}")


def to_iso(year: int, month: int, day: int) -> str:
    """Build an ISO date string.  Raises ``ValueError`` for impossible dates."""
    return date(year, month, day).isoformat()
