"""CIBC credit card statement parser.

CIBC statement text layout::

    Statement period Dec 20, 2024 to Jan 19, 2025
    ...
    Trans date   Post date   Description                  Spend Categories   Amount($)
    Dec 21       Dec 23      TIM HORTONS #2345 TORONTO ON Restaurants        3.45
    Jan 02       Jan 03      PAYMENT THANK YOU/PAIEMENT MERCI                 -500.00
    Total for 4500 XXXX XXXX 1234                                             $123.45

Rows carry no year: it comes from the statement period.  A row in a month
after the period's closing month belongs to the opening year, which handles
periods that straddle New Year.

Sign convention:
    CIBC prints purchases as positive amounts and credits as negative.
    The parser flips the sign so purchases become negative.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal

from statement_ingest.errors import FragmentParseError, InvalidDateError
from statement_ingest.models import AccountInfo, CandidateTransaction, ParseResult
from statement_ingest.parsers._common import (
    MONTH_PATTERN,
    clean_text,
    month_number,
    parse_amount,
    to_iso,
)

logger = logging.getLogger(__name__)

ACCOUNT_TYPE = "cibc"

SPEND_CATEGORIES = [
    "Retail and Grocery",
    "Restaurants",
    "Transportation",
    "Home and Office Improvement",
    "Hotel, Entertainment and Recreation",
    "Health and Education",
    "Personal and Household Expenses",
    "Professional and Financial Services",
    "Foreign Currency Transactions",
]

_HEADER_RE = re.compile(
    r"Trans(?:action)?\s+date\s+Post(?:ing)?\s+date\s+Description"
    r"(?:\s+Spend\s+Categor(?:y|ies))?(?:\s+Amount\s*\(\$\))?",
    re.IGNORECASE,
)
_FOOTER_RE = re.compile(r"Total\s+(?:for|payments|credits|charges)\b|Card\s+number", re.IGNORECASE)
_FRAGMENT_START_RE = re.compile(
    rf"(?:^|(?<=\s))(?={MONTH_PATTERN}\s+\d{{1,2}}\s+{MONTH_PATTERN}\s+\d{{1,2}}\b)",
    re.MULTILINE,
)
_ROW_RE = re.compile(
    rf"^({MONTH_PATTERN})\s+(\d{{1,2}})\s+({MONTH_PATTERN})\s+(\d{{1,2}})\b(.*)$",
    re.DOTALL,
)
_AMOUNT_RE = re.compile(r"(-?\$?[\d,]*\d\.\d{2}-?)$")
_PERIOD_RE = re.compile(
    rf"({MONTH_PATTERN})\s+(\d{{1,2}}),?\s+(\d{{4}})\s+(?:to|-)\s+"
    rf"({MONTH_PATTERN})\s+(\d{{1,2}}),?\s+(\d{{4}})",
    re.IGNORECASE,
)

_EXCLUDED_DESCRIPTIONS = ("PAYMENT THANK YOU", "PAIEMENT MERCI")


def parse(full_text: str) -> ParseResult:
    """Parse the text of a CIBC credit card statement into candidates.

    Args:
        full_text: Concatenated text of every page.

    Returns:
        A ParseResult with one candidate per well-formed row and one error
        per row that could not be decomposed.
    """
    transactions: list[CandidateTransaction] = []
    errors: list[str] = []
    warnings: list[str] = []

    period = _find_period(full_text)
    if period is None:
        warnings.append("CIBC statement period not found; transaction years cannot be resolved")

    fragments = _split_fragments(full_text)
    for fragment in fragments:
        try:
            txn = _parse_fragment(fragment, period)
        except FragmentParseError as exc:
            logger.debug("CIBC fragment rejected: %s", exc)
            errors.append(f"Failed to parse CIBC transaction: {exc}")
            continue
        if txn is not None:
            transactions.append(txn)

    if not fragments:
        warnings.append("No transactions found in cibc statement")

    return ParseResult(
        transactions=transactions,
        errors=errors,
        warnings=warnings,
        account_info=AccountInfo(
            account_type=ACCOUNT_TYPE,
            statement_period=extract_statement_period(full_text),
        ),
    )


def extract_statement_period(full_text: str) -> str:
    """Find a ``Dec 20, 2024 to Jan 19, 2025`` style period, or ``""``."""
    match = _PERIOD_RE.search(full_text)
    return clean_text(match.group(0)) if match else ""


def _find_period(full_text: str) -> tuple[int, int, int, int] | None:
    """Return ``(start_month, start_year, end_month, end_year)`` or ``None``."""
    match = _PERIOD_RE.search(full_text)
    if match is None:
        return None
    try:
        return (
            month_number(match.group(1)),
            int(match.group(3)),
            month_number(match.group(4)),
            int(match.group(6)),
        )
    except ValueError:
        return None


def _resolve_year(month: int, period: tuple[int, int, int, int]) -> int:
    start_month, start_year, _, end_year = period
    if start_year == end_year:
        return start_year
    return start_year if month >= start_month else end_year


def _split_fragments(full_text: str) -> list[str]:
    fragments: list[str] = []
    for region in _HEADER_RE.split(full_text)[1:]:
        region = _FOOTER_RE.split(region, maxsplit=1)[0]
        for piece in _FRAGMENT_START_RE.split(region):
            if piece.strip():
                fragments.append(piece.strip())
    return fragments


def _strip_spend_category(text: str) -> tuple[str, bool]:
    lowered = text.lower()
    for category in SPEND_CATEGORIES:
        if lowered.endswith(category.lower()):
            return text[: -len(category)].strip(), True
    return text, False


def _parse_fragment(
    fragment: str,
    period: tuple[int, int, int, int] | None,
) -> CandidateTransaction | None:
    """Decompose one row.  Returns ``None`` for excluded payment rows.

    Raises:
        FragmentParseError: If the row has no description or amount.
        InvalidDateError: If the transaction date cannot be resolved.
    """
    row = _ROW_RE.match(fragment)
    if row is None:
        raise FragmentParseError("missing transaction date", fragment)

    rest = clean_text(row.group(5))
    amount_match = _AMOUNT_RE.search(rest)
    if amount_match is None:
        raise FragmentParseError("missing amount", fragment)
    try:
        printed = parse_amount(amount_match.group(1))
    except ValueError:
        raise FragmentParseError("invalid amount", fragment) from None

    description = rest[: amount_match.start()].strip()
    if not description:
        raise FragmentParseError("missing description", fragment)
    if any(marker in description.upper() for marker in _EXCLUDED_DESCRIPTIONS):
        return None

    raw_date = f"{row.group(1)} {row.group(2)}"
    if period is None:
        raise InvalidDateError(raw_date, fragment)
    try:
        month = month_number(row.group(1))
        iso_date = to_iso(_resolve_year(month, period), month, int(row.group(2)))
    except ValueError:
        raise InvalidDateError(raw_date, fragment) from None

    merchant, has_category = _strip_spend_category(description)
    if not merchant:
        raise FragmentParseError("missing description", fragment)

    return CandidateTransaction(
        date=iso_date,
        merchant=merchant,
        description=description,
        amount=-printed if printed != 0 else Decimal("0"),
        account_type=ACCOUNT_TYPE,
        confidence=0.9 if has_category else 0.8,
    )
