"""American Express statement parser.

Amex statement text layout (one transaction per fragment)::

    Date   Description   Amount
    15 Jan. 2025   STARBUCKS #4521   $5.67
    16 Jan. 2025   UBER TRIP   Merchant: UBER CANADA   Date Processed: 17 Jan. 2025   $14.20

Columns are separated by runs of three or more spaces (or line breaks).
The table repeats its header on every page and ends at the
"This is not a billing Statement." footer.

Sign convention:
    Amex prints charges as positive amounts and credits with a minus sign
    or ``CR``.  The parser flips the sign so charges become negative.

``PAYMENT RECEIVED`` lines and foreign-exchange commission footnotes are
not transactions and are dropped without an error.
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

ACCOUNT_TYPE = "amex"

_DATE_PATTERN = rf"\d{{1,2}}\s+{MONTH_PATTERN}\s+\d{{4}}"

_HEADER_RE = re.compile(r"Date\s{2,}Description\s{2,}Amount", re.IGNORECASE)
_FOOTER_RE = re.compile(r"This is not a billing Statement\.?", re.IGNORECASE)
_PROCESSED_RE = re.compile(rf"Date Processed:\s*{_DATE_PATTERN}", re.IGNORECASE)
_FRAGMENT_START_RE = re.compile(rf"(?:^|(?<=\s))(?={_DATE_PATTERN}(?:\s|$))", re.MULTILINE)
_COLUMN_SPLIT_RE = re.compile(r"\s{3,}|\n")
_DATE_RE = re.compile(rf"^(\d{{1,2}})\s+({MONTH_PATTERN})\s+(\d{{4}})\b")
_AMOUNT_RE = re.compile(r"-?\s?\$\s?[\d,]+\.\d{2}(?:\s*CR)?", re.IGNORECASE)
_PERIOD_RE = re.compile(rf"({_DATE_PATTERN})\s*-\s*({_DATE_PATTERN})")

_MERCHANT_LABEL = "merchant:"
_FOREIGN_LABEL = "foreign spend amount:"
_EXCLUDED_DESCRIPTIONS = ("PAYMENT RECEIVED",)


def parse(full_text: str) -> ParseResult:
    """Parse the text of an Amex statement into candidate transactions.

    Args:
        full_text: Concatenated text of every page.

    Returns:
        A ParseResult with one candidate per well-formed fragment and one
        error per fragment that could not be decomposed.
    """
    transactions: list[CandidateTransaction] = []
    errors: list[str] = []
    warnings: list[str] = []

    fragments = _split_fragments(full_text)
    excluded = 0

    for fragment in fragments:
        try:
            txn = _parse_fragment(fragment)
        except FragmentParseError as exc:
            logger.debug("Amex fragment rejected: %s", exc)
            errors.append(f"Failed to parse AMEX transaction: {exc}")
            continue
        if txn is None:
            excluded += 1
            continue
        transactions.append(txn)

    if not fragments:
        warnings.append("No transactions found in amex statement")
    if excluded:
        logger.debug("Excluded %d non-transaction Amex line(s)", excluded)

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
    """Find a ``28 Aug. 2025 - 22 Sep. 2025`` style period, or ``""``."""
    match = _PERIOD_RE.search(full_text)
    if match is None:
        return ""
    return f"{clean_text(match.group(1))} - {clean_text(match.group(2))}"


def _split_fragments(full_text: str) -> list[str]:
    """Locate every transaction table and split it into per-row fragments."""
    fragments: list[str] = []
    # Anything before the first header is statement boilerplate.
    for region in _HEADER_RE.split(full_text)[1:]:
        region = _FOOTER_RE.split(region, maxsplit=1)[0]
        region = _PROCESSED_RE.sub("", region)
        for piece in _FRAGMENT_START_RE.split(region):
            if piece.strip():
                fragments.append(piece.strip())
    return fragments


def _columns(fragment: str) -> list[str]:
    columns = [clean_text(col) for col in _COLUMN_SPLIT_RE.split(fragment)]
    return [col for col in columns if col and not _is_footnote(col)]


def _is_footnote(column: str) -> bool:
    lowered = column.lower()
    if "commission" in lowered and "exchange rate" in lowered:
        return True
    return lowered.startswith(_FOREIGN_LABEL)


def _parse_fragment(fragment: str) -> CandidateTransaction | None:
    """Decompose one fragment.  Returns ``None`` for excluded lines.

    Raises:
        FragmentParseError: If the fragment has no description or amount.
        InvalidDateError: If the leading date is not a calendar date.
    """
    columns = _columns(fragment)
    if not columns:
        raise FragmentParseError("empty fragment", fragment)

    date_match = _DATE_RE.match(columns[0])
    if date_match is None:
        raise FragmentParseError("missing date", fragment)
    try:
        iso_date = to_iso(
            int(date_match.group(3)),
            month_number(date_match.group(2)),
            int(date_match.group(1)),
        )
    except ValueError:
        raise InvalidDateError(date_match.group(0), fragment) from None

    body = columns[1:]
    rest = columns[0][date_match.end():].strip()
    if rest:
        body.insert(0, rest)
    if not body:
        raise FragmentParseError("missing description", fragment)

    # The amount is the last dollar figure in the fragment.
    amount_col_index = None
    amount_match = None
    for index in range(len(body) - 1, -1, -1):
        matches = list(_AMOUNT_RE.finditer(body[index]))
        if matches:
            amount_col_index = index
            amount_match = matches[-1]
            break
    if amount_match is None:
        raise FragmentParseError("missing amount", fragment)

    try:
        printed = parse_amount(amount_match.group(0))
    except ValueError:
        raise FragmentParseError("invalid amount", fragment) from None

    confidence = 0.9
    amount_column = body[amount_col_index]
    leftover = clean_text(amount_column[: amount_match.start()])
    if leftover:
        # Amount was glued to text in the same column.
        body[amount_col_index] = leftover
        confidence = 0.7
    else:
        del body[amount_col_index]

    merchant = ""
    description_parts: list[str] = []
    for column in body:
        if column.lower().startswith(_MERCHANT_LABEL):
            merchant = clean_text(column[len(_MERCHANT_LABEL):])
        else:
            description_parts.append(column)

    if not description_parts:
        raise FragmentParseError("missing description", fragment)
    description = description_parts[0]

    if any(marker in description.upper() for marker in _EXCLUDED_DESCRIPTIONS):
        return None

    if not merchant:
        merchant = description
        confidence = 0.7

    return CandidateTransaction(
        date=iso_date,
        merchant=merchant,
        description=description,
        amount=-printed if printed != 0 else Decimal("0"),
        account_type=ACCOUNT_TYPE,
        confidence=confidence,
    )
