"""Heuristic duplicate detection against the existing ledger.

:func:`check` runs an ordered cascade and returns the first hit:

1. **Exact** -- same date, same merchant, amount within 0.01 (0.95).
2. **Transfer** -- a credit-card payment debit whose amount matches the sum
   of expenses from a different account within 30 days (0.9).
3. **Similar** -- same account type, merchant token overlap, same amount,
   close dates (0.85 high tier, 0.7 medium tier).
4. Otherwise not a duplicate (0.1).

Verdicts are advisory.  The exact content-hash check in the pipeline is the
only thing allowed to silently drop a record; callers apply their own
confidence threshold to these verdicts (:func:`filter_duplicates`).

Candidates are only ever compared with the existing ledger, never with each
other.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from statement_ingest.models import (
    CandidateTransaction,
    DeduplicationVerdict,
    LedgerTransaction,
    parse_iso_date,
)

EXACT_CONFIDENCE = 0.95
TRANSFER_CONFIDENCE = 0.9
SIMILAR_HIGH_CONFIDENCE = 0.85
SIMILAR_MEDIUM_CONFIDENCE = 0.7
NO_MATCH_CONFIDENCE = 0.1

DEFAULT_THRESHOLD = 0.8

AMOUNT_TOLERANCE = Decimal("0.01")
TRANSFER_SUM_TOLERANCE = Decimal("1.00")
TRANSFER_WINDOW_DAYS = 30

# Merchant substrings (lowercase) that mark a credit-card bill payment.
CREDIT_CARD_PAYMENT_PATTERNS = [
    "american express",
    "amex",
    "visa payment",
    "mastercard payment",
    "credit card payment",
    "cc payment",
    "payment thank you",
    "payment received",
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def check(
    candidate: CandidateTransaction,
    existing: Sequence[LedgerTransaction],
) -> DeduplicationVerdict:
    """Decide whether *candidate* is likely already in *existing*.

    Args:
        candidate: The freshly parsed transaction.
        existing: The ledger as it stood before this import.

    Returns:
        A verdict carrying the matched ledger id (if any), a confidence and
        a human-readable reason.  The candidate is not modified.
    """
    exact = _find_exact_match(candidate, existing)
    if exact is not None:
        return DeduplicationVerdict(
            is_likely_duplicate=True,
            duplicate_of=exact.id,
            confidence=EXACT_CONFIDENCE,
            reason="Exact match found",
        )

    transfer = _find_transfer_match(candidate, existing)
    if transfer is not None:
        return DeduplicationVerdict(
            is_likely_duplicate=True,
            duplicate_of=transfer.id,
            confidence=TRANSFER_CONFIDENCE,
            reason="Credit card payment duplicate",
        )

    similar = _find_similar_match(candidate, existing)
    if similar is not None:
        match, confidence, reason = similar
        return DeduplicationVerdict(
            is_likely_duplicate=True,
            duplicate_of=match.id,
            confidence=confidence,
            reason=reason,
        )

    return DeduplicationVerdict(
        is_likely_duplicate=False,
        confidence=NO_MATCH_CONFIDENCE,
        reason="No matching transaction found",
    )


def batch_check(
    candidates: Sequence[CandidateTransaction],
    existing: Sequence[LedgerTransaction],
) -> list[tuple[CandidateTransaction, DeduplicationVerdict]]:
    """Check every candidate against *existing*, preserving input order."""
    return [(candidate, check(candidate, existing)) for candidate in candidates]


def filter_duplicates(
    results: Sequence[tuple[CandidateTransaction, DeduplicationVerdict]],
    threshold: float = DEFAULT_THRESHOLD,
) -> list[CandidateTransaction]:
    """Keep candidates that are not duplicates at or above *threshold*.

    A candidate is dropped only when its verdict says it is a likely
    duplicate with ``confidence >= threshold``.
    """
    return [
        candidate
        for candidate, verdict in results
        if not verdict.is_likely_duplicate or verdict.confidence < threshold
    ]


def merchant_similarity(first: str, second: str) -> float:
    """Jaccard similarity of the lowercase whitespace-split tokens of two names."""
    tokens_a = set(first.lower().split())
    tokens_b = set(second.lower().split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def date_distance(first: str, second: str) -> int:
    """Absolute number of days between two ISO dates."""
    return abs((parse_iso_date(first) - parse_iso_date(second)).days)


# ---------------------------------------------------------------------------
# Cascade steps
# ---------------------------------------------------------------------------


def _amounts_match(first: Decimal, second: Decimal) -> bool:
    return abs(first - second) < AMOUNT_TOLERANCE


def _find_exact_match(
    candidate: CandidateTransaction,
    existing: Sequence[LedgerTransaction],
) -> LedgerTransaction | None:
    for txn in existing:
        if (
            txn.date == candidate.date
            and txn.merchant == candidate.merchant
            and _amounts_match(txn.amount, candidate.amount)
        ):
            return txn
    return None


def _is_credit_card_payment(candidate: CandidateTransaction) -> bool:
    merchant_lower = candidate.merchant.lower()
    return any(pattern in merchant_lower for pattern in CREDIT_CARD_PAYMENT_PATTERNS)


def _find_transfer_match(
    candidate: CandidateTransaction,
    existing: Sequence[LedgerTransaction],
) -> LedgerTransaction | None:
    """Match a card payment against the sum of another account's expenses.

    The payment is not compared with individual records: the card's
    purchases within the window are summed and compared with the payment.
    """
    if candidate.amount >= 0 or not _is_credit_card_payment(candidate):
        return None

    card_expenses = [
        txn
        for txn in existing
        if txn.account_type != candidate.account_type
        and txn.amount < 0
        and _within_days(txn.date, candidate.date, TRANSFER_WINDOW_DAYS)
    ]
    if not card_expenses:
        return None

    total = sum((abs(txn.amount) for txn in card_expenses), Decimal("0"))
    if abs(total - abs(candidate.amount)) < TRANSFER_SUM_TOLERANCE:
        return card_expenses[0]
    return None


def _find_similar_match(
    candidate: CandidateTransaction,
    existing: Sequence[LedgerTransaction],
) -> tuple[LedgerTransaction, float, str] | None:
    """Return the first same-account record meeting either similarity tier."""
    for txn in existing:
        if txn.account_type != candidate.account_type:
            continue
        if not _amounts_match(txn.amount, candidate.amount):
            continue

        similarity = merchant_similarity(txn.merchant, candidate.merchant)
        distance = _safe_distance(txn.date, candidate.date)
        if distance is None:
            continue

        if similarity > 0.8 and distance <= 1:
            return (
                txn,
                SIMILAR_HIGH_CONFIDENCE,
                f"Similar transaction: {similarity:.2f} merchant similarity, "
                f"same amount, {distance} day(s) apart",
            )
        if similarity > 0.6 and distance <= 3:
            return (
                txn,
                SIMILAR_MEDIUM_CONFIDENCE,
                f"Possible duplicate: {similarity:.2f} merchant similarity, "
                f"same amount, {distance} day(s) apart",
            )
    return None


def _safe_distance(first: str, second: str) -> int | None:
    try:
        return date_distance(first, second)
    except ValueError:
        return None


def _within_days(first: str, second: str, days: int) -> bool:
    distance = _safe_distance(first, second)
    return distance is not None and distance <= days
