"""Categorization engine: rule table, classifier protocol, and learn workflow.

The default classifier scans a candidate's merchant and description for the
first matching entry of an ordered pattern table and maps the entry's label
onto one of the user's categories:

1. **User patterns** -- recorded with the learn command, consulted first.
2. **Built-in table** -- groceries, dining, transportation, entertainment,
   utilities and healthcare merchants.
3. **Income fallback** -- unmatched positive amounts go to a category named
   like "income" or "salary".

Any object with a ``classify(candidate, categories)`` method can replace the
rule table (see :class:`Classifier`); ``llm.LLMClassifier`` is one.  The
confidence thresholds in :mod:`statement_ingest.models` tell callers what
to do with a verdict; this module never applies them.

Depends on ``models.py`` only.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol

from statement_ingest.models import (
    CandidateTransaction,
    CategorizationVerdict,
    Category,
    MerchantPattern,
)

INCOME_CONFIDENCE = 0.7
NO_MATCH_CONFIDENCE = 0.1
USER_PATTERN_CONFIDENCE = 0.9

_INCOME_NAMES = ("income", "salary")

DEFAULT_PATTERNS: list[MerchantPattern] = [
    MerchantPattern(
        patterns=[
            "walmart",
            "superstore",
            "loblaws",
            "metro",
            "sobeys",
            "whole foods",
            "costco",
            "no frills",
        ],
        category_name="groceries",
        confidence=0.9,
    ),
    MerchantPattern(
        patterns=[
            "mcdonalds",
            "starbucks",
            "tim hortons",
            "subway",
            "pizza",
            "restaurant",
            "bistro",
            "cafe",
        ],
        category_name="dining out",
        confidence=0.85,
    ),
    MerchantPattern(
        patterns=["shell", "esso", "petro", "gas", "uber", "lyft", "taxi", "ttc", "go transit"],
        category_name="transportation",
        confidence=0.8,
    ),
    MerchantPattern(
        patterns=["netflix", "spotify", "amazon prime", "disney", "cinema", "movie", "theatre"],
        category_name="entertainment",
        confidence=0.85,
    ),
    MerchantPattern(
        patterns=["hydro", "rogers", "bell", "telus", "enbridge", "toronto hydro"],
        category_name="utilities",
        confidence=0.9,
    ),
    MerchantPattern(
        patterns=["pharmacy", "shoppers", "medical", "dental", "clinic", "hospital"],
        category_name="healthcare",
        confidence=0.8,
    ),
]


# ---------------------------------------------------------------------------
# Classifier protocol
# ---------------------------------------------------------------------------


class Classifier(Protocol):
    """Protocol every categorization strategy implements.

    The pipeline accepts any object conforming to this protocol.
    :class:`RuleClassifier` is the default; ``llm.LLMClassifier`` asks an
    LLM and falls back to the rules.
    """

    def classify(
        self,
        candidate: CandidateTransaction,
        categories: Sequence[Category],
    ) -> CategorizationVerdict:
        """Suggest a category for *candidate*.

        Must not raise and must not modify its arguments.
        """
        ...


# ---------------------------------------------------------------------------
# Rule classifier
# ---------------------------------------------------------------------------


def user_patterns_to_table(user_patterns: Mapping[str, str]) -> list[MerchantPattern]:
    """Turn ``{"merchant text": "Category name"}`` config entries into table rows."""
    return [
        MerchantPattern(
            patterns=[pattern.lower()],
            category_name=category_name.lower(),
            confidence=USER_PATTERN_CONFIDENCE,
            source="user",
        )
        for pattern, category_name in user_patterns.items()
        if pattern.strip() and category_name.strip()
    ]


def find_category(label: str, categories: Sequence[Category]) -> Category | None:
    """Return the first category whose name loosely matches *label*.

    A match is a case-insensitive substring in either direction, so
    ``"dining out"`` matches a category named ``"Dining"`` and
    ``"transportation"`` matches ``"Transportation & Transit"``.
    """
    label = label.lower()
    for category in categories:
        name = category.name.lower()
        if not name:
            continue
        if label in name or name in label:
            return category
    return None


class RuleClassifier:
    """Pattern-table classifier.  The default categorization strategy.

    Args:
        patterns: The ordered pattern table.  Defaults to
            :data:`DEFAULT_PATTERNS`.
        user_patterns: Extra ``{"merchant text": "Category name"}`` rules
            consulted before the table.
    """

    def __init__(
        self,
        patterns: Sequence[MerchantPattern] | None = None,
        user_patterns: Mapping[str, str] | None = None,
    ) -> None:
        table = list(DEFAULT_PATTERNS if patterns is None else patterns)
        self.patterns = user_patterns_to_table(user_patterns or {}) + table

    def classify(
        self,
        candidate: CandidateTransaction,
        categories: Sequence[Category],
    ) -> CategorizationVerdict:
        merchant_lower = candidate.merchant.lower()
        description_lower = candidate.description.lower()

        for group in self.patterns:
            for pattern in group.patterns:
                if pattern not in merchant_lower and pattern not in description_lower:
                    continue
                category = find_category(group.category_name, categories)
                if category is not None:
                    return CategorizationVerdict(
                        category_id=category.id,
                        confidence=group.confidence,
                        reasoning=f"Matched pattern: {pattern}",
                    )

        if candidate.amount > 0:
            income = next(
                (c for c in categories if any(n in c.name.lower() for n in _INCOME_NAMES)),
                None,
            )
            if income is not None:
                return CategorizationVerdict(
                    category_id=income.id,
                    confidence=INCOME_CONFIDENCE,
                    reasoning="Positive amount categorized as income",
                )

        return CategorizationVerdict(
            category_id=None,
            confidence=NO_MATCH_CONFIDENCE,
            reasoning="No matching category found",
        )


DEFAULT_CLASSIFIER = RuleClassifier()


# ---------------------------------------------------------------------------
# Categorize stage
# ---------------------------------------------------------------------------


def categorize(
    candidate: CandidateTransaction,
    categories: Sequence[Category],
    classifier: Classifier | None = None,
) -> CategorizationVerdict:
    """Suggest a category for one candidate.

    Args:
        candidate: The transaction to categorize.
        categories: The user's categories.
        classifier: Strategy to use.  Defaults to the built-in rule table.

    Returns:
        The classifier's verdict.
    """
    return (classifier or DEFAULT_CLASSIFIER).classify(candidate, categories)


def batch_categorize(
    candidates: Sequence[CandidateTransaction],
    categories: Sequence[Category],
    classifier: Classifier | None = None,
) -> list[tuple[CandidateTransaction, CategorizationVerdict]]:
    """Categorize every candidate, preserving input order.

    Classifiers that offer ``classify_batch`` (one request for the whole
    batch) are called through it.
    """
    strategy = classifier or DEFAULT_CLASSIFIER
    classify_batch = getattr(strategy, "classify_batch", None)
    if classify_batch is not None:
        verdicts = classify_batch(candidates, categories)
    else:
        verdicts = [strategy.classify(candidate, categories) for candidate in candidates]
    return list(zip(candidates, verdicts))


# ---------------------------------------------------------------------------
# Learn workflow
# ---------------------------------------------------------------------------


def learn(
    user_patterns: dict[str, str],
    merchant: str,
    category_name: str,
    categories: Sequence[Category],
) -> str:
    """Record a user correction as a merchant pattern.

    The merchant text is stored verbatim as the pattern key; matching is
    case-insensitive anyway.  *user_patterns* is updated in place.

    Args:
        user_patterns: Current ``{"merchant text": "Category name"}`` rules.
        merchant: Merchant text to match in future imports.
        category_name: Name of an existing category.
        categories: The user's categories, used to validate the name.

    Returns:
        ``"added"``, ``"updated"`` or ``"unchanged"``.

    Raises:
        ValueError: If *merchant* is blank or no category has that name.
    """
    merchant = merchant.strip()
    if not merchant:
        raise ValueError("merchant must not be blank")

    match = next(
        (c for c in categories if c.name.lower() == category_name.strip().lower()),
        None,
    )
    if match is None:
        raise ValueError(f"unknown category {category_name!r}")

    existing_key = next(
        (key for key in user_patterns if key.lower() == merchant.lower()),
        None,
    )
    if existing_key is None:
        user_patterns[merchant] = match.name
        return "added"
    if user_patterns[existing_key] == match.name:
        return "unchanged"
    user_patterns[existing_key] = match.name
    return "updated"
