"""Core data models for Statement Ingest.

This module defines all dataclasses and utility functions used throughout the
pipeline. It has zero internal imports -- everything depends on it, but it
depends on nothing within the package.

Dates on every record are ISO ``YYYY-MM-DD`` strings and amounts are
:class:`~decimal.Decimal`.  Both are part of the on-disk contract for ledger
transactions: the content hash is computed over their string forms.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

# Published confidence thresholds for category suggestions.  The categorizer
# never enforces them; callers decide what to do with a verdict.
CONFIDENCE_HIGH = 0.8
CONFIDENCE_MEDIUM = 0.6
CONFIDENCE_LOW = 0.3


def format_amount(amount: Decimal) -> str:
    """Render *amount* the way a JavaScript number prints.

    No trailing zeros, no exponent, and ``0`` for both signed zeros:
    ``Decimal("-5.670")`` becomes ``"-5.67"`` and ``Decimal("100.00")``
    becomes ``"100"``.
    """
    if amount == 0:
        return "0"
    return format(amount.normalize(), "f")


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def string_hash(text: str) -> str:
    """Return the signed 32-bit rolling hash of *text* as a decimal string.

    ``h = h * 31 + code`` over the first UTF-16 code unit of every code
    point, wrapped to a signed 32-bit integer after each step.
    """
    h = 0
    for char in text:
        code = ord(char)
        if code > 0xFFFF:
            # High surrogate of the UTF-16 pair.
            code = 0xD800 + ((code - 0x10000) >> 10)
        h = _to_int32((h << 5) - h + code)
    return str(h)


def transaction_hash(txn_date: str, merchant: str, amount: Decimal, description: str) -> str:
    """Generate the content hash used as the idempotency key for a transaction.

    The hash input is the dash-joined concatenation of the ISO date, the
    merchant, the amount (see :func:`format_amount`) and the description, in
    that order.  Previously stored ledger records were hashed the same way,
    so this must stay bit-exact.

    Args:
        txn_date: ISO ``YYYY-MM-DD`` transaction date.
        merchant: Merchant display name, as stored.
        amount: Signed transaction amount.
        description: Original description, as stored.

    Returns:
        A decimal integer string, possibly negative.
    """
    raw = f"{txn_date}-{merchant}-{format_amount(amount)}-{description}"
    return string_hash(raw)


def parse_iso_date(value: str) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string.  Raises ``ValueError`` if invalid."""
    return datetime.strptime(value, "%Y-%m-%d").date()


@dataclass
class RawDocument:
    """One uploaded statement file.

    Attributes:
        name: File name, used in error messages and summaries.
        content: The PDF bytes.
    """

    name: str
    content: bytes


@dataclass
class ExtractedText:
    """Text extracted from a PDF, one string per page that was read.

    Attributes:
        pages: Text of each page that could be read, in page order.
        page_errors: One message per page (or document) that failed.
            Successful pages are not recorded here.
    """

    pages: list[str] = field(default_factory=list)
    page_errors: list[str] = field(default_factory=list)

    @property
    def full_text(self) -> str:
        """All pages concatenated, each followed by a newline."""
        return "".join(page + "\n" for page in self.pages)


@dataclass
class CandidateTransaction:
    """A just-parsed transaction that has not been checked or stored yet.

    Attributes:
        date: ISO ``YYYY-MM-DD`` transaction date.
        merchant: Cleaned merchant display name.
        description: Original (lightly cleaned) statement text.
        amount: Signed decimal amount. Negative means money leaving the
            account, positive means a credit, refund or payment received.
        account_type: Institution tag, e.g. ``"amex"`` or ``"cibc"``.
        confidence: Parser certainty about this decomposition, 0 to 1.
    """

    date: str
    merchant: str
    description: str
    amount: Decimal
    account_type: str
    confidence: float = 0.9


@dataclass
class DeduplicationVerdict:
    """Advisory duplicate verdict paired with one candidate transaction."""

    is_likely_duplicate: bool
    confidence: float
    reason: str = ""
    duplicate_of: str | None = None


@dataclass
class CategorizationVerdict:
    """Category suggestion paired with one candidate transaction."""

    confidence: float
    category_id: str | None = None
    reasoning: str = ""


@dataclass
class MerchantPattern:
    """A group of merchant substrings that point at one kind of category.

    Patterns are matched as lowercase substrings of the merchant or the
    description.  ``category_name`` is a loose label: it matches any user
    category whose name contains it or is contained in it.

    Attributes:
        patterns: Lowercase substrings, tried in order.
        category_name: Label of the category group, e.g. ``"groceries"``.
        confidence: Confidence reported when one of the patterns matches.
        source: ``"builtin"`` for the shipped table, ``"user"`` for patterns
            recorded with the learn command.
    """

    patterns: list[str]
    category_name: str
    confidence: float
    source: str = "builtin"


@dataclass
class Category:
    """A user spending category.

    Attributes:
        id: Category identifier.
        name: Display name, e.g. ``"Groceries"``.
        monthly_budget: Default monthly allocation, or ``None`` if unset.
        color: Optional display color.
    """

    id: str
    name: str
    monthly_budget: Decimal | None = None
    color: str | None = None


@dataclass
class BudgetPeriod:
    """The monthly budget record transactions are billed against.

    Attributes:
        id: Budget identifier.
        month: ``YYYY-MM``.  At most one period exists per month.
        allocations: Category id to budgeted amount.
        available_to_budget: Unallocated money for the month.
    """

    id: str
    month: str
    allocations: dict[str, Decimal] = field(default_factory=dict)
    available_to_budget: Decimal = Decimal("0")


@dataclass
class LedgerTransaction:
    """A stored (or about-to-be-stored) transaction.

    Carries the candidate fields plus the identifiers the storage layer
    needs.  ``transaction_hash`` is the exact idempotency key; see
    :func:`transaction_hash`.
    """

    id: str
    date: str
    merchant: str
    description: str
    amount: Decimal
    account_type: str
    budget_id: str
    transaction_hash: str
    confidence: float = 0.0
    category_id: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class AccountInfo:
    """Statement-level details a parser could recover."""

    account_type: str
    statement_period: str = ""
    last_four: str = ""


@dataclass
class ParseResult:
    """Return type for every statement parser.

    Each parser processes what it can and reports what it could not.

    Attributes:
        transactions: Candidates that decomposed cleanly.
        errors: One entry per fragment that could not be decomposed.
        warnings: Non-fatal observations, e.g. an empty transaction table.
        account_info: Statement-level details, when recoverable.
    """

    transactions: list[CandidateTransaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    account_info: AccountInfo | None = None


@dataclass
class ReviewItem:
    """One candidate with both advisory verdicts, for display and override."""

    transaction: CandidateTransaction
    deduplication: DeduplicationVerdict
    categorization: CategorizationVerdict
    transaction_hash: str = ""
    source_file: str = ""


@dataclass
class FileSummary:
    """Human-facing per-file counts.  Display only."""

    file_name: str
    parser: str | None = None
    account_info: AccountInfo | None = None
    total_parsed: int = 0
    duplicates_found: int = 0
    new_transactions: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class IngestResult:
    """Final result of an ingestion run across a batch of files.

    Attributes:
        accepted: Fully stamped records to persist verbatim.
        rejected_as_duplicate: Records whose content hash already exists in
            the ledger.
        errors: Every page, fragment and file error, prefixed with the file
            name.
        warnings: Non-fatal conditions worth showing to the user.
        reviews: Every surviving candidate with its advisory verdicts.
        summaries: One summary per input file, in input order.
        created_budget_periods: Budget periods synthesized during this run.
    """

    accepted: list[LedgerTransaction] = field(default_factory=list)
    rejected_as_duplicate: list[LedgerTransaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    reviews: list[ReviewItem] = field(default_factory=list)
    summaries: list[FileSummary] = field(default_factory=list)
    created_budget_periods: list[BudgetPeriod] = field(default_factory=list)


@dataclass
class LLMConfig:
    """LLM classifier settings from the ``[llm]`` config section."""

    provider: str = "none"
    model: str = "claude-sonnet-4-20250514"
    api_key_env: str = "ANTHROPIC_API_KEY"


@dataclass
class AppConfig:
    """Top-level application configuration loaded from config.toml.

    Attributes:
        ledger_path: Path of the JSON ledger file, relative to the project
            root. Default: "ledger.json".
        dedup_confidence_threshold: Verdicts at or above this confidence
            count as duplicates in the summary. Default: 0.8.
        auto_assign_threshold: Minimum categorization confidence for a
            category to be stamped on accepted records. Default: 0.8.
        user_patterns: Merchant pattern to category name, consulted before
            the built-in pattern table.
        max_workers: Files processed concurrently in the per-file phase.
        timeout_seconds: Per-file timeout for the per-file phase, or 0 for
            none.  Only applies when ``max_workers`` is above 1.
        llm: LLM classifier settings.
    """

    ledger_path: str = "ledger.json"
    dedup_confidence_threshold: float = CONFIDENCE_HIGH
    auto_assign_threshold: float = CONFIDENCE_HIGH
    user_patterns: dict[str, str] = field(default_factory=dict)
    max_workers: int = 1
    timeout_seconds: float = 0
    llm: LLMConfig = field(default_factory=LLMConfig)
