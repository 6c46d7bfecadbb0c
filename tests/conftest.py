"""Shared pytest fixtures for Statement Ingest tests.

Provides reusable fixtures for:
- Statement text as pdfplumber would extract it (Amex and CIBC layouts).
- sample_categories: A realistic set of user categories with budgets.
- make_ledger_txn / make_candidate: factories for ledger records and
  freshly parsed candidates.
- fake_extract: an extractor replacement keyed by file name, so pipeline
  tests never need a real PDF.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from statement_ingest.models import (
    CandidateTransaction,
    Category,
    ExtractedText,
    LedgerTransaction,
    RawDocument,
)

# ---------------------------------------------------------------------------
# Statement text
# ---------------------------------------------------------------------------

AMEX_TEXT = (
    "American Express Cobalt Card\n"
    "Statement Period 16 Dec. 2024 - 15 Jan. 2025\n"
    "Date   Description   Amount\n"
    "20 Dec. 2024   LOBLAWS #1029   $82.15\n"
    "15 Jan. 2025   STARBUCKS #4521   $5.67\n"
    "16 Jan. 2025   UBER TRIP   Merchant: UBER CANADA   Date Processed: 17 Jan. 2025   $14.20\n"
    "18 Jan. 2025   PAYMENT RECEIVED - THANK YOU   -$500.00\n"
    "This is not a billing Statement.\n"
)

CIBC_TEXT = (
    "CIBC Dividend Visa Card\n"
    "Statement period Dec 20, 2024 to Jan 19, 2025\n"
    "Trans date   Post date   Description                     Spend Categories   Amount($)\n"
    "Dec 21   Dec 23   TIM HORTONS #2345 TORONTO ON   Restaurants   3.45\n"
    "Jan 02   Jan 03   PAYMENT THANK YOU/PAIEMENT MERCI   -500.00\n"
    "Jan 05   Jan 06   SHELL GAS #112   Transportation   40.00\n"
    "Total for 4500 XXXX XXXX 1234   $43.45\n"
)

UNSUPPORTED_TEXT = "First National Bank of Nowhere\nAccount summary\n"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_categories() -> list[Category]:
    """User categories covering every built-in pattern group plus income."""
    return [
        Category(id="cat-groceries", name="Groceries", monthly_budget=Decimal("500")),
        Category(id="cat-dining", name="Dining Out", monthly_budget=Decimal("300")),
        Category(id="cat-transport", name="Transportation", monthly_budget=Decimal("200")),
        Category(id="cat-fun", name="Entertainment", monthly_budget=Decimal("150")),
        Category(id="cat-utilities", name="Utilities", monthly_budget=Decimal("150")),
        Category(id="cat-health", name="Healthcare", monthly_budget=Decimal("100")),
        Category(id="cat-income", name="Income"),
    ]


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_ledger_txn():
    """Factory for stored ledger transactions with sensible defaults."""

    def _make(
        id: str = "txn-1",
        date: str = "2025-01-15",
        merchant: str = "STARBUCKS #4521",
        amount: str = "-5.67",
        account_type: str = "amex",
        description: str | None = None,
        transaction_hash: str = "",
    ) -> LedgerTransaction:
        return LedgerTransaction(
            id=id,
            date=date,
            merchant=merchant,
            description=merchant if description is None else description,
            amount=Decimal(amount),
            account_type=account_type,
            budget_id="budget-2025-01",
            transaction_hash=transaction_hash,
        )

    return _make


@pytest.fixture
def make_candidate():
    """Factory for freshly parsed candidates with sensible defaults."""

    def _make(
        date: str = "2025-01-15",
        merchant: str = "STARBUCKS #4521",
        amount: str = "-5.67",
        account_type: str = "amex",
        description: str | None = None,
    ) -> CandidateTransaction:
        return CandidateTransaction(
            date=date,
            merchant=merchant,
            description=merchant if description is None else description,
            amount=Decimal(amount),
            account_type=account_type,
        )

    return _make


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@pytest.fixture
def statement_texts() -> dict[str, str]:
    """File name to extracted text for the sample statements."""
    return {
        "amex-jan.pdf": AMEX_TEXT,
        "cibc-jan.pdf": CIBC_TEXT,
        "unknown.pdf": UNSUPPORTED_TEXT,
    }


@pytest.fixture
def fake_extract(statement_texts):
    """Extractor replacement returning canned text for each document name."""

    def _extract(document: RawDocument) -> ExtractedText:
        return ExtractedText(pages=[statement_texts[document.name]])

    return _extract


@pytest.fixture
def documents() -> list[RawDocument]:
    """One Amex and one CIBC upload, in that order."""
    return [
        RawDocument(name="amex-jan.pdf", content=b"%PDF-1.4 amex"),
        RawDocument(name="cibc-jan.pdf", content=b"%PDF-1.4 cibc"),
    ]
