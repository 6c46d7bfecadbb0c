"""Tests for statement_ingest.parsers -- registry, detection, Amex and CIBC parsing."""

from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import AMEX_TEXT, CIBC_TEXT, UNSUPPORTED_TEXT
from statement_ingest.models import ParseResult
from statement_ingest.parsers import (
    REGISTRY,
    ParserEntry,
    detect,
    get_parser,
    register,
)
from statement_ingest.parsers import amex, cibc
from statement_ingest.parsers._common import month_number, parse_amount

# ---------------------------------------------------------------------------
# Registry and detection
# ---------------------------------------------------------------------------


class TestParserRegistry:
    """Tests for the registry and get_parser()."""

    def test_registry_order(self):
        """Amex is registered before CIBC."""
        assert [entry.name for entry in REGISTRY] == ["amex", "cibc"]

    def test_get_parser_returns_callable(self):
        """get_parser returns the module's parse function."""
        assert get_parser("amex") is amex.parse
        assert get_parser("cibc") is cibc.parse

    def test_get_parser_unknown_raises_key_error(self):
        """get_parser raises KeyError for unknown parser names."""
        with pytest.raises(KeyError):
            get_parser("nonexistent_bank")

    def test_register_into_custom_registry(self):
        """A new format can be added without touching the default registry."""
        registry: list[ParserEntry] = []
        register("td", ["td canada trust"], lambda text: ParseResult(), registry=registry)

        assert detect("TD Canada Trust statement", registry) == "td"
        assert len(REGISTRY) == 2

    def test_register_duplicate_name_raises(self):
        """Names are unique within a registry."""
        registry: list[ParserEntry] = []
        register("td", ["td"], lambda text: ParseResult(), registry=registry)
        with pytest.raises(ValueError):
            register("td", ["toronto-dominion"], lambda text: ParseResult(), registry=registry)

    def test_register_without_fingerprints_raises(self):
        """Every format needs at least one fingerprint."""
        with pytest.raises(ValueError):
            register("td", [], lambda text: ParseResult(), registry=[])


class TestDetect:
    """Tests for fingerprint detection."""

    def test_detects_amex(self):
        """American Express statements are recognized."""
        assert detect(AMEX_TEXT) == "amex"

    def test_detects_cibc(self):
        """CIBC statements are recognized."""
        assert detect(CIBC_TEXT) == "cibc"

    def test_case_insensitive(self):
        """Fingerprints match regardless of case."""
        assert detect("canadian imperial bank of commerce") == "cibc"

    def test_first_registered_wins(self):
        """Text matching several formats goes to the earliest registered one."""
        text = "Paid with American Express through CIBC Online Banking"
        assert detect(text) == "amex"

    def test_unknown_returns_none(self):
        """Unrecognized text is not an error, just None."""
        assert detect(UNSUPPORTED_TEXT) is None
        assert detect("") is None


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


class TestParseAmount:
    """Tests for printed amount parsing."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("$5.67", "5.67"),
            ("$1,234.56", "1234.56"),
            ("-$5.00", "-5.00"),
            ("- $5.00", "-5.00"),
            ("5.00-", "-5.00"),
            ("(5.00)", "-5.00"),
            ("$5.00 CR", "-5.00"),
            ("+12.00", "12.00"),
        ],
    )
    def test_formats(self, raw, expected):
        """Common statement amount notations parse with their sign."""
        assert parse_amount(raw) == Decimal(expected)

    def test_garbage_raises(self):
        """Non-numeric text raises ValueError."""
        with pytest.raises(ValueError):
            parse_amount("$")

    def test_month_names(self):
        """Abbreviated, dotted and full month names map to numbers."""
        assert month_number("Jan.") == 1
        assert month_number("Sept") == 9
        assert month_number("December") == 12
        with pytest.raises(ValueError):
            month_number("Foo")


# ---------------------------------------------------------------------------
# Amex parser
# ---------------------------------------------------------------------------


class TestAmexParser:
    """Tests for the American Express statement parser."""

    def test_single_fragment(self):
        """The canonical one-line table yields one negative candidate."""
        result = amex.parse("Date   Description   Amount   15 Jan. 2025   STARBUCKS #4521   $5.67")

        assert result.errors == []
        assert len(result.transactions) == 1
        txn = result.transactions[0]
        assert txn.date == "2025-01-15"
        assert txn.merchant == "STARBUCKS #4521"
        assert txn.description == "STARBUCKS #4521"
        assert txn.amount == Decimal("-5.67")
        assert txn.account_type == "amex"

    def test_happy_path(self):
        """A full statement yields every purchase in order."""
        result = amex.parse(AMEX_TEXT)

        assert result.errors == []
        assert result.warnings == []
        assert [t.date for t in result.transactions] == ["2024-12-20", "2025-01-15", "2025-01-16"]
        assert [t.amount for t in result.transactions] == [
            Decimal("-82.15"),
            Decimal("-5.67"),
            Decimal("-14.20"),
        ]

    def test_merchant_column(self):
        """A Merchant: column supplies the merchant; the first column stays the description."""
        txn = amex.parse(AMEX_TEXT).transactions[2]

        assert txn.merchant == "UBER CANADA"
        assert txn.description == "UBER TRIP"
        assert txn.confidence == 0.9

    def test_merchant_defaults_to_description(self):
        """Without a Merchant: column the description doubles as the merchant, at lower confidence."""
        txn = amex.parse(AMEX_TEXT).transactions[1]

        assert txn.merchant == txn.description == "STARBUCKS #4521"
        assert txn.confidence == 0.7

    def test_payment_received_is_excluded(self):
        """Payments to the card are not transactions and not errors."""
        result = amex.parse(AMEX_TEXT)

        assert all("PAYMENT" not in t.description for t in result.transactions)
        assert result.errors == []

    def test_credit_becomes_positive(self):
        """A printed credit is money coming back, so it is positive."""
        text = "Date   Description   Amount\n03 Feb. 2025   BEST BUY REFUND   -$49.99\n"
        txn = amex.parse(text).transactions[0]

        assert txn.amount == Decimal("49.99")

    def test_partial_failure(self):
        """Malformed fragments are reported and the good ones still come back."""
        text = (
            "American Express\n"
            "Date   Description   Amount\n"
            "15 Jan. 2025   STARBUCKS #4521   $5.67\n"
            "16 Jan. 2025   MISSING AMOUNT\n"
            "17 Jan. 2025   UBER TRIP   $14.20\n"
            "31 Feb. 2025   BAD DATE CAFE   $3.00\n"
            "18 Jan. 2025   LOBLAWS #1029   $45.00\n"
        )
        result = amex.parse(text)

        assert [t.merchant for t in result.transactions] == [
            "STARBUCKS #4521",
            "UBER TRIP",
            "LOBLAWS #1029",
        ]
        assert len(result.errors) == 2
        assert "missing amount" in result.errors[0]
        assert "MISSING AMOUNT" in result.errors[0]
        assert "invalid date" in result.errors[1]
        assert all(e.startswith("Failed to parse AMEX transaction:") for e in result.errors)

    def test_table_repeated_on_each_page(self):
        """Every page's table is read, and the footer ends each one."""
        page = (
            "Date   Description   Amount\n"
            "{row}\n"
            "This is not a billing Statement.\n"
            "Page footer 12 Mar. 2025   NOT A ROW   $1.00\n"
        )
        text = (
            page.format(row="15 Jan. 2025   STARBUCKS #4521   $5.67")
            + page.format(row="16 Jan. 2025   TIM HORTONS #88   $2.10")
        )
        result = amex.parse(text)

        assert [t.merchant for t in result.transactions] == ["STARBUCKS #4521", "TIM HORTONS #88"]
        assert result.errors == []

    def test_no_table_warns(self):
        """A detected statement without a transaction table produces a warning."""
        result = amex.parse("American Express\nNothing to see here\n")

        assert result.transactions == []
        assert result.errors == []
        assert result.warnings == ["No transactions found in amex statement"]

    def test_statement_period(self):
        """The statement period is reported in the account info."""
        result = amex.parse(AMEX_TEXT)

        assert result.account_info is not None
        assert result.account_info.account_type == "amex"
        assert result.account_info.statement_period == "16 Dec. 2024 - 15 Jan. 2025"


# ---------------------------------------------------------------------------
# CIBC parser
# ---------------------------------------------------------------------------


class TestCibcParser:
    """Tests for the CIBC credit card statement parser."""

    def test_happy_path(self):
        """Rows parse with years resolved from the statement period."""
        result = cibc.parse(CIBC_TEXT)

        assert result.errors == []
        assert result.warnings == []
        assert len(result.transactions) == 2

        tim, shell = result.transactions
        assert tim.date == "2024-12-21"
        assert tim.merchant == "TIM HORTONS #2345 TORONTO ON"
        assert tim.description == "TIM HORTONS #2345 TORONTO ON Restaurants"
        assert tim.amount == Decimal("-3.45")
        assert tim.account_type == "cibc"
        assert shell.date == "2025-01-05"
        assert shell.merchant == "SHELL GAS #112"
        assert shell.amount == Decimal("-40.00")

    def test_spend_category_raises_confidence(self):
        """Rows with a recognized spend category are more certain."""
        text = (
            "CIBC\nStatement period Mar 1, 2025 to Mar 31, 2025\n"
            "Trans date   Post date   Description   Amount($)\n"
            "Mar 02   Mar 03   CORNER STORE   12.00\n"
            "Mar 04   Mar 05   SHOPPERS DRUG MART   Health and Education   8.00\n"
        )
        plain, tagged = cibc.parse(text).transactions

        assert plain.confidence == 0.8
        assert tagged.confidence == 0.9
        assert tagged.merchant == "SHOPPERS DRUG MART"

    def test_payment_is_excluded(self):
        """Bill payments are not transactions and not errors."""
        result = cibc.parse(CIBC_TEXT)

        assert all("PAYMENT" not in t.description for t in result.transactions)

    def test_credit_becomes_positive(self):
        """A printed negative amount is a credit."""
        text = (
            "CIBC\nStatement period Mar 1, 2025 to Mar 31, 2025\n"
            "Trans date   Post date   Description   Amount($)\n"
            "Mar 10   Mar 11   RETURN - WINNERS   -25.00\n"
        )
        assert cibc.parse(text).transactions[0].amount == Decimal("25.00")

    def test_missing_period(self):
        """Without a statement period no row can be dated."""
        text = (
            "CIBC\n"
            "Trans date   Post date   Description   Amount($)\n"
            "Mar 10   Mar 11   CORNER STORE   5.00\n"
        )
        result = cibc.parse(text)

        assert result.transactions == []
        assert len(result.warnings) == 1
        assert len(result.errors) == 1
        assert "invalid date" in result.errors[0]

    def test_row_without_amount(self):
        """A row with no amount is reported, the rest survive."""
        text = (
            "CIBC\nStatement period Mar 1, 2025 to Mar 31, 2025\n"
            "Trans date   Post date   Description   Amount($)\n"
            "Mar 10   Mar 11   NO AMOUNT HERE\n"
            "Mar 12   Mar 13   CORNER STORE   5.00\n"
        )
        result = cibc.parse(text)

        assert [t.merchant for t in result.transactions] == ["CORNER STORE"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to parse CIBC transaction: missing amount")

    def test_no_table_warns(self):
        """A detected statement without a transaction table produces a warning."""
        result = cibc.parse("CIBC Online Banking\nStatement period Mar 1, 2025 to Mar 31, 2025\n")

        assert result.transactions == []
        assert "No transactions found in cibc statement" in result.warnings

    def test_statement_period(self):
        """The statement period is reported in the account info."""
        info = cibc.parse(CIBC_TEXT).account_info

        assert info is not None
        assert info.statement_period == "Dec 20, 2024 to Jan 19, 2025"
