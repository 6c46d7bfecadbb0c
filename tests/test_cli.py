"""Tests for the Click CLI layer.

Uses Click's CliRunner to invoke commands without spawning subprocesses.
pdfplumber is mocked so the real pipeline runs on canned statement text.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from conftest import AMEX_TEXT, UNSUPPORTED_TEXT
from statement_ingest import __version__
from statement_ingest.cli import cli
from statement_ingest.config import load_config

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path, runner: CliRunner, monkeypatch) -> Path:
    """An initialized project directory that is also the working directory."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(cli, ["init"])
    assert result.exit_code == 0, result.output
    return tmp_path


@pytest.fixture
def statement_pdf(project: Path) -> Path:
    """A placeholder PDF file; its contents come from the pdfplumber mock."""
    path = project / "amex-jan.pdf"
    path.write_bytes(b"%PDF-1.4 placeholder")
    return path


def _pdfplumber_returning(text: str) -> MagicMock:
    page = MagicMock()
    page.extract_text.return_value = text
    opener = MagicMock()
    opener.return_value.__enter__.return_value.pages = [page]
    return opener


def _ledger(project: Path) -> dict:
    return json.loads((project / "ledger.json").read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Help and version
# ---------------------------------------------------------------------------


class TestHelp:
    """Tests for --help and --version."""

    def test_group_help(self, runner):
        """The group lists every command."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("init", "ingest", "detect", "learn"):
            assert command in result.output

    def test_version(self, runner):
        """--version prints the package version."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


class TestInit:
    """Tests for the init command."""

    def test_creates_files(self, runner, tmp_path):
        """init writes config.toml and a seeded ledger into --dir."""
        target = tmp_path / "budget"
        result = runner.invoke(cli, ["init", "--dir", str(target)])

        assert result.exit_code == 0
        assert "Initialized" in result.output
        assert (target / "config.toml").is_file()
        assert _ledger(target)["categories"]


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


class TestIngest:
    """Tests for the ingest command."""

    def test_imports_and_saves(self, runner, project, statement_pdf):
        """Accepted records and new budget periods are written to the ledger."""
        with patch("statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(AMEX_TEXT)):
            result = runner.invoke(cli, ["ingest", str(statement_pdf)])

        assert result.exit_code == 0, result.output
        assert "Accepted:" in result.output
        ledger = _ledger(project)
        assert [t["merchant"] for t in ledger["transactions"]] == [
            "LOBLAWS #1029",
            "STARBUCKS #4521",
            "UBER CANADA",
        ]
        assert sorted(b["month"] for b in ledger["budgets"]) == ["2024-12", "2025-01"]

    def test_second_import_adds_nothing(self, runner, project, statement_pdf):
        """Re-importing a statement leaves the ledger unchanged."""
        opener = _pdfplumber_returning(AMEX_TEXT)
        with patch("statement_ingest.extractor.pdfplumber.open", opener):
            runner.invoke(cli, ["ingest", str(statement_pdf)])
            result = runner.invoke(cli, ["ingest", str(statement_pdf)])

        assert result.exit_code == 0, result.output
        assert "Already in ledger: 3" in result.output
        assert len(_ledger(project)["transactions"]) == 3
        assert len(_ledger(project)["budgets"]) == 2

    def test_dry_run_saves_nothing(self, runner, project, statement_pdf):
        """--dry-run prints the summary but leaves the ledger alone."""
        with patch("statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(AMEX_TEXT)):
            result = runner.invoke(cli, ["ingest", "--dry-run", str(statement_pdf)])

        assert result.exit_code == 0, result.output
        assert "dry run" in result.output
        assert _ledger(project)["transactions"] == []
        assert _ledger(project)["budgets"] == []

    def test_user_patterns_apply(self, runner, project, statement_pdf):
        """Patterns recorded with learn are used by the next import."""
        runner.invoke(cli, ["learn", "--merchant", "STARBUCKS", "--category", "Groceries"])
        with patch("statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(AMEX_TEXT)):
            runner.invoke(cli, ["ingest", str(statement_pdf)])

        ledger = _ledger(project)
        groceries = next(c["id"] for c in ledger["categories"] if c["name"] == "Groceries")
        starbucks = next(t for t in ledger["transactions"] if t["merchant"] == "STARBUCKS #4521")
        assert starbucks["categoryId"] == groceries

    def test_unsupported_file_fails(self, runner, project, statement_pdf):
        """A batch that imports nothing and has errors exits 1."""
        with patch(
            "statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(UNSUPPORTED_TEXT)
        ):
            result = runner.invoke(cli, ["ingest", str(statement_pdf)])

        assert result.exit_code == 1
        assert "Unable to detect supported bank type" in result.output

    def test_without_init(self, runner, tmp_path, monkeypatch):
        """A missing config points the user at init."""
        monkeypatch.chdir(tmp_path)
        pdf = tmp_path / "x.pdf"
        pdf.write_bytes(b"%PDF")

        result = runner.invoke(cli, ["ingest", str(pdf)])

        assert result.exit_code == 1
        assert "statement-ingest init" in result.output

    def test_llm_disabled_by_flag(self, runner, project, statement_pdf):
        """--no-llm never touches the network even when configured."""
        config = (project / "config.toml").read_text(encoding="utf-8")
        (project / "config.toml").write_text(
            config.replace('provider = "none"', 'provider = "anthropic"'), encoding="utf-8"
        )
        post = MagicMock()
        with patch("statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(AMEX_TEXT)), \
                patch("statement_ingest.llm.httpx.post", post):
            result = runner.invoke(cli, ["ingest", "--no-llm", "--verbose", str(statement_pdf)])

        assert result.exit_code == 0, result.output
        assert "LLM categorization disabled." in result.output
        post.assert_not_called()


# ---------------------------------------------------------------------------
# detect
# ---------------------------------------------------------------------------


class TestDetect:
    """Tests for the detect command."""

    def test_prints_format(self, runner, statement_pdf):
        """A recognized statement prints its parser name."""
        with patch("statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(AMEX_TEXT)):
            result = runner.invoke(cli, ["detect", str(statement_pdf)])

        assert result.exit_code == 0
        assert result.output.strip() == "amex"

    def test_unknown_format(self, runner, statement_pdf):
        """An unrecognized statement exits 1."""
        with patch(
            "statement_ingest.extractor.pdfplumber.open", _pdfplumber_returning(UNSUPPORTED_TEXT)
        ):
            result = runner.invoke(cli, ["detect", str(statement_pdf)])

        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# learn
# ---------------------------------------------------------------------------


class TestLearn:
    """Tests for the learn command."""

    def test_records_pattern(self, runner, project):
        """The pattern lands in config.toml under the category's name."""
        result = runner.invoke(cli, ["learn", "--merchant", "SQ *CORNER", "--category", "dining out"])

        assert result.exit_code == 0, result.output
        assert "Pattern added" in result.output
        assert load_config(project).user_patterns == {"SQ *CORNER": "Dining Out"}

    def test_unknown_category(self, runner, project):
        """Unknown categories are rejected and nothing is saved."""
        result = runner.invoke(cli, ["learn", "--merchant", "SQ *CORNER", "--category", "Vacations"])

        assert result.exit_code == 1
        assert "unknown category" in result.output
        assert load_config(project).user_patterns == {}
