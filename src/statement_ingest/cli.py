"""Click CLI entry point for the statement-ingest command.

Handles argument parsing, config loading, and error display. All business
logic is delegated to ``pipeline``, ``categorizer``, ``config``, ``store``
and ``summary``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from statement_ingest import __version__


def _configure_logging(verbose: bool, debug: bool) -> None:
    """Set up logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _load_project(root: Path):
    """Load config and ledger, or print an error and exit 1."""
    from statement_ingest.config import ledger_path, load_config
    from statement_ingest.store import JsonLedgerStore

    try:
        config = load_config(root)
        store = JsonLedgerStore.open(ledger_path(root, config))
    except FileNotFoundError as exc:
        click.echo(
            f"Error: {exc}. Run 'statement-ingest init' to create the project files.",
            err=True,
        )
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)
    return config, store


@click.group()
@click.version_option(version=__version__, prog_name="statement-ingest")
def cli() -> None:
    """Import bank and credit card PDF statements into a budget ledger."""


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--dry-run", is_flag=True, default=False, help="Show what would be imported; save nothing.")
@click.option("--no-llm", is_flag=True, default=False, help="Skip LLM categorization.")
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
@click.option("--debug", is_flag=True, default=False, help="Developer-level diagnostics.")
def ingest(files: tuple[str, ...], dry_run: bool, no_llm: bool, verbose: bool, debug: bool) -> None:
    """Import one or more PDF statements."""
    _configure_logging(verbose, debug)
    root = Path.cwd()
    config, store = _load_project(root)

    # Select classifier
    from statement_ingest.categorizer import RuleClassifier
    from statement_ingest.llm import LLMClassifier

    rules = RuleClassifier(user_patterns=config.user_patterns)
    if no_llm or config.llm.provider == "none":
        classifier = rules
        if verbose:
            click.echo("LLM categorization disabled.")
    else:
        classifier = LLMClassifier(
            model=config.llm.model,
            api_key_env=config.llm.api_key_env,
            fallback=rules,
        )
        if verbose:
            click.echo(f"Using LLM: {config.llm.provider} ({config.llm.model})")

    from statement_ingest.models import RawDocument

    documents = []
    for name in files:
        path = Path(name)
        try:
            documents.append(RawDocument(name=path.name, content=path.read_bytes()))
        except OSError as exc:
            click.echo(f"Error reading {path}: {exc}", err=True)
            sys.exit(1)

    from statement_ingest.pipeline import ingest as run_ingest

    try:
        result = run_ingest(
            documents,
            existing_ledger=list(store.transactions),
            categories=list(store.categories),
            budget_periods=list(store.budgets),
            create_budget_period=store.create_budget_period,
            classifier=classifier,
            max_workers=config.max_workers,
            timeout=config.timeout_seconds or None,
            auto_assign_threshold=config.auto_assign_threshold,
            dedup_threshold=config.dedup_confidence_threshold,
        )
    except Exception as exc:
        click.echo(f"Error running import: {exc}", err=True)
        sys.exit(1)

    if not dry_run:
        store.add_transactions(result.accepted)
        try:
            store.save()
        except OSError as exc:
            click.echo(f"Error writing ledger: {exc}", err=True)
            sys.exit(1)
        if verbose:
            click.echo(f"Wrote ledger to {store.path}")

    from statement_ingest.summary import print_summary

    print_summary(result, store.categories, dry_run=dry_run)

    if not result.accepted and not result.rejected_as_duplicate and result.errors:
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--debug", is_flag=True, default=False, help="Developer-level diagnostics.")
def detect(file: str, debug: bool) -> None:
    """Print the statement format of a PDF."""
    _configure_logging(verbose=False, debug=debug)

    from statement_ingest.errors import UnsupportedFormatError
    from statement_ingest.extractor import extract
    from statement_ingest.parsers import detect as detect_format

    extracted = extract(Path(file))
    for message in extracted.page_errors:
        click.echo(f"Warning: {message}", err=True)

    name = detect_format(extracted.full_text)
    if name is None:
        click.echo(f"Error: {UnsupportedFormatError()}", err=True)
        sys.exit(1)
    click.echo(name)


@cli.command()
@click.option("--merchant", required=True, help="Merchant text to match, e.g. 'TIM HORTONS'.")
@click.option("--category", "category_name", required=True, help="Name of an existing category.")
def learn(merchant: str, category_name: str) -> None:
    """Remember which category a merchant belongs to."""
    _configure_logging(verbose=False, debug=False)
    root = Path.cwd()
    config, store = _load_project(root)

    from statement_ingest.categorizer import learn as categorizer_learn
    from statement_ingest.config import save_user_patterns

    patterns = dict(config.user_patterns)
    try:
        outcome = categorizer_learn(patterns, merchant, category_name, store.categories)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if outcome != "unchanged":
        try:
            save_user_patterns(root, patterns)
        except Exception as exc:
            click.echo(f"Error saving patterns: {exc}", err=True)
            sys.exit(1)

    click.echo(f'Pattern {outcome}: "{merchant.strip()}" -> {category_name.strip()}')


@cli.command()
@click.option(
    "--dir", "target_dir", default=".", type=click.Path(), help="Directory to initialize."
)
def init(target_dir: str) -> None:
    """Create a config file and a ledger with the default categories."""
    from statement_ingest.config import initialize

    target = Path(target_dir).resolve()

    try:
        initialize(target)
    except Exception as exc:
        click.echo(f"Error initializing project: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Initialized statement-ingest project in {target}")
