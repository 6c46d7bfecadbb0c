"""Human-readable ingestion summary."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from decimal import Decimal

from statement_ingest.models import Category, IngestResult


def print_summary(
    result: IngestResult,
    categories: Sequence[Category] = (),
    dry_run: bool = False,
) -> None:
    """Print a processing summary to stdout.

    The summary includes:

    - One line per file: detected format, statement period, parsed count,
      likely duplicates and errors.
    - Accepted and already-imported totals.
    - Budget periods created for new months.
    - Categorization breakdown and spending per assigned category.
    - Warnings and errors, if any.

    Args:
        result: The :class:`~statement_ingest.models.IngestResult` of a run.
        categories: Used to print category names instead of ids.
        dry_run: Word the header for a run that saved nothing.
    """
    names = {category.id: category.name for category in categories}
    accepted = result.accepted

    print()
    print("== Import Summary (dry run) ==" if dry_run else "== Import Summary ==")

    for summary in result.summaries:
        label = summary.parser.upper() if summary.parser else "unsupported"
        period = ""
        if summary.account_info is not None and summary.account_info.statement_period:
            period = f", {summary.account_info.statement_period}"
        print(f"{summary.file_name}  [{label}{period}]")
        print(
            f"  parsed {summary.total_parsed}, likely duplicates {summary.duplicates_found}, "
            f"new {summary.new_transactions}, errors {len(summary.errors)}"
        )

    print()
    print(f"Accepted:        {len(accepted)} transactions")
    print(f"Already in ledger: {len(result.rejected_as_duplicate)} skipped")
    if result.created_budget_periods:
        months = ", ".join(budget.month for budget in result.created_budget_periods)
        print(f"New budget periods: {months}")

    if accepted:
        categorized = [t for t in accepted if t.category_id is not None]
        pct = len(categorized) / len(accepted) * 100
        print(f"Categorized:     {len(categorized)} / {len(accepted)} ({pct:.1f}%)")

        totals: Counter[str] = Counter()
        for txn in categorized:
            if txn.amount < 0:
                totals[names.get(txn.category_id, txn.category_id)] += -txn.amount
        if totals:
            print()
            print("Spending by category:")
            for name, total in sorted(totals.items(), key=lambda pair: -pair[1]):
                print(f"  {name + ':':<25} ${Decimal(total):,.2f}")

    if result.warnings:
        print()
        print(f"Warnings: {len(result.warnings)}")
        for warning in result.warnings:
            print(f"  - {warning}")

    if result.errors:
        print()
        print(f"Errors: {len(result.errors)}")
        for error in result.errors:
            print(f"  - {error}")

    print()
