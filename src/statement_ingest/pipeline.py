"""Ingestion coordinator.

Runs a batch of statement files through extraction, format detection,
parsing, duplicate checking and categorization, then binds the surviving
candidates to budget periods and stamps them for storage.

The work is split into two phases:

* **Per file** -- extract, detect, parse, check against the ledger,
  categorize.  Files share nothing at this point, so this phase may run on
  a thread pool.  Every failure is recorded against the file and never
  stops the batch.
* **Across files** -- create missing budget periods, compute content
  hashes, drop records already in the ledger and stamp the rest.  This runs
  serially, in input order.

Creating budget periods through the ``create_budget_period`` callback is the
only side effect; nothing here writes to the ledger.
"""

from __future__ import annotations

import concurrent.futures
import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from statement_ingest import dedup, parsers
from statement_ingest.categorizer import Classifier, batch_categorize
from statement_ingest.errors import UnsupportedFormatError
from statement_ingest.extractor import extract
from statement_ingest.models import (
    CONFIDENCE_HIGH,
    BudgetPeriod,
    CandidateTransaction,
    CategorizationVerdict,
    Category,
    DeduplicationVerdict,
    ExtractedText,
    FileSummary,
    IngestResult,
    LedgerTransaction,
    RawDocument,
    ReviewItem,
    transaction_hash,
)
from statement_ingest.parsers import ParserEntry

logger = logging.getLogger(__name__)

CreateBudgetPeriod = Callable[[str, Mapping[str, Decimal]], BudgetPeriod]


@dataclass
class _FileOutcome:
    """Everything the per-file phase learned about one document."""

    summary: FileSummary
    candidates: list[CandidateTransaction] = field(default_factory=list)
    dedup_verdicts: list[DeduplicationVerdict] = field(default_factory=list)
    category_verdicts: list[CategorizationVerdict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_create_budget_period(month: str, allocations: Mapping[str, Decimal]) -> BudgetPeriod:
    """Build a new budget period with a random id.  Stores nothing."""
    return BudgetPeriod(
        id=str(uuid.uuid4()),
        month=month,
        allocations=dict(allocations),
        available_to_budget=Decimal("0"),
    )


def ingest(
    files: Sequence[RawDocument],
    existing_ledger: Sequence[LedgerTransaction],
    categories: Sequence[Category],
    budget_periods: Sequence[BudgetPeriod],
    create_budget_period: CreateBudgetPeriod | None = None,
    classifier: Classifier | None = None,
    registry: Sequence[ParserEntry] | None = None,
    extract_fn: Callable[[RawDocument], ExtractedText] = extract,
    now: datetime | None = None,
    max_workers: int = 1,
    timeout: float | None = None,
    auto_assign_threshold: float = CONFIDENCE_HIGH,
    dedup_threshold: float = dedup.DEFAULT_THRESHOLD,
) -> IngestResult:
    """Ingest a batch of statement files.

    Args:
        files: The uploaded documents, in display order.
        existing_ledger: The ledger as it stands.  Read only.
        categories: The user's categories.  Read only.
        budget_periods: Existing budget periods.  Read only.
        create_budget_period: Called once per month that has candidates but
            no budget period, with the month and its default allocations.
            Defaults to :func:`default_create_budget_period`.
        classifier: Categorization strategy.  Defaults to the rule table.
        registry: Parser registry.  Defaults to the built-in parsers.
        extract_fn: Text extractor.  Replaceable for tests.
        now: Timestamp stamped on accepted records.  Defaults to the
            current UTC time.
        max_workers: Files processed concurrently in the per-file phase.
        timeout: Seconds to wait for each file when ``max_workers`` is above
            1.  ``None`` waits indefinitely.  This bounds when a file is
            reported as timed out, not the work itself: a running worker
            thread is not interrupted and is still joined at interpreter
            exit.
        auto_assign_threshold: Minimum categorization confidence for a
            category id to be stamped on a record.
        dedup_threshold: Heuristic duplicate confidence at or above which a
            record counts as a duplicate in the per-file summary.

    Returns:
        An :class:`IngestResult`.  ``accepted`` is ready to be persisted
        verbatim.

    Raises:
        ValueError: If *files* is ``None``.
    """
    if files is None:
        raise ValueError("files must not be None")

    create = create_budget_period or default_create_budget_period
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    result = IngestResult()

    # -- Phase 1: per file --------------------------------------------------
    outcomes = _run_per_file(
        files,
        lambda document: _process_file(
            document,
            existing_ledger,
            categories,
            classifier,
            registry,
            extract_fn,
            dedup_threshold,
        ),
        max_workers,
        timeout,
    )

    for outcome in outcomes:
        result.summaries.append(outcome.summary)
        result.errors.extend(outcome.errors)
        result.warnings.extend(outcome.warnings)

    # -- Phase 2: budget periods --------------------------------------------
    budgets = _ensure_budget_periods(outcomes, categories, budget_periods, create, result)

    # -- Phase 3: hash, filter, stamp ---------------------------------------
    existing_hashes = {txn.transaction_hash for txn in existing_ledger if txn.transaction_hash}
    for outcome in outcomes:
        for candidate, dedup_verdict, category_verdict in zip(
            outcome.candidates, outcome.dedup_verdicts, outcome.category_verdicts
        ):
            budget = budgets.get(candidate.date[:7])
            if budget is None:
                continue

            txn_hash = transaction_hash(
                candidate.date, candidate.merchant, candidate.amount, candidate.description
            )
            result.reviews.append(
                ReviewItem(
                    transaction=candidate,
                    deduplication=dedup_verdict,
                    categorization=category_verdict,
                    transaction_hash=txn_hash,
                    source_file=outcome.summary.file_name,
                )
            )

            record = _stamp(
                candidate, category_verdict, budget, txn_hash, stamp, auto_assign_threshold
            )
            if txn_hash in existing_hashes:
                logger.debug("Skipping %s %s: already in ledger", record.date, record.merchant)
                result.rejected_as_duplicate.append(record)
            else:
                result.accepted.append(record)

    logger.info(
        "Ingested %d file(s): %d accepted, %d already in ledger, %d error(s)",
        len(files),
        len(result.accepted),
        len(result.rejected_as_duplicate),
        len(result.errors),
    )
    return result


# ---------------------------------------------------------------------------
# Per-file phase
# ---------------------------------------------------------------------------


def _run_per_file(
    files: Sequence[RawDocument],
    work: Callable[[RawDocument], _FileOutcome],
    max_workers: int,
    timeout: float | None,
) -> list[_FileOutcome]:
    """Apply *work* to every file and return the outcomes in input order."""
    if max_workers <= 1 or len(files) <= 1:
        return [_guarded(work, document) for document in files]

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)
    try:
        futures = [executor.submit(_guarded, work, document) for document in files]
        outcomes: list[_FileOutcome] = []
        for document, future in zip(files, futures):
            try:
                outcomes.append(future.result(timeout=timeout))
            except concurrent.futures.TimeoutError:
                logger.warning("%s: timed out after %s seconds", document.name, timeout)
                message = f"{document.name}: Timed out after {timeout} seconds"
                outcomes.append(
                    _FileOutcome(
                        summary=FileSummary(file_name=document.name, errors=[message]),
                        errors=[message],
                    )
                )
        return outcomes
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _guarded(work: Callable[[RawDocument], _FileOutcome], document: RawDocument) -> _FileOutcome:
    """Run *work* on one file, turning an unexpected failure into a file error."""
    try:
        return work(document)
    except Exception as exc:
        logger.exception("%s: unexpected failure", document.name)
        message = f"{document.name}: {exc}"
        return _FileOutcome(
            summary=FileSummary(file_name=document.name, errors=[message]),
            errors=[message],
        )


def _process_file(
    document: RawDocument,
    existing_ledger: Sequence[LedgerTransaction],
    categories: Sequence[Category],
    classifier: Classifier | None,
    registry: Sequence[ParserEntry] | None,
    extract_fn: Callable[[RawDocument], ExtractedText],
    dedup_threshold: float,
) -> _FileOutcome:
    """Extract, detect, parse, check and categorize one document."""
    name = document.name
    summary = FileSummary(file_name=name)
    outcome = _FileOutcome(summary=summary)

    def error(message: str) -> None:
        outcome.errors.append(f"{name}: {message}")
        summary.errors.append(message)

    logger.info("Processing %s", name)

    # -- Extract -------------------------------------------------------------
    extracted = extract_fn(document)
    for message in extracted.page_errors:
        error(message)
    if not extracted.pages and extracted.page_errors:
        return outcome
    full_text = extracted.full_text
    if not full_text.strip():
        outcome.warnings.append(f"{name}: No text could be extracted")

    # -- Detect --------------------------------------------------------------
    parser_name = parsers.detect(full_text, registry)
    if parser_name is None:
        error(str(UnsupportedFormatError()))
        return outcome
    summary.parser = parser_name
    logger.info("%s: detected %s statement", name, parser_name)

    # -- Parse ---------------------------------------------------------------
    parsed = parsers.get_parser(parser_name, registry)(full_text)
    for message in parsed.errors:
        error(message)
    outcome.warnings.extend(f"{name}: {message}" for message in parsed.warnings)
    summary.account_info = parsed.account_info
    outcome.candidates = list(parsed.transactions)
    summary.total_parsed = len(outcome.candidates)

    # -- Check and categorize -----------------------------------------------
    checked = dedup.batch_check(outcome.candidates, existing_ledger)
    outcome.dedup_verdicts = [verdict for _, verdict in checked]
    categorized = batch_categorize(outcome.candidates, categories, classifier)
    outcome.category_verdicts = [verdict for _, verdict in categorized]

    summary.duplicates_found = sum(
        1
        for verdict in outcome.dedup_verdicts
        if verdict.is_likely_duplicate and verdict.confidence >= dedup_threshold
    )
    summary.new_transactions = summary.total_parsed - summary.duplicates_found
    logger.info(
        "%s: %d parsed, %d likely duplicate(s), %d error(s)",
        name,
        summary.total_parsed,
        summary.duplicates_found,
        len(summary.errors),
    )
    return outcome


# ---------------------------------------------------------------------------
# Cross-file phase
# ---------------------------------------------------------------------------


def _ensure_budget_periods(
    outcomes: Sequence[_FileOutcome],
    categories: Sequence[Category],
    budget_periods: Sequence[BudgetPeriod],
    create: CreateBudgetPeriod,
    result: IngestResult,
) -> dict[str, BudgetPeriod]:
    """Return a month -> budget period map covering every candidate month.

    Months without a period get one from *create*, in order of first
    appearance.  A month whose period cannot be created is reported as an
    error and left out of the map, so its candidates are not stamped.
    """
    budgets: dict[str, BudgetPeriod] = {}
    for budget in budget_periods:
        budgets.setdefault(budget.month, budget)

    months: list[str] = []
    for outcome in outcomes:
        for candidate in outcome.candidates:
            month = candidate.date[:7]
            if month not in budgets and month not in months:
                months.append(month)

    allocations = {
        category.id: category.monthly_budget if category.monthly_budget is not None else Decimal("0")
        for category in categories
    }
    for month in months:
        try:
            budget = create(month, dict(allocations))
        except Exception as exc:
            logger.warning("Could not create budget period for %s: %s", month, exc)
            result.errors.append(f"Failed to create budget period for {month}: {exc}")
            continue
        budgets[month] = budget
        result.created_budget_periods.append(budget)
        logger.info("Created budget period for %s", month)
    return budgets


def _stamp(
    candidate: CandidateTransaction,
    verdict: CategorizationVerdict,
    budget: BudgetPeriod,
    txn_hash: str,
    stamp: str,
    auto_assign_threshold: float,
) -> LedgerTransaction:
    category_id = verdict.category_id if verdict.confidence >= auto_assign_threshold else None
    return LedgerTransaction(
        id=str(uuid.uuid4()),
        date=candidate.date,
        merchant=candidate.merchant,
        description=candidate.description,
        amount=candidate.amount,
        account_type=candidate.account_type,
        budget_id=budget.id,
        transaction_hash=txn_hash,
        confidence=candidate.confidence,
        category_id=category_id,
        created_at=stamp,
        updated_at=stamp,
    )
