"""JSON ledger store.

The ledger is a single JSON document holding the user's categories, budget
periods and transactions::

    {
        "categories": [{"id": "...", "name": "Groceries", "monthlyBudget": 500, "color": "#22c55e"}],
        "budgets": [{"id": "...", "month": "2025-01", "allocations": {...}, "availableToBudget": 0}],
        "transactions": [{"id": "...", "date": "2025-01-15", "merchant": "...", ...}],
        "lastUpdated": "2025-01-20T09:30:00+00:00"
    }

Keys are camelCase.  Amounts are JSON numbers on disk and
:class:`~decimal.Decimal` in memory; they are read with
``parse_float=Decimal`` so stored amounts round-trip exactly.

The store is loaded fully into memory; changes are written back by
:meth:`JsonLedgerStore.save`.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from statement_ingest.models import BudgetPeriod, Category, LedgerTransaction

logger = logging.getLogger(__name__)

# Seeded into a fresh ledger by ``config.initialize``.
DEFAULT_CATEGORIES: list[dict] = [
    {"name": "Groceries", "monthlyBudget": 500, "color": "#22c55e"},
    {"name": "Mortgage", "monthlyBudget": 1200, "color": "#3b82f6"},
    {"name": "Utilities", "monthlyBudget": 150, "color": "#f59e0b"},
    {"name": "Transportation", "monthlyBudget": 200, "color": "#8b5cf6"},
    {"name": "Entertainment", "monthlyBudget": 150, "color": "#ec4899"},
    {"name": "Dining Out", "monthlyBudget": 300, "color": "#ef4444"},
    {"name": "Healthcare", "monthlyBudget": 100, "color": "#06b6d4"},
    {"name": "Savings", "monthlyBudget": 800, "color": "#10b981"},
]


def new_id() -> str:
    """Return a fresh random identifier."""
    return str(uuid.uuid4())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_number(value: Decimal) -> int | float:
    """Convert a Decimal to the JSON number that prints the same way."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def category_from_dict(raw: Mapping) -> Category:
    monthly = raw.get("monthlyBudget")
    return Category(
        id=str(raw["id"]),
        name=str(raw["name"]),
        monthly_budget=None if monthly is None else _to_decimal(monthly),
        color=raw.get("color"),
    )


def category_to_dict(category: Category) -> dict:
    data: dict = {"id": category.id, "name": category.name}
    if category.monthly_budget is not None:
        data["monthlyBudget"] = _to_number(category.monthly_budget)
    if category.color is not None:
        data["color"] = category.color
    return data


def budget_from_dict(raw: Mapping) -> BudgetPeriod:
    return BudgetPeriod(
        id=str(raw["id"]),
        month=str(raw["month"]),
        allocations={
            str(key): _to_decimal(value) for key, value in raw.get("allocations", {}).items()
        },
        available_to_budget=_to_decimal(raw.get("availableToBudget", 0)),
    )


def budget_to_dict(budget: BudgetPeriod) -> dict:
    return {
        "id": budget.id,
        "month": budget.month,
        "allocations": {key: _to_number(value) for key, value in budget.allocations.items()},
        "availableToBudget": _to_number(budget.available_to_budget),
    }


def transaction_from_dict(raw: Mapping) -> LedgerTransaction:
    return LedgerTransaction(
        id=str(raw["id"]),
        date=str(raw["date"]),
        merchant=str(raw.get("merchant", "")),
        description=str(raw.get("description", "")),
        amount=_to_decimal(raw["amount"]),
        account_type=str(raw.get("accountType", "")),
        budget_id=str(raw.get("budgetId", "")),
        transaction_hash=str(raw.get("transactionHash", "")),
        confidence=float(raw.get("confidence", 0.0)),
        category_id=raw.get("categoryId"),
        created_at=str(raw.get("createdAt", "")),
        updated_at=str(raw.get("updatedAt", "")),
    )


def transaction_to_dict(txn: LedgerTransaction) -> dict:
    data: dict = {
        "id": txn.id,
        "date": txn.date,
        "merchant": txn.merchant,
        "description": txn.description,
        "amount": _to_number(txn.amount),
        "accountType": txn.account_type,
        "budgetId": txn.budget_id,
        "transactionHash": txn.transaction_hash,
        "confidence": txn.confidence,
        "createdAt": txn.created_at,
        "updatedAt": txn.updated_at,
    }
    if txn.category_id is not None:
        data["categoryId"] = txn.category_id
    return data


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class JsonLedgerStore:
    """A JSON file holding categories, budget periods and transactions.

    Args:
        path: Location of the ledger file.  A missing file loads as an
            empty ledger and is created on the first :meth:`save`.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.categories: list[Category] = []
        self.budgets: list[BudgetPeriod] = []
        self.transactions: list[LedgerTransaction] = []
        self.last_updated = ""

    @classmethod
    def open(cls, path: Path) -> JsonLedgerStore:
        """Create a store for *path* and load it."""
        store = cls(path)
        store.load()
        return store

    def load(self) -> None:
        """Read the ledger file into memory.

        Raises:
            ValueError: If the file exists but is not a valid ledger.
        """
        if not self.path.is_file():
            logger.info("Ledger %s does not exist yet; starting empty", self.path)
            self.categories, self.budgets, self.transactions = [], [], []
            self.last_updated = ""
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"), parse_float=Decimal)
            self.categories = [category_from_dict(c) for c in raw.get("categories", [])]
            self.budgets = [budget_from_dict(b) for b in raw.get("budgets", [])]
            self.transactions = [transaction_from_dict(t) for t in raw.get("transactions", [])]
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, ArithmeticError) as exc:
            raise ValueError(f"{self.path}: invalid ledger file: {exc}") from exc
        self.last_updated = str(raw.get("lastUpdated", ""))
        logger.debug(
            "Loaded ledger %s: %d categories, %d budgets, %d transactions",
            self.path,
            len(self.categories),
            len(self.budgets),
            len(self.transactions),
        )

    def save(self) -> None:
        """Write the in-memory ledger back to disk, stamping ``lastUpdated``."""
        self.last_updated = _now_iso()
        payload = {
            "categories": [category_to_dict(c) for c in self.categories],
            "budgets": [budget_to_dict(b) for b in self.budgets],
            "transactions": [transaction_to_dict(t) for t in self.transactions],
            "lastUpdated": self.last_updated,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        logger.debug("Wrote ledger: %s", self.path)

    def seed_categories(self, raw_categories: Iterable[Mapping]) -> int:
        """Add categories (camelCase dicts without ids) if the ledger has none.

        Returns:
            The number of categories added.
        """
        if self.categories:
            return 0
        for raw in raw_categories:
            self.categories.append(category_from_dict({"id": new_id(), **raw}))
        return len(self.categories)

    def budget_for_month(self, month: str) -> BudgetPeriod | None:
        return next((b for b in self.budgets if b.month == month), None)

    def create_budget_period(self, month: str, allocations: Mapping[str, Decimal]) -> BudgetPeriod:
        """Add a budget period for *month* and return it.

        Usable as the pipeline's ``create_budget_period`` callback.  If the
        month already has a period, that one is returned unchanged.
        """
        existing = self.budget_for_month(month)
        if existing is not None:
            return existing
        budget = BudgetPeriod(
            id=new_id(),
            month=month,
            allocations=dict(allocations),
            available_to_budget=Decimal("0"),
        )
        self.budgets.append(budget)
        return budget

    def add_transactions(self, transactions: Iterable[LedgerTransaction]) -> int:
        """Append stamped records verbatim.  Returns the number added."""
        added = list(transactions)
        self.transactions.extend(added)
        return len(added)
