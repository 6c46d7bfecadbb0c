"""Configuration loading, writing, and project initialization.

Reads ``config.toml`` using stdlib ``tomllib`` (``tomli`` before Python
3.11) and writes it using ``tomli_w``.  Depends on ``models.py`` and
``store.py``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from statement_ingest.models import CONFIDENCE_HIGH, AppConfig, LLMConfig
from statement_ingest.store import DEFAULT_CATEGORIES, JsonLedgerStore

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.toml"

# ---------------------------------------------------------------------------
# Default file content
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_TOML = """\
# Statement Ingest configuration

[ledger]
path = "ledger.json"

[dedup]
# Heuristic duplicate verdicts at or above this confidence are reported as
# duplicates.  They never block an import.
confidence_threshold = 0.8

[categorization]
# Minimum confidence for a category to be assigned automatically.
auto_assign_threshold = 0.8

[categorization.patterns]
# Merchant text = "Category name".  Checked before the built-in patterns.
# Case-insensitive substring match.  Managed by the learn command.
# "TIM HORTONS" = "Dining Out"

[processing]
max_workers = 1
timeout_seconds = 0        # per file; 0 = no timeout

[llm]
provider = "none"          # "anthropic" or "none"
model = "claude-sonnet-4-20250514"
api_key_env = "ANTHROPIC_API_KEY"  # Name of env var containing the API key
"""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(root: Path) -> AppConfig:
    """Load ``config.toml`` from *root* and return an :class:`AppConfig`.

    Missing sections and keys take their defaults.

    Args:
        root: Project root directory containing ``config.toml``.

    Returns:
        A fully-populated :class:`AppConfig` instance.

    Raises:
        FileNotFoundError: If ``config.toml`` does not exist.
        ValueError: If a threshold is outside 0..1 or ``max_workers`` is
            below 1.
    """
    data = _read_toml(root / CONFIG_FILE)

    ledger = data.get("ledger", {})
    dedup = data.get("dedup", {})
    categorization = data.get("categorization", {})
    processing = data.get("processing", {})
    llm = data.get("llm", {})

    config = AppConfig(
        ledger_path=ledger.get("path", "ledger.json"),
        dedup_confidence_threshold=float(dedup.get("confidence_threshold", CONFIDENCE_HIGH)),
        auto_assign_threshold=float(
            categorization.get("auto_assign_threshold", CONFIDENCE_HIGH)
        ),
        user_patterns={
            str(pattern): str(name)
            for pattern, name in categorization.get("patterns", {}).items()
        },
        max_workers=int(processing.get("max_workers", 1)),
        timeout_seconds=float(processing.get("timeout_seconds", 0)),
        llm=LLMConfig(
            provider=llm.get("provider", "none"),
            model=llm.get("model", "claude-sonnet-4-20250514"),
            api_key_env=llm.get("api_key_env", "ANTHROPIC_API_KEY"),
        ),
    )
    _validate(config)
    return config


def ledger_path(root: Path, config: AppConfig) -> Path:
    """Resolve the configured ledger path against *root*."""
    path = Path(config.ledger_path)
    return path if path.is_absolute() else root / path


def save_user_patterns(root: Path, patterns: dict[str, str]) -> None:
    """Rewrite the ``[categorization.patterns]`` table of ``config.toml``.

    Every other setting keeps its current value; comments in the file are
    not preserved.

    Args:
        root: Project root directory containing ``config.toml``.
        patterns: The complete ``{"merchant text": "Category name"}`` map.

    Raises:
        FileNotFoundError: If ``config.toml`` does not exist.
    """
    path = root / CONFIG_FILE
    data = _read_toml(path)
    categorization = data.setdefault("categorization", {})
    categorization["patterns"] = dict(patterns)
    path.write_text(tomli_w.dumps(data), encoding="utf-8")
    logger.info("Saved %d user pattern(s) to %s", len(patterns), path)


def initialize(target_dir: Path) -> None:
    """Create the default config file and a ledger seeded with categories.

    Idempotent: existing files are **not** overwritten.

    Args:
        target_dir: The directory in which to create the project files.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    _write_if_missing(target_dir / CONFIG_FILE, _DEFAULT_CONFIG_TOML)

    ledger_file = ledger_path(target_dir, load_config(target_dir))
    if not ledger_file.exists():
        store = JsonLedgerStore(ledger_file)
        store.seed_categories(DEFAULT_CATEGORIES)
        store.save()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_toml(path: Path) -> dict:
    """Read and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _validate(config: AppConfig) -> None:
    for name in ("dedup_confidence_threshold", "auto_assign_threshold"):
        value = getattr(config, name)
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be between 0 and 1, got {value}")
    if config.max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {config.max_workers}")
    if config.timeout_seconds < 0:
        raise ValueError(f"timeout_seconds must not be negative, got {config.timeout_seconds}")
    if config.llm.provider not in ("anthropic", "none"):
        raise ValueError(f"unknown llm provider {config.llm.provider!r}")


def _write_if_missing(path: Path, content: str) -> None:
    """Write *content* to *path* only if the file does not already exist."""
    if not path.exists():
        path.write_text(content, encoding="utf-8")
