"""Parser registry and bank-format detection.

Each parser is a module exposing a ``parse(full_text)`` function that
returns a :class:`~statement_ingest.models.ParseResult`.  The registry is an
ordered list of :class:`ParserEntry` records pairing a parser name with the
fingerprint strings that identify its institution.  :func:`detect` consults
the registry in registration order and the first entry with a matching
fingerprint wins, so more specific fingerprints must be registered before
generic ones.

Adding a bank means writing one parser module and one :func:`register`
call below; the pipeline does not change.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from statement_ingest.models import ParseResult
from statement_ingest.parsers import amex, cibc


@dataclass(frozen=True)
class ParserEntry:
    """One registered statement format.

    Attributes:
        name: Parser name, e.g. ``"amex"``.
        fingerprints: Case-insensitive substrings identifying the issuer.
        parse: The parse function for this format.
    """

    name: str
    fingerprints: tuple[str, ...]
    parse: Callable[[str], ParseResult] = field(compare=False)


REGISTRY: list[ParserEntry] = []


def register(
    name: str,
    fingerprints: Sequence[str],
    parse: Callable[[str], ParseResult],
    registry: list[ParserEntry] | None = None,
) -> ParserEntry:
    """Append a parser to *registry* (the default registry if omitted).

    Raises:
        ValueError: If *name* is already registered or has no fingerprints.
    """
    target = REGISTRY if registry is None else registry
    if any(entry.name == name for entry in target):
        raise ValueError(f"parser {name!r} is already registered")
    if not fingerprints:
        raise ValueError(f"parser {name!r} needs at least one fingerprint")
    entry = ParserEntry(name=name, fingerprints=tuple(fingerprints), parse=parse)
    target.append(entry)
    return entry


def get_parser(name: str, registry: Sequence[ParserEntry] | None = None) -> Callable[[str], ParseResult]:
    """Look up a parse function by name.

    Raises:
        KeyError: If no parser is registered under the given name.
    """
    for entry in REGISTRY if registry is None else registry:
        if entry.name == name:
            return entry.parse
    raise KeyError(name)


def detect(full_text: str, registry: Sequence[ParserEntry] | None = None) -> str | None:
    """Return the name of the first registered parser whose fingerprint occurs in *full_text*.

    Matching is case-insensitive substring search.  ``None`` means the
    statement format is not supported; that is an expected outcome, not an
    error.
    """
    lowered = full_text.lower()
    for entry in REGISTRY if registry is None else registry:
        if any(fingerprint.lower() in lowered for fingerprint in entry.fingerprints):
            return entry.name
    return None


register("amex", ["american express", "amex"], amex.parse)
register(
    "cibc",
    ["cibc", "canadian imperial bank", "cibc advisor", "cibc online banking"],
    cibc.parse,
)
