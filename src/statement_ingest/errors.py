"""Error taxonomy for the ingestion pipeline.

These exceptions are raised inside a component and caught at the page,
fragment or file boundary, where they are turned into entries of an error
list.  None of them escape :func:`statement_ingest.pipeline.ingest`.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all pipeline errors."""


class PageExtractionError(IngestError):
    """One page of a PDF did not yield text.  Extraction continues."""

    def __init__(self, page_number: int, cause: object) -> None:
        self.page_number = page_number
        super().__init__(f"Failed to parse page {page_number}: {cause}")


class DocumentExtractionError(IngestError):
    """The whole file could not be opened.  Fatal for that file only."""

    def __init__(self, cause: object) -> None:
        super().__init__(f"Failed to parse PDF: {cause}")


class UnsupportedFormatError(IngestError):
    """No registered parser fingerprint matched the statement text."""

    def __init__(self) -> None:
        super().__init__("Unable to detect supported bank type from PDF content")


class FragmentParseError(IngestError):
    """One transaction-shaped fragment could not be decomposed.

    Attributes:
        snippet: The start of the offending fragment, for debugging.
    """

    SNIPPET_LENGTH = 80

    def __init__(self, message: str, fragment: str) -> None:
        self.snippet = " ".join(fragment.split())[: self.SNIPPET_LENGTH]
        super().__init__(f"{message}: {self.snippet!r}")


class InvalidDateError(FragmentParseError):
    """A parsed date could not be normalized.  The candidate is dropped."""

    def __init__(self, raw_date: str, fragment: str) -> None:
        self.raw_date = raw_date
        super().__init__(f"invalid date {raw_date!r}", fragment)
