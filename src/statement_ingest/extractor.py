"""PDF text extraction.

Turns a statement PDF into an :class:`~statement_ingest.models.ExtractedText`.
Every page is read independently so one bad page never costs the rest of
the document.  Nothing raises past :func:`extract` except a ``None``
document: an unreadable file comes back as zero pages and one error.

Text is read with ``pdfplumber`` in layout mode, which keeps the horizontal
gaps between columns as runs of spaces.  The statement parsers rely on those
gaps to tell columns apart.
"""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path

import pdfplumber

from statement_ingest.errors import DocumentExtractionError, PageExtractionError
from statement_ingest.models import ExtractedText, RawDocument

logger = logging.getLogger(__name__)

_NBSP_RE = re.compile(r"[\u00a0\u2007\u202f]")


def normalize_page_text(text: str) -> str:
    """Normalize one page of extracted text.

    Replaces non-breaking spaces with plain spaces, strips trailing
    whitespace from every line and drops blank lines.  Interior runs of
    spaces are kept because they separate columns.
    """
    text = _NBSP_RE.sub(" ", text)
    lines = [line.rstrip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line.strip())


def extract(document: RawDocument | bytes | str | Path) -> ExtractedText:
    """Extract the text layer of every page of *document*.

    Args:
        document: A :class:`RawDocument`, raw PDF bytes, or a path to a PDF
            file.

    Returns:
        An :class:`ExtractedText`.  Pages that fail are skipped and recorded
        in ``page_errors``; a document that cannot be opened yields no pages
        and a single error.

    Raises:
        ValueError: If *document* is ``None``.
    """
    if document is None:
        raise ValueError("document must not be None")

    if isinstance(document, RawDocument):
        source = io.BytesIO(document.content)
    elif isinstance(document, (bytes, bytearray)):
        source = io.BytesIO(bytes(document))
    else:
        source = Path(document)

    result = ExtractedText()

    try:
        with pdfplumber.open(source) as pdf:
            for page_number, page in enumerate(pdf.pages, start=1):
                try:
                    text = page.extract_text(layout=True) or ""
                except Exception as exc:
                    error = PageExtractionError(page_number, exc)
                    logger.warning("%s", error)
                    result.page_errors.append(str(error))
                    continue
                result.pages.append(normalize_page_text(text))
    except Exception as exc:
        error = DocumentExtractionError(exc)
        logger.warning("%s", error)
        return ExtractedText(pages=[], page_errors=[str(error)])

    logger.debug(
        "Extracted %d page(s) with %d page error(s)",
        len(result.pages),
        len(result.page_errors),
    )
    return result
