"""Text layer extraction.

Functions in this module open PDF bytes with PyMuPDF and flatten each page's
text layer into positioned :class:`~salarymask.types.TextFragment` records.

Coordinates are reported the way an on-screen renderer would see them at
scale 1.0: origin at the top-left of the page, ``y`` pointing down and marking
the top edge of the text run. This lets the salary heuristics compare the
vertical centres of fragments on the same visual row with a fixed tolerance.
"""

from __future__ import annotations

from typing import List

import fitz  # PyMuPDF

from .errors import DocumentLoadError
from .logging import get_logger
from .types import TextFragment

logger = get_logger(__name__)

# Text blocks in ``page.get_text("dict")``; image blocks use type 1.
_TEXT_BLOCK = 0


def open_document(document_bytes: bytes) -> fitz.Document:
    """Open PDF bytes, raising :class:`DocumentLoadError` on any failure.

    The caller owns the returned handle and must close it.
    """
    if not document_bytes:
        raise DocumentLoadError("Could not load PDF document: the file is empty")
    try:
        doc = fitz.open(stream=document_bytes, filetype="pdf")
    except Exception as exc:
        raise DocumentLoadError(
            "Could not load PDF document: the file is corrupt or not a PDF"
        ) from exc
    if doc.needs_pass:
        doc.close()
        raise DocumentLoadError("Could not load PDF document: the file is password protected")
    if doc.page_count == 0:
        doc.close()
        raise DocumentLoadError("Could not load PDF document: the file has no pages")
    return doc


def page_fragments(page: fitz.Page, page_number: int) -> List[TextFragment]:
    """Return the non-blank text spans of one page in reading order.

    Parameters
    ----------
    page:
        PyMuPDF page object.
    page_number:
        1-based page number stamped on every fragment.
    """
    fragments: List[TextFragment] = []
    data = page.get_text("dict")
    for block in data.get("blocks", []):
        if block.get("type") != _TEXT_BLOCK:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                text = span.get("text") or ""
                if not text.strip():
                    continue
                x0, y0, x1, y1 = span["bbox"]
                fragments.append(
                    TextFragment(
                        text=text,
                        page=page_number,
                        x=float(x0),
                        y=float(y0),
                        width=max(0.0, float(x1 - x0)),
                        height=max(0.0, float(y1 - y0)),
                    )
                )
    return fragments


def extract_fragments(document_bytes: bytes) -> List[TextFragment]:
    """Extract positioned text fragments from every page of a PDF.

    Pages that fail to parse are skipped with a warning so that the remaining
    pages still contribute fragments. Failing to open the document at all is
    fatal.

    Parameters
    ----------
    document_bytes:
        Raw PDF bytes.

    Returns
    -------
    list[TextFragment]
        Fragments grouped by page (1..N) in document order.

    Raises
    ------
    DocumentLoadError
        If the bytes cannot be opened as a PDF.
    """
    doc = open_document(document_bytes)
    fragments: List[TextFragment] = []
    skipped: List[int] = []
    try:
        for index in range(doc.page_count):
            page_number = index + 1
            try:
                fragments.extend(page_fragments(doc.load_page(index), page_number))
            except Exception as exc:
                skipped.append(page_number)
                logger.warning(
                    "Skipping unreadable page during text extraction",
                    extra={"page": page_number, "error": type(exc).__name__},
                )
    finally:
        doc.close()
    logger.info(
        "Extracted text fragments",
        extra={"fragments": len(fragments), "skipped_pages": skipped},
    )
    return fragments


__all__ = ["open_document", "page_fragments", "extract_fragments"]
