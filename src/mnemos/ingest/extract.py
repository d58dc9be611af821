"""Page-aware text extraction for files handed to the ingestor.

PDFs are read page by page via pypdf; every other file is decoded as UTF-8
text and split into pages of ``LINES_PER_PAGE`` lines so that citations can
still point at a page range.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pypdf
from pypdf.errors import PdfReadError

from mnemos.errors import ValidationError

LINES_PER_PAGE = 100


@dataclass(frozen=True)
class PageText:
    """Plain text of one page, numbered from 1."""

    page_number: int
    text: str


def extract_pages(path: Path | str) -> list[PageText]:
    """Return the non-blank pages of the file at *path*.

    Raises:
        ValidationError: If the file is missing or cannot be parsed.
    """
    p = Path(path)
    if not p.is_file():
        raise ValidationError(f"File not found: {p}")
    if p.suffix.lower() == ".pdf":
        return _pdf_pages(p)
    return split_lines(p.read_text(encoding="utf-8", errors="replace"))


def split_lines(text: str, lines_per_page: int = LINES_PER_PAGE) -> list[PageText]:
    """Split *text* into pages of *lines_per_page* lines, dropping blank pages."""
    lines = text.splitlines(keepends=True)
    pages: list[PageText] = []
    for start in range(0, len(lines), lines_per_page):
        body = "".join(lines[start : start + lines_per_page])
        if body.strip():
            pages.append(PageText(page_number=start // lines_per_page + 1, text=body))
    return pages


def _pdf_pages(path: Path) -> list[PageText]:
    try:
        reader = pypdf.PdfReader(str(path))
        pages: list[PageText] = []
        for number, page in enumerate(reader.pages, start=1):
            text = page.extract_text() or ""
            # Scanned pages without a text layer are skipped.
            if text.strip():
                pages.append(PageText(page_number=number, text=text))
    except PdfReadError as exc:
        raise ValidationError(f"Could not read PDF '{path.name}': {exc}") from exc
    return pages
