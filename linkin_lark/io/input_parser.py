"""Input source dispatch.

Responsibilities:
- Route HTTP(S) URLs to the HTML parser and local `.pdf` files to the PDF parser.
- Reject unsupported inputs and documents without any chapter text.
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from ..errors import InputError
from ..models.datatypes import ParseResult
from .html_parser import HtmlBookParser
from .pdf_parser import DEFAULT_PAGES_PER_CHAPTER, PdfBookParser


def is_url(source: str) -> bool:
    """Return whether `source` is an absolute HTTP(S) URL."""

    parsed = urlparse(source)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def parse_input(
    source: str,
    pages_per_chapter: int = DEFAULT_PAGES_PER_CHAPTER,
    *,
    html_parser: HtmlBookParser | None = None,
) -> ParseResult:
    """Parse a URL or PDF path into chapters.

    Raises:
        InputError: If the input is unsupported, unreadable, or yields no text.
    """

    if is_url(source):
        result = (html_parser or HtmlBookParser()).parse(source)
    elif source.lower().endswith(".pdf"):
        if not Path(source).expanduser().is_file():
            raise InputError(f"PDF file not found: `{source}`.")
        result = PdfBookParser(pages_per_chapter=pages_per_chapter).parse(source)
    else:
        raise InputError(
            f"Unsupported input `{source}`.",
            hint="Provide an http(s) URL or a path to a `.pdf` file.",
        )

    if not any(chapter.content.strip() for chapter in result.chapters):
        raise InputError(
            f"No chapter text could be extracted from `{source}`.",
            hint="Scanned PDFs without a text layer are not supported.",
        )
    return result
