"""PDF book parsing.

Responsibilities:
- Extract per-page text from text-based PDFs with `pypdf`.
- Derive chapters from the top-level outline when one exists.
- Fall back to fixed page groups (`pages_per_chapter`) otherwise.
"""

from __future__ import annotations

from pathlib import Path

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ..errors import InputError
from ..models.datatypes import Chapter, ParseResult
from .path_validator import is_pdf_bytes, sanitize_pdf_path

DEFAULT_PAGES_PER_CHAPTER = 10


class PdfBookParser:
    """Parse a local PDF file into ordered chapters."""

    def __init__(self, pages_per_chapter: int = DEFAULT_PAGES_PER_CHAPTER) -> None:
        """Initialize fallback page grouping."""

        if pages_per_chapter < 1:
            raise InputError("`pages_per_chapter` must be at least 1.")
        self.pages_per_chapter = pages_per_chapter

    def parse(self, pdf_path: str | Path) -> ParseResult:
        """Read, validate, and split a PDF into chapters."""

        resolved = sanitize_pdf_path(pdf_path)
        if not resolved.exists():
            raise InputError(f"PDF file not found: `{resolved}`.")
        with open(resolved, "rb") as handle:
            header = handle.read(8)
        if not is_pdf_bytes(header):
            raise InputError(f"File `{resolved}` is not a valid PDF.")

        try:
            reader = PdfReader(str(resolved))
            pages = [(page.extract_text() or "").replace("\f", "\n").strip() for page in reader.pages]
            outline_starts = self._outline_starts(reader)
        except PdfReadError as exc:
            raise InputError(f"Failed to read PDF `{resolved}`: {exc}") from exc

        chapters = self.chapters_from_outline(pages, outline_starts)
        if not chapters:
            chapters = self.chapters_from_page_groups(pages)
        return ParseResult(chapters=tuple(chapters), source=str(resolved), kind="pdf")

    @staticmethod
    def _outline_starts(reader: PdfReader) -> list[tuple[str, int]]:
        """Return `(title, 0-based page)` for each top-level outline entry."""

        starts: list[tuple[str, int]] = []
        for item in reader.outline:
            # Nested lists hold sub-entries of the previous item.
            if isinstance(item, list):
                continue
            title = " ".join(str(getattr(item, "title", "") or "").split())
            page_index = reader.get_destination_page_number(item)
            if title and page_index is not None and page_index >= 0:
                starts.append((title, page_index))
        starts.sort(key=lambda entry: entry[1])
        return starts

    @staticmethod
    def chapters_from_outline(
        pages: list[str], outline_starts: list[tuple[str, int]]
    ) -> list[Chapter]:
        """Build chapters spanning from each outline page to the next one."""

        chapters: list[Chapter] = []
        for position, (title, start_page) in enumerate(outline_starts):
            if position + 1 < len(outline_starts):
                end_page = outline_starts[position + 1][1]
            else:
                end_page = len(pages)
            # Entries sharing a start page still get that page's text.
            end_page = max(end_page, start_page + 1)
            content = "\n\n".join(page for page in pages[start_page:end_page] if page).strip()
            if content:
                chapters.append(Chapter(title=title, content=content, ordinal=len(chapters)))
        return chapters

    def chapters_from_page_groups(self, pages: list[str]) -> list[Chapter]:
        """Group consecutive pages into `Pages a-b` chapters."""

        chapters: list[Chapter] = []
        total_pages = len(pages)
        for first in range(0, total_pages, self.pages_per_chapter):
            last = min(first + self.pages_per_chapter, total_pages)
            content = "\n\n".join(page for page in pages[first:last] if page).strip()
            if not content:
                continue
            chapters.append(
                Chapter(
                    title=f"Pages {first + 1}-{last}",
                    content=content,
                    ordinal=len(chapters),
                )
            )
        return chapters
