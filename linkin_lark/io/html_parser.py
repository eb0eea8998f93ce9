"""HTML book parsing.

Responsibilities:
- Fetch an HTML book over HTTP(S).
- Detect chapter headings and collect the cleaned text under each one.
- Fall back to a single full-book chapter when headings are too sparse.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Comment, Tag
import requests

from ..errors import InputError
from ..models.datatypes import Chapter, ParseResult

_NOISE_SELECTORS = (
    "script",
    "style",
    "nav",
    "header",
    "footer",
    ".ad",
    '[class*="ad-"]',
)
_STRUCTURE_NOISE_SELECTORS = (
    '[class*="toc"]',
    '[class*="table-of-contents"]',
    '[id*="toc"]',
    '[class*="sidebar"]',
    '[class*="menu"]',
)
_CHAPTER_HEADING_RE = re.compile(r"chapter|section|prologue|epilogue|part", re.IGNORECASE)
_MIN_DETECTED_CHAPTERS = 5
_FULL_BOOK_TITLE = "Full Book"


def clean_html_text(html: str) -> str:
    """Return readable text from an HTML fragment with boilerplate removed."""

    soup = BeautifulSoup(html, "html.parser")
    _strip_noise(soup, _NOISE_SELECTORS)
    for anchor in soup.select('a[href^="#"]'):
        anchor.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    return " ".join(soup.get_text(" ").split())


def _strip_noise(soup: BeautifulSoup, selectors: tuple[str, ...]) -> None:
    for selector in selectors:
        for element in soup.select(selector):
            element.decompose()


def _is_chapter_heading(element: Tag) -> bool:
    classes = element.get("class") or []
    return bool(_CHAPTER_HEADING_RE.search(element.get_text())) or "chapter" in classes


def _content_until_next_heading(element: Tag) -> str:
    """Collect raw HTML of the siblings between a heading and the next h1/h2."""

    parts: list[str] = []
    for sibling in element.next_siblings:
        if isinstance(sibling, Tag) and sibling.name in {"h1", "h2"}:
            break
        parts.append(str(sibling))
    return "".join(parts)


class HtmlBookParser:
    """Parse an HTML document into ordered chapters."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        """Initialize fetch timeout settings."""

        self.timeout_seconds = timeout_seconds

    def parse(self, url: str) -> ParseResult:
        """Fetch and parse a URL into chapters."""

        html = self.fetch(url)
        return ParseResult(chapters=tuple(self.detect_chapters(html)), source=url, kind="html")

    def fetch(self, url: str) -> str:
        """Download HTML text, mapping transport and HTTP failures to `InputError`."""

        try:
            response = requests.get(url, timeout=self.timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise InputError(
                f"Failed to fetch `{url}`: {exc}",
                hint="Check the URL and your network connection.",
            ) from exc
        return response.text

    def detect_chapters(self, html: str) -> list[Chapter]:
        """Return chapters from heading structure, or one full-book chapter."""

        soup = BeautifulSoup(html, "html.parser")
        _strip_noise(soup, _NOISE_SELECTORS + _STRUCTURE_NOISE_SELECTORS)

        detected: list[tuple[str, str]] = []
        for heading in soup.find_all(["h1", "h2"]):
            if not _is_chapter_heading(heading):
                continue
            title = " ".join(heading.get_text().split())
            detected.append((title, _content_until_next_heading(heading)))

        if len(detected) < _MIN_DETECTED_CHAPTERS:
            main = soup.select_one("main, article, .content") or soup.body or soup
            return [Chapter(title=_FULL_BOOK_TITLE, content=clean_html_text(str(main)), ordinal=0)]

        chapters: list[Chapter] = []
        for title, content_html in detected:
            content = clean_html_text(content_html)
            if not content:
                continue
            chapters.append(Chapter(title=title, content=content, ordinal=len(chapters)))
        return chapters
