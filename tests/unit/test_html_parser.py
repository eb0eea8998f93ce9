"""Unit tests for HTML chapter detection and fetching."""

from __future__ import annotations

import pytest
import requests

from linkin_lark.errors import InputError
from linkin_lark.io.html_parser import HtmlBookParser, clean_html_text


def _book_html(chapter_count: int) -> str:
    chapters = "".join(
        f"<h2>Chapter {index}</h2><p>Text of chapter {index}.</p><p>More {index}.</p>"
        for index in range(1, chapter_count + 1)
    )
    return (
        "<html><head><style>p { color: red; }</style></head><body>"
        "<nav>Home | Next</nav>"
        '<div class="toc"><a href="#c1">Chapter 1</a></div>'
        f"{chapters}"
        "<script>track();</script>"
        "<footer>Copyright</footer>"
        "</body></html>"
    )


def test_detects_chapters_from_headings() -> None:
    """Five or more chapter headings should become ordered chapters."""

    chapters = HtmlBookParser().detect_chapters(_book_html(5))

    assert [chapter.title for chapter in chapters] == [f"Chapter {i}" for i in range(1, 6)]
    assert [chapter.ordinal for chapter in chapters] == [0, 1, 2, 3, 4]
    assert chapters[0].content == "Text of chapter 1. More 1."
    assert chapters[4].content == "Text of chapter 5. More 5."


def test_sparse_headings_fall_back_to_full_book() -> None:
    """Fewer than five chapter headings should yield one `Full Book` chapter."""

    chapters = HtmlBookParser().detect_chapters(_book_html(2))

    assert len(chapters) == 1
    assert chapters[0].title == "Full Book"
    assert chapters[0].ordinal == 0
    assert "Text of chapter 1." in chapters[0].content
    assert "Text of chapter 2." in chapters[0].content


def test_full_book_prefers_main_content() -> None:
    """The fallback should read `<main>` when present."""

    html = "<body><div>Outside</div><main><p>Inside text</p></main></body>"

    chapters = HtmlBookParser().detect_chapters(html)

    assert chapters[0].content == "Inside text"


def test_clean_html_text_strips_noise_and_collapses_whitespace() -> None:
    """Scripts, navigation, anchors, and comments should not reach the text."""

    html = (
        "<div><script>var x = 1;</script><nav>menu</nav>"
        '<p>Keep   this\n text</p><a href="#top">back to top</a>'
        "<!-- hidden --><div class=\"ad\">Buy now</div></div>"
    )

    assert clean_html_text(html) == "Keep this text"


def test_fetch_maps_transport_errors_to_input_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """Network failures while fetching should be reported as input errors."""

    def _failing_get(url: str, timeout: float) -> object:
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr("linkin_lark.io.html_parser.requests.get", _failing_get)

    with pytest.raises(InputError) as exc_info:
        HtmlBookParser().parse("https://example.com/book")

    assert exc_info.value.stage == "parse"
    assert "example.com" in exc_info.value.detail


def test_parse_returns_html_result(monkeypatch: pytest.MonkeyPatch) -> None:
    """A fetched page should produce an `html` parse result keyed by URL."""

    class _Response:
        text = _book_html(6)

        def raise_for_status(self) -> None:
            return None

    monkeypatch.setattr(
        "linkin_lark.io.html_parser.requests.get", lambda url, timeout: _Response()
    )

    result = HtmlBookParser(timeout_seconds=5).parse("https://example.com/book")

    assert result.kind == "html"
    assert result.source == "https://example.com/book"
    assert len(result.chapters) == 6
