"""Input/output boundary components for linkin-lark.

This package contains document parsers, path validation, and chapter audio
storage used by the conversion pipeline.
"""

from .html_parser import HtmlBookParser
from .input_parser import is_url, parse_input
from .pdf_parser import PdfBookParser
from .storage import AudioWriter, chapter_file_name

__all__ = [
    "AudioWriter",
    "HtmlBookParser",
    "PdfBookParser",
    "chapter_file_name",
    "is_url",
    "parse_input",
]
