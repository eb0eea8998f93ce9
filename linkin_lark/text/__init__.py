"""Text segmentation components.

This package provides the chunker used to keep chapter text under the speech
endpoint's per-request character limit.
"""

from .chunking import DEFAULT_MAX_CHARS, TextChunker, split_text

__all__ = ["DEFAULT_MAX_CHARS", "TextChunker", "split_text"]
