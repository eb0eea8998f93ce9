"""Shared typed data models for linkin-lark.

This package contains dataclasses used across pipeline modules to avoid
cross-module coupling and circular imports.
"""

from .datatypes import (
    AudioResult,
    Chapter,
    ConversionSummary,
    FailedChapter,
    ParseResult,
    TextChunk,
)

__all__ = [
    "AudioResult",
    "Chapter",
    "ConversionSummary",
    "FailedChapter",
    "ParseResult",
    "TextChunk",
]
