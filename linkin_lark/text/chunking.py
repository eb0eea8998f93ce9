"""Chapter-to-chunk segmentation logic.

Responsibilities:
- Split oversized chapter text into ordered, API-size-safe chunks.
- Cut at paragraph or sentence boundaries near the ceiling when one is close enough.
- Keep internal whitespace intact so no words are lost at chunk seams.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from ..errors import ChunkValidationError
from ..models.datatypes import Chapter, TextChunk

DEFAULT_MAX_CHARS = 11000
DEFAULT_LOOKAHEAD_CHARS = 500

_PARAGRAPH_TOLERANCE_CHARS = 500
_SENTENCE_TOLERANCE_CHARS = 200
_SENTENCE_END_RE = re.compile(r"\.\s")


def _validate_ceiling(max_chars: int) -> None:
    if isinstance(max_chars, bool) or not isinstance(max_chars, int) or max_chars <= 0:
        raise ChunkValidationError(
            f"Chunk size ceiling must be a positive integer, got {max_chars!r}."
        )


def _effective_lookahead(max_chars: int, lookahead_chars: int) -> int:
    """Clamp the boundary search window so small ceilings stay proportionate."""

    return max(1, min(lookahead_chars, max_chars // 2))


def _resolve_end(text: str, start: int, max_chars: int, lookahead: int) -> int:
    """Return the exclusive end offset for the chunk beginning at `start`."""

    end = start + max_chars
    if end >= len(text):
        return end

    window = text[start : min(end + lookahead, len(text))]
    paragraph_tolerance = min(_PARAGRAPH_TOLERANCE_CHARS, max_chars // 2)
    sentence_tolerance = min(_SENTENCE_TOLERANCE_CHARS, max_chars // 5)

    paragraph_end = window.rfind("\n\n")
    if paragraph_end > 0 and paragraph_end > max_chars - paragraph_tolerance:
        return start + paragraph_end

    sentence_end = -1
    for match in _SENTENCE_END_RE.finditer(window):
        sentence_end = match.start() + 1
    if sentence_end > max_chars - sentence_tolerance:
        # Keep the whitespace after the period with the earlier chunk.
        return start + sentence_end + 1

    return end


def split_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    lookahead_chars: int = DEFAULT_LOOKAHEAD_CHARS,
) -> list[str]:
    """Split text into ordered pieces no longer than `max_chars + lookahead`.

    Args:
        text: Chapter text.
        max_chars: Target ceiling per piece; must be positive.
        lookahead_chars: How far past the ceiling to look for a natural boundary.

    Returns:
        `[text]` unchanged when it fits, else ordered non-blank pieces whose
        concatenation equals `text` minus outer whitespace. A whitespace run
        longer than the ceiling shrinks to the single character that still
        separates the words around it.

    Raises:
        ChunkValidationError: If `max_chars` is not a positive integer.
    """

    _validate_ceiling(max_chars)
    if len(text) <= max_chars:
        return [text]

    lookahead = _effective_lookahead(max_chars, lookahead_chars)
    content_end = len(text.rstrip())
    pieces: list[str] = []
    start = len(text) - len(text.lstrip())
    while start < content_end:
        end = _resolve_end(text, start, max_chars, lookahead)
        if end <= start:
            end = start + max_chars
        end = min(end, content_end)

        piece = text[start:end]
        if piece.strip():
            pieces.append(piece)
        elif not pieces[-1][-1].isspace():
            # A blank run keeps one character as the word separator.
            pieces[-1] += piece[0]
        start = end
    return pieces


@dataclass(frozen=True, slots=True)
class TextChunker:
    """Produce `TextChunk` records for a chapter with a fixed ceiling."""

    max_chars: int = DEFAULT_MAX_CHARS
    lookahead_chars: int = DEFAULT_LOOKAHEAD_CHARS

    def to_chunks(self, chapter: Chapter) -> list[TextChunk]:
        """Split one chapter into sequence-ordered chunks."""

        pieces = split_text(chapter.content, self.max_chars, self.lookahead_chars)
        return [
            TextChunk(parent_ordinal=chapter.ordinal, sequence=index, text=piece)
            for index, piece in enumerate(pieces)
        ]
