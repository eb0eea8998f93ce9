"""Core datatypes shared across linkin-lark modules.

Responsibilities:
- Represent immutable records exchanged between parser, chunker, client, and pipeline.
- Provide explicit typing for run summaries and structured CLI output.

Key types:
- `Chapter`, `TextChunk`, `AudioResult`, `ParseResult`, `FailedChapter`,
  and `ConversionSummary`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Chapter:
    """One logical unit of source text destined for one audio track.

    Attributes:
        title: Chapter title or inferred label.
        content: Full chapter text.
        ordinal: 0-based position in the parsed chapter sequence.
    """

    title: str
    content: str
    ordinal: int


@dataclass(frozen=True, slots=True)
class TextChunk:
    """An API-size-safe piece of an oversized chapter.

    Attributes:
        parent_ordinal: Ordinal of the chapter this chunk belongs to.
        sequence: 0-based position within the chapter.
        text: Chunk text sent to the speech endpoint.
    """

    parent_ordinal: int
    sequence: int
    text: str


@dataclass(frozen=True, slots=True)
class AudioResult:
    """Encoded MP3 audio plus the character count billed for it."""

    audio: bytes
    characters: int

    @classmethod
    def concatenate(cls, parts: list[AudioResult]) -> AudioResult:
        """Join chunk results in order into one chapter result.

        Plain byte concatenation is only valid for self-delimiting frame codecs
        such as MP3; the client always requests an MP3 output format.
        """

        return cls(
            audio=b"".join(part.audio for part in parts),
            characters=sum(part.characters for part in parts),
        )


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Parsed document: ordered chapters plus source identity."""

    chapters: tuple[Chapter, ...]
    source: str
    kind: str


@dataclass(frozen=True, slots=True)
class FailedChapter:
    """A chapter that could not be converted, with the reason."""

    ordinal: int
    title: str
    error: str

    def as_payload(self) -> dict[str, object]:
        """Return a JSON-ready mapping for state files and structured output."""

        return {"ordinal": self.ordinal, "title": self.title, "error": self.error}


@dataclass(frozen=True, slots=True)
class ConversionSummary:
    """End-of-run report for one conversion invocation.

    Attributes:
        source: Input identity (URL or PDF path).
        output_dir: Directory receiving chapter MP3 files.
        total_chapters: Number of chapters in the parsed document.
        converted: Ordinals converted in this invocation.
        skipped: Ordinals skipped because a previous run completed them.
        failed: Chapters that failed, in ordinal order.
        characters: Characters billed during this invocation.
        estimated_cost_usd: Estimated provider cost for `characters`.
        files: Written MP3 paths keyed by ordinal.
        dry_run: Whether the run skipped synthesis entirely.
    """

    source: str
    output_dir: Path
    total_chapters: int
    converted: tuple[int, ...] = ()
    skipped: tuple[int, ...] = ()
    failed: tuple[FailedChapter, ...] = ()
    characters: int = 0
    estimated_cost_usd: float = 0.0
    files: dict[int, Path] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        """Return whether every chapter is now complete."""

        return not self.failed

    def as_payload(self) -> dict[str, object]:
        """Return a deterministic JSON-ready mapping for `--json` output."""

        return {
            "source": self.source,
            "output_dir": str(self.output_dir),
            "total_chapters": self.total_chapters,
            "converted": list(self.converted),
            "skipped": list(self.skipped),
            "failed": [item.as_payload() for item in self.failed],
            "characters": self.characters,
            "estimated_cost_usd": round(self.estimated_cost_usd, 6),
            "files": {str(ordinal): str(path) for ordinal, path in sorted(self.files.items())},
            "dry_run": self.dry_run,
            "status": "complete" if self.succeeded else "partial",
        }
