"""Yoto card-format checks.

Responsibilities:
- Estimate chapter durations and total card size from character counts.
- Report Yoto track, duration, and size limits as warning strings.

Limits never stop a run; the caller logs the returned warnings.
"""

from __future__ import annotations

from typing import Sequence

from ..models.datatypes import Chapter

_BYTES_PER_MB = 1024 * 1024


class YotoValidator:
    """Estimate-based checks against Yoto MYO card limits."""

    MAX_FILE_SIZE_MB = 100
    MAX_DURATION_MINUTES = 60
    MAX_CARD_SIZE_MB = 500
    MAX_TRACKS = 100
    CHARS_PER_MINUTE = 150
    MB_PER_MINUTE = 1.5

    def estimate_duration_minutes(self, text: str) -> float:
        """Return the estimated narration length of `text` in minutes."""

        return len(text) / self.CHARS_PER_MINUTE

    def estimate_total_size_mb(self, chapters: Sequence[Chapter]) -> float:
        """Return the estimated MP3 size of all chapters in megabytes."""

        total_chars = sum(len(chapter.content) for chapter in chapters)
        return (total_chars / self.CHARS_PER_MINUTE) * self.MB_PER_MINUTE

    def check_card_capacity(self, chapters: Sequence[Chapter]) -> list[str]:
        """Return warnings for track count and estimated card size."""

        warnings: list[str] = []
        if len(chapters) > self.MAX_TRACKS:
            warnings.append(
                f"Chapter count {len(chapters)} exceeds Yoto limit of {self.MAX_TRACKS} tracks"
            )
        estimated_mb = self.estimate_total_size_mb(chapters)
        if estimated_mb > self.MAX_CARD_SIZE_MB:
            warnings.append(
                f"Estimated total size {estimated_mb:.0f}MB may exceed Yoto card limit "
                f"of {self.MAX_CARD_SIZE_MB}MB"
            )
        return warnings

    def check_chapter_duration(self, chapter: Chapter) -> str | None:
        """Return a warning when a chapter's estimated duration exceeds the limit."""

        minutes = self.estimate_duration_minutes(chapter.content)
        if minutes <= self.MAX_DURATION_MINUTES:
            return None
        return (
            f'Chapter "{chapter.title}" estimated duration {minutes:.0f}min exceeds '
            f"Yoto limit of {self.MAX_DURATION_MINUTES}min"
        )

    def check_file_size(self, audio: bytes) -> str | None:
        """Return a warning when one track's audio exceeds the per-file limit."""

        size_mb = len(audio) / _BYTES_PER_MB
        if size_mb <= self.MAX_FILE_SIZE_MB:
            return None
        return f"File size {size_mb:.2f}MB exceeds Yoto limit of {self.MAX_FILE_SIZE_MB}MB"
