"""Chapter audio file storage.

Responsibilities:
- Write one MP3 file per completed chapter under the output directory.
- Name files by zero-padded 1-based position so lexical and playback order agree.
"""

from __future__ import annotations

import os
from pathlib import Path

from .path_validator import validate_path_within_directory


def chapter_file_name(ordinal: int, total_chapters: int) -> str:
    """Return the MP3 file name for a 0-based chapter ordinal."""

    padding = len(str(max(1, total_chapters)))
    return f"{str(ordinal + 1).zfill(padding)}.mp3"


class AudioWriter:
    """Filesystem-backed writer for chapter MP3 tracks."""

    def __init__(self, root: Path) -> None:
        """Initialize the writer with an output directory."""

        self.root = root

    def ensure_output_dir(self) -> Path:
        """Create the output directory when missing and return it."""

        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def save_chapter(self, audio: bytes, ordinal: int, total_chapters: int) -> Path:
        """Atomically write chapter audio and return the final path."""

        path = self.root / chapter_file_name(ordinal, total_chapters)
        validate_path_within_directory(path, self.root)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.tmp")
        tmp_path.write_bytes(audio)
        os.replace(tmp_path, path)
        return path
