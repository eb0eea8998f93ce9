"""Input and output path validation.

Responsibilities:
- Reject paths with NUL bytes or inside system directories.
- Confirm PDF inputs by extension and magic bytes.
"""

from __future__ import annotations

from pathlib import Path

from ..errors import ConfigurationError, InputError

_BLOCKED_OUTPUT_DIRS = ("/etc", "/usr", "/bin", "/sbin", "/root", "/var", "/sys", "/proc")
_BLOCKED_INPUT_DIRS = ("/etc", "/root", "/usr", "/bin", "/sbin", "/var/log", "/sys", "/proc")
_PDF_MAGIC = b"%PDF-"


def _is_within(path: Path, directory: str) -> bool:
    try:
        path.relative_to(directory)
    except ValueError:
        return False
    return True


def sanitize_output_path(output_dir: str | Path) -> Path:
    """Resolve an output directory and reject unsafe locations."""

    raw = str(output_dir)
    if "\0" in raw:
        raise ConfigurationError("Invalid output path: null byte detected.")
    resolved = Path(raw).expanduser().resolve()
    if any(_is_within(resolved, blocked) for blocked in _BLOCKED_OUTPUT_DIRS):
        raise ConfigurationError(
            f"Cannot write to system directory `{resolved}`.",
            hint="Choose an output directory under your home or working directory.",
        )
    return resolved


def sanitize_pdf_path(pdf_path: str | Path) -> Path:
    """Resolve a PDF input path and reject unsafe or non-PDF paths."""

    raw = str(pdf_path)
    if "\0" in raw:
        raise InputError("Invalid input path: null byte detected.")
    if not raw.lower().endswith(".pdf"):
        raise InputError(f"Only PDF files are allowed, got `{raw}`.")
    resolved = Path(raw).expanduser().resolve()
    if any(_is_within(resolved, blocked) for blocked in _BLOCKED_INPUT_DIRS):
        raise InputError(f"Cannot read files from system directory `{resolved}`.")
    return resolved


def is_pdf_bytes(data: bytes) -> bool:
    """Return whether a byte payload starts with the PDF magic header."""

    return data[: len(_PDF_MAGIC)] == _PDF_MAGIC


def validate_path_within_directory(file_path: Path, intended_dir: Path) -> None:
    """Raise when `file_path` resolves outside `intended_dir`."""

    if not _is_within(file_path.resolve(), str(intended_dir.resolve())):
        raise ConfigurationError(f"Path traversal detected for `{file_path}`.")
