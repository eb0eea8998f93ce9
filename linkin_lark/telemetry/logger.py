"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic phase- and chapter-level runtime logs via `loguru`.
- Keep provider secrets out of log lines by sanitizing context values.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic log lines for CLI-observable pipeline activity.

    Lines go to stderr by default so `--json` output on stdout stays parseable.
    """

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stderr
        _loguru_logger.remove()
        _loguru_logger.add(self._sink, format="{message}", level=level, colorize=False)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str, **context: object) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage, **context)

    def log_stage_complete(self, stage: str, **context: object) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage, **context)

    def log_stage_failure(self, stage: str, error_type: str) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type)

    def log_chapter(self, event: str, ordinal: int, title: str, **context: object) -> None:
        """Emit a chapter state transition (`start`, `skip`, `complete`, `failed`)."""

        level = "ERROR" if event == "failed" else "INFO"
        self._emit(level, event, "chapter", ordinal=ordinal, title=title, **context)

    def log_retry(self, attempt: int, failure_kind: str, delay_seconds: float) -> None:
        """Emit a retry/backoff decision for one speech request."""

        self._emit(
            "WARNING",
            "retry",
            "tts",
            attempt=attempt,
            failure_kind=failure_kind,
            delay_seconds=f"{delay_seconds:.2f}",
        )

    def log_warning(self, stage: str, reason: str, **context: object) -> None:
        """Emit a non-fatal warning such as stale state or card-format limits."""

        self._emit("WARNING", "warning", stage, reason=reason, **context)
