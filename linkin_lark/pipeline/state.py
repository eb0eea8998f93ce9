"""Persisted run state for resumable conversions.

Responsibilities:
- Record which chapters of a run completed and which failed (with reasons).
- Persist that record atomically after every chapter outcome.
- Reject corrupt or stale state files instead of applying them to another document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import threading

from loguru import logger

from ..errors import ConfigurationError
from ..models.datatypes import FailedChapter
from ..telemetry.logger import RunLogger

STATE_FILE_NAME = ".linkin-lark-state.json"
STATE_VERSION = 1

_REQUIRED_KEYS = frozenset(
    {"version", "source", "total_chapters", "completed", "failed", "timestamp"}
)
_FAILED_ENTRY_KEYS = frozenset({"ordinal", "title", "error"})


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class StateFormatError(ValueError):
    """Raised when a persisted state payload has an unexpected shape."""


@dataclass(slots=True)
class RunState:
    """Progress record of one conversion job, keyed by output directory.

    Attributes:
        source: Input identity (URL or resolved PDF path).
        total_chapters: Chapter count the run was started with.
        completed: Ordinals whose audio file was written.
        failed: Failed chapters keyed by ordinal; disjoint from `completed`.
        timestamp: ISO-8601 UTC time of the last mutation.
    """

    source: str
    total_chapters: int
    completed: set[int] = field(default_factory=set)
    failed: dict[int, FailedChapter] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_timestamp)

    def mark_completed(self, ordinal: int) -> None:
        """Record a success, clearing any earlier failure for the ordinal."""

        self.failed.pop(ordinal, None)
        self.completed.add(ordinal)
        self.timestamp = _utc_timestamp()

    def mark_failed(self, ordinal: int, title: str, error: str) -> None:
        """Record a failure for an ordinal that has not completed."""

        self.completed.discard(ordinal)
        self.failed[ordinal] = FailedChapter(ordinal=ordinal, title=title, error=error)
        self.timestamp = _utc_timestamp()

    def matches(self, source: str, total_chapters: int) -> bool:
        """Return whether this state belongs to the given input identity."""

        return self.source == source and self.total_chapters == total_chapters

    def to_payload(self) -> dict[str, object]:
        """Serialize to the on-disk JSON shape."""

        return {
            "version": STATE_VERSION,
            "source": self.source,
            "total_chapters": self.total_chapters,
            "completed": sorted(self.completed),
            "failed": [self.failed[ordinal].as_payload() for ordinal in sorted(self.failed)],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: object) -> RunState:
        """Build a state from JSON, rejecting unknown or missing fields."""

        if not isinstance(payload, dict):
            raise StateFormatError("state root must be a JSON object")
        keys = set(payload)
        if keys != _REQUIRED_KEYS:
            missing = sorted(_REQUIRED_KEYS - keys)
            unknown = sorted(keys - _REQUIRED_KEYS)
            raise StateFormatError(f"state keys mismatch (missing={missing}, unknown={unknown})")
        if payload["version"] != STATE_VERSION:
            raise StateFormatError(f"unsupported state version {payload['version']!r}")

        source = payload["source"]
        total = payload["total_chapters"]
        completed = payload["completed"]
        failed = payload["failed"]
        timestamp = payload["timestamp"]
        if not isinstance(source, str) or not source:
            raise StateFormatError("`source` must be a non-empty string")
        if not _is_int(total) or total < 0:
            raise StateFormatError("`total_chapters` must be a non-negative integer")
        if not isinstance(timestamp, str):
            raise StateFormatError("`timestamp` must be a string")
        if not isinstance(completed, list) or not all(
            _is_int(item) and 0 <= item < total for item in completed
        ):
            raise StateFormatError("`completed` must list in-range chapter ordinals")
        if not isinstance(failed, list):
            raise StateFormatError("`failed` must be a list")

        failed_map: dict[int, FailedChapter] = {}
        for entry in failed:
            if not isinstance(entry, dict) or set(entry) != _FAILED_ENTRY_KEYS:
                raise StateFormatError("`failed` entries must have ordinal/title/error")
            ordinal = entry["ordinal"]
            if not _is_int(ordinal) or not 0 <= ordinal < total:
                raise StateFormatError("`failed` ordinal out of range")
            if not isinstance(entry["title"], str) or not isinstance(entry["error"], str):
                raise StateFormatError("`failed` title/error must be strings")
            failed_map[ordinal] = FailedChapter(
                ordinal=ordinal, title=entry["title"], error=entry["error"]
            )

        completed_set = set(completed)
        if completed_set & set(failed_map):
            raise StateFormatError("an ordinal cannot be both completed and failed")
        return cls(
            source=source,
            total_chapters=total,
            completed=completed_set,
            failed=failed_map,
            timestamp=timestamp,
        )


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class RunStateStore:
    """Filesystem-backed store for one output directory's run state."""

    def __init__(self, output_dir: Path, run_logger: RunLogger | None = None) -> None:
        """Initialize the store for `<output_dir>/.linkin-lark-state.json`."""

        self.output_dir = output_dir
        self.path = output_dir / STATE_FILE_NAME
        self._run_logger = run_logger
        self._save_lock = threading.Lock()

    def exists(self) -> bool:
        """Return whether a state file is present."""

        return self.path.exists()

    def load(
        self,
        source: str | None = None,
        total_chapters: int | None = None,
    ) -> RunState | None:
        """Load persisted state, failing open on corrupt or stale content.

        When `source`/`total_chapters` are given, a state belonging to another
        input is discarded with a warning and `None` is returned.
        """

        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            state = RunState.from_payload(payload)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, StateFormatError) as exc:
            self._warn("invalid_state_file", path=self.path, error=type(exc).__name__)
            return None

        if source is not None and total_chapters is not None:
            if not state.matches(source, total_chapters):
                self._warn(
                    "stale_state_discarded",
                    path=self.path,
                    state_source=state.source,
                    state_total=state.total_chapters,
                )
                return None
        return state

    def save(self, state: RunState) -> None:
        """Atomically overwrite the state file; concurrent saves are serialized."""

        with self._save_lock:
            payload = json.dumps(state.to_payload(), ensure_ascii=False, indent=2, sort_keys=True)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f"{self.path.name}.tmp")
            with open(tmp_path, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)

    def clear(self) -> None:
        """Remove persisted state so the next invocation starts fresh."""

        with self._save_lock:
            self.path.unlink(missing_ok=True)

    @staticmethod
    def should_skip(ordinal: int, state: RunState) -> bool:
        """Return whether a chapter was completed by an earlier run."""

        return ordinal in state.completed

    def initialize(
        self,
        source: str,
        total_chapters: int,
        *,
        resume: bool,
        force: bool,
    ) -> RunState:
        """Return the state for this run, creating and persisting it when absent.

        Raises:
            ConfigurationError: If `resume` and `force` are combined, or if a
                matching unfinished state exists and neither flag was given.
        """

        if resume and force:
            raise ConfigurationError(
                "`--resume` and `--force` cannot be used together.",
                hint="Use `--resume` to continue or `--force` to start over.",
            )
        if force:
            self.clear()
        else:
            existing = self.load(source=source, total_chapters=total_chapters)
            if existing is not None:
                if not resume:
                    raise ConfigurationError(
                        f"A previous unfinished run exists in `{self.output_dir}` "
                        f"({len(existing.completed)}/{existing.total_chapters} chapters done).",
                        hint="Rerun with `--resume` to continue or `--force` to start over.",
                    )
                return existing

        state = RunState(source=source, total_chapters=total_chapters)
        self.save(state)
        return state

    def _warn(self, reason: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_warning("state", reason, **context)
            return
        logger.warning("state warning reason={} context={}", reason, context)
