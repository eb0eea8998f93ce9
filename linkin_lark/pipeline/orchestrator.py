"""Conversion orchestration for linkin-lark.

Responsibilities:
- Drive every chapter through `Pending -> (Skip | Running) -> (Completed | Failed)`.
- Run chapters concurrently on a bounded worker pool while the shared gate
  enforces provider limits for every request.
- Persist each chapter outcome to the run state so interrupted runs resume.
- Halt the whole run on authentication or configuration failures; any other
  error fails only the chapter that raised it.

Key types:
- `ConversionPipeline`: orchestration facade returning a `ConversionSummary`.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
import threading

from ..config import LinkinLarkConfig
from ..errors import ChunkValidationError, ConfigurationError
from ..io.path_validator import sanitize_output_path
from ..io.storage import AudioWriter
from ..models.datatypes import Chapter, ConversionSummary, FailedChapter, ParseResult, TextChunk
from ..telemetry.cost_tracker import CostTracker, estimate_cost_usd
from ..telemetry.logger import RunLogger
from ..text.chunking import TextChunker
from ..tts.backoff import BackoffPolicy
from ..tts.elevenlabs_client import ElevenLabsSpeechClient, SynthesisError, UnauthorizedError
from ..tts.rate_limiter import ConcurrencyGate
from ..tts.synthesizer import ChapterSynthesizer, SpeechClient
from ..tts.voices import VoiceConfig
from ..validators.yoto import YotoValidator
from .state import RunState, RunStateStore

ProgressCallback = Callable[[str, "Chapter | None", str], None]

_FATAL_ERRORS = (UnauthorizedError, ConfigurationError)


@dataclass(frozen=True, slots=True)
class _ChapterOutcome:
    """Result of one chapter task; both fields are `None` when the run halted first."""

    ordinal: int
    path: Path | None = None
    failure: FailedChapter | None = None


class ConversionPipeline:
    """Convert parsed chapters into MP3 tracks with resumable run state."""

    def __init__(
        self,
        config: LinkinLarkConfig,
        *,
        client: SpeechClient | None = None,
        state_store: RunStateStore | None = None,
        writer: AudioWriter | None = None,
        run_logger: RunLogger | None = None,
        progress_callback: ProgressCallback | None = None,
        validator: YotoValidator | None = None,
    ) -> None:
        """Initialize collaborators; anything not injected is built from `config`."""

        config.validate()
        self.config = config
        self._run_logger = run_logger
        self._progress_callback = progress_callback
        self._validator = validator if validator is not None else YotoValidator()

        runtime = config.resolved_runtime()
        self.voice = VoiceConfig(voice_id=runtime.voice_id, model_id=config.model_id)
        self.chunker = TextChunker(max_chars=config.chunk_size_chars)
        self._api_key_required = client is None
        self._api_key = runtime.api_key
        self._gate: ConcurrencyGate | None = None
        if client is None:
            gate = self._gate = ConcurrencyGate(
                max_concurrent=config.max_concurrent,
                requests_per_interval=config.requests_per_interval,
                interval_seconds=config.interval_seconds,
            )
            client = ElevenLabsSpeechClient(
                api_key=runtime.api_key,
                gate=gate,
                backoff=BackoffPolicy(max_retries=config.max_retries),
                timeout_seconds=config.request_timeout_seconds,
                on_retry=self._on_retry,
            )
        self.client = client

        output_dir = sanitize_output_path(config.output_dir)
        self.writer = writer if writer is not None else AudioWriter(output_dir)
        self.state_store = (
            state_store if state_store is not None else RunStateStore(output_dir, run_logger)
        )
        self._state_lock = threading.Lock()

    def run(self, parse_result: ParseResult) -> ConversionSummary:
        """Convert every pending chapter and return the end-of-run summary.

        Raises:
            ConfigurationError: For a missing API key or conflicting resume flags.
            UnauthorizedError: When the provider rejects the credentials.
        """

        chapters = list(parse_result.chapters)
        total = len(chapters)
        self._log_stage_start("convert", source=parse_result.source, chapters=total)
        self._report_format_warnings(chapters)

        if self.config.dry_run:
            summary = self._dry_run_summary(parse_result)
            self._log_stage_complete("convert", dry_run=True, characters=summary.characters)
            return summary

        if self._api_key_required and not self._api_key:
            raise ConfigurationError(
                "ElevenLabs API key not found.",
                hint=(
                    "Set `ELEVENLABS_API_KEY`, pass `--api-key`, or store one with "
                    "`linkin-lark credentials --set-api-key`."
                ),
            )

        self.writer.ensure_output_dir()
        state = self.state_store.initialize(
            parse_result.source,
            total,
            resume=self.config.resume,
            force=self.config.force,
        )

        skipped: list[int] = []
        pending: list[Chapter] = []
        for chapter in chapters:
            if RunStateStore.should_skip(chapter.ordinal, state):
                skipped.append(chapter.ordinal)
                self._report("skip", chapter, "already converted")
                if self._run_logger is not None:
                    self._run_logger.log_chapter("skip", chapter.ordinal, chapter.title)
            else:
                pending.append(chapter)

        tracker = CostTracker()
        stop_event = threading.Event()
        converted: list[int] = []
        files: dict[int, Path] = {}
        fatal: Exception | None = None

        with ThreadPoolExecutor(max_workers=self.config.max_concurrent) as executor:
            futures = {
                executor.submit(
                    self._convert_chapter, chapter, total, state, stop_event, tracker
                ): chapter
                for chapter in pending
            }
            for future in as_completed(futures):
                try:
                    outcome = future.result()
                except Exception as exc:
                    stop_event.set()
                    if fatal is None:
                        fatal = exc
                    continue
                if outcome.path is not None:
                    converted.append(outcome.ordinal)
                    files[outcome.ordinal] = outcome.path

        if fatal is not None:
            self._log_stage_failure("convert", type(fatal).__name__)
            raise fatal

        with self._state_lock:
            failed = tuple(state.failed[ordinal] for ordinal in sorted(state.failed))
        if not failed:
            self.state_store.clear()

        summary = ConversionSummary(
            source=parse_result.source,
            output_dir=self.writer.root,
            total_chapters=total,
            converted=tuple(sorted(converted)),
            skipped=tuple(skipped),
            failed=failed,
            characters=tracker.characters,
            estimated_cost_usd=tracker.cost_usd,
            files=files,
        )
        self._log_stage_complete(
            "convert",
            converted=len(summary.converted),
            skipped=len(summary.skipped),
            failed=len(summary.failed),
            characters=summary.characters,
        )
        return summary

    def _convert_chapter(
        self,
        chapter: Chapter,
        total: int,
        state: RunState,
        stop_event: threading.Event,
        tracker: CostTracker,
    ) -> _ChapterOutcome:
        """Synthesize and write one chapter, recording the outcome in run state."""

        if stop_event.is_set():
            return _ChapterOutcome(ordinal=chapter.ordinal)

        self._report("start", chapter, f"{len(chapter.content)} characters{self._gate_status()}")
        if self._run_logger is not None:
            self._run_logger.log_chapter(
                "start", chapter.ordinal, chapter.title, characters=len(chapter.content)
            )

        synthesizer = ChapterSynthesizer(
            self.client,
            self.voice,
            chunker=self.chunker,
            on_chunk=lambda chunk, count: self._on_chunk(chapter, chunk, count),
        )
        try:
            if not chapter.content.strip():
                raise ChunkValidationError("Chapter has no text content.")
            result = synthesizer.synthesize_chapter(chapter)
            path = self.writer.save_chapter(result.audio, chapter.ordinal, total)
        except _FATAL_ERRORS as exc:
            stop_event.set()
            self._record_failure(chapter, state, exc)
            raise
        except (SynthesisError, ChunkValidationError, OSError) as exc:
            failure = self._record_failure(chapter, state, exc)
            return _ChapterOutcome(ordinal=chapter.ordinal, failure=failure)
        except Exception as exc:
            # Unclassified errors fail this chapter only; the message keeps the type.
            failure = self._record_failure(
                chapter, state, exc, error=f"{type(exc).__name__}: {exc}"
            )
            return _ChapterOutcome(ordinal=chapter.ordinal, failure=failure)

        tracker.add_characters(result.characters)
        with self._state_lock:
            state.mark_completed(chapter.ordinal)
            self.state_store.save(state)

        size_warning = self._validator.check_file_size(result.audio)
        if size_warning is not None:
            self._warn(size_warning, chapter)
        self._report("complete", chapter, str(path))
        if self._run_logger is not None:
            self._run_logger.log_chapter(
                "complete",
                chapter.ordinal,
                chapter.title,
                file=path.name,
                characters=result.characters,
            )
        return _ChapterOutcome(ordinal=chapter.ordinal, path=path)

    def _record_failure(
        self, chapter: Chapter, state: RunState, exc: Exception, error: str | None = None
    ) -> FailedChapter:
        """Persist a chapter failure and report it."""

        error = error or str(exc) or type(exc).__name__
        with self._state_lock:
            state.mark_failed(chapter.ordinal, chapter.title, error)
            self.state_store.save(state)
            failure = state.failed[chapter.ordinal]
        self._report("failed", chapter, error)
        if self._run_logger is not None:
            self._run_logger.log_chapter(
                "failed", chapter.ordinal, chapter.title, error_type=type(exc).__name__
            )
        return failure

    def _dry_run_summary(self, parse_result: ParseResult) -> ConversionSummary:
        """Report chapters and estimated cost without any network call."""

        characters = sum(len(chapter.content) for chapter in parse_result.chapters)
        return ConversionSummary(
            source=parse_result.source,
            output_dir=self.writer.root,
            total_chapters=len(parse_result.chapters),
            characters=characters,
            estimated_cost_usd=estimate_cost_usd(characters),
            dry_run=True,
        )

    def _report_format_warnings(self, chapters: list[Chapter]) -> None:
        for message in self._validator.check_card_capacity(chapters):
            self._warn(message, None)
        for chapter in chapters:
            message = self._validator.check_chapter_duration(chapter)
            if message is not None:
                self._warn(message, chapter)

    def _warn(self, message: str, chapter: Chapter | None) -> None:
        self._report("warning", chapter, message)
        if self._run_logger is not None:
            context: dict[str, object] = {}
            if chapter is not None:
                context["ordinal"] = chapter.ordinal
            self._run_logger.log_warning("validate", "yoto_limit", **context)

    def _on_chunk(self, chapter: Chapter, chunk: TextChunk, count: int) -> None:
        self._report("chunk", chapter, f"chunk {chunk.sequence + 1}/{count}{self._gate_status()}")

    def _on_retry(self, attempt: int, exc: SynthesisError, delay: float) -> None:
        """Report a retry decision from the speech client."""

        if self._run_logger is not None:
            self._run_logger.log_retry(attempt, exc.failure_kind.value, delay)
        self._report(
            "retry", None, f"attempt {attempt} after {exc.failure_kind.value}; waiting {delay:.1f}s"
        )

    def _gate_status(self) -> str:
        """Describe request queue occupancy when this pipeline owns the gate."""

        if self._gate is None:
            return ""
        return f" (active {self._gate.in_flight}, queued {self._gate.waiting})"

    def _report(self, event: str, chapter: Chapter | None, detail: str) -> None:
        if self._progress_callback is not None:
            self._progress_callback(event, chapter, detail)

    def _log_stage_start(self, stage: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_start(stage, **context)

    def _log_stage_complete(self, stage: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_complete(stage, **context)

    def _log_stage_failure(self, stage: str, error_type: str) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_failure(stage, error_type)
