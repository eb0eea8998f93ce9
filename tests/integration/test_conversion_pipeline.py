"""End-to-end tests for `ConversionPipeline` with fake and HTTP-stubbed speech clients."""

from __future__ import annotations

import io
from pathlib import Path
import threading
import time

import pytest

from linkin_lark.config import LinkinLarkConfig
from linkin_lark.errors import ConfigurationError
from linkin_lark.models.datatypes import Chapter, ParseResult
from linkin_lark.pipeline import ConversionPipeline, RunState, RunStateStore
from linkin_lark.telemetry.logger import RunLogger
from linkin_lark.tts.backoff import BackoffPolicy
from linkin_lark.tts.elevenlabs_client import ElevenLabsSpeechClient, UnauthorizedError
from linkin_lark.tts.rate_limiter import ConcurrencyGate


def _config(output_dir: Path, **overrides: object) -> LinkinLarkConfig:
    config = LinkinLarkConfig(input_source="book.pdf", output_dir=output_dir)
    for name, value in overrides.items():
        setattr(config, name, value)
    return config


def test_converts_every_chapter_and_clears_state(
    tmp_path: Path, fake_speech_client, three_chapter_book: ParseResult
) -> None:
    """A clean run should write one file per chapter and leave no state file."""

    client = fake_speech_client()
    events: list[tuple[str, int | None]] = []
    pipeline = ConversionPipeline(
        _config(tmp_path / "out"),
        client=client,
        progress_callback=lambda event, chapter, detail: events.append(
            (event, None if chapter is None else chapter.ordinal)
        ),
    )

    summary = pipeline.run(three_chapter_book)

    out_dir = tmp_path / "out"
    assert summary.succeeded is True
    assert summary.converted == (0, 1, 2)
    assert summary.skipped == ()
    assert len(client.calls) == 4
    assert sorted(path.name for path in out_dir.iterdir()) == ["1.mp3", "2.mp3", "3.mp3"]
    assert (out_dir / "1.mp3").read_bytes() == b"[5000]"
    assert (out_dir / "2.mp3").read_bytes() == b"[11000][3999]"
    assert (out_dir / "3.mp3").read_bytes() == b"[3000]"
    assert summary.characters == 5000 + 11000 + 3999 + 3000
    assert summary.estimated_cost_usd == pytest.approx(summary.characters / 1_000_000 * 30)
    assert RunStateStore(out_dir).exists() is False

    assert events.count(("chunk", 1)) == 2
    assert sorted(ordinal for event, ordinal in events if event == "complete") == [0, 1, 2]
    assert ("warning", 1) in events


def test_dry_run_makes_no_requests(
    tmp_path: Path, fake_speech_client, three_chapter_book: ParseResult
) -> None:
    """Dry runs should report characters and cost without synthesis or output."""

    client = fake_speech_client()
    pipeline = ConversionPipeline(_config(tmp_path / "out", dry_run=True), client=client)

    summary = pipeline.run(three_chapter_book)

    assert summary.dry_run is True
    assert summary.characters == 23000
    assert summary.estimated_cost_usd == pytest.approx(0.69)
    assert client.calls == []
    assert not (tmp_path / "out").exists()


def test_dry_run_does_not_require_api_key(
    tmp_path: Path, three_chapter_book: ParseResult
) -> None:
    """A dry run with the real client should not need credentials."""

    pipeline = ConversionPipeline(_config(tmp_path / "out", dry_run=True))

    assert pipeline.run(three_chapter_book).dry_run is True


def test_missing_api_key_fails_before_any_output(
    tmp_path: Path, three_chapter_book: ParseResult
) -> None:
    """A real run without an API key should stop with a configuration error."""

    pipeline = ConversionPipeline(_config(tmp_path / "out"))

    with pytest.raises(ConfigurationError):
        pipeline.run(three_chapter_book)
    assert not (tmp_path / "out").exists()


def test_blank_chapter_fails_without_stopping_others(
    tmp_path: Path, fake_speech_client
) -> None:
    """A chapter with no text should be recorded as failed while others convert."""

    book = ParseResult(
        chapters=(
            Chapter(title="One", content="First chapter text.", ordinal=0),
            Chapter(title="Blank", content="   \n  ", ordinal=1),
            Chapter(title="Three", content="Third chapter text.", ordinal=2),
        ),
        source="book.pdf",
        kind="pdf",
    )
    client = fake_speech_client()
    pipeline = ConversionPipeline(_config(tmp_path / "out"), client=client)

    summary = pipeline.run(book)

    assert summary.succeeded is False
    assert summary.converted == (0, 2)
    assert [failure.ordinal for failure in summary.failed] == [1]
    assert len(client.calls) == 2
    state = RunStateStore(tmp_path / "out").load()
    assert state is not None
    assert state.completed == {0, 2}
    assert set(state.failed) == {1}


def test_unauthorized_halts_the_run(
    tmp_path: Path, fake_speech_client, three_chapter_book: ParseResult
) -> None:
    """An authentication failure should stop scheduling and propagate."""

    client = fake_speech_client(
        fail_marker="word",
        error_factory=lambda: UnauthorizedError("ElevenLabs authentication failed (HTTP 401)."),
    )
    sink = io.StringIO()
    pipeline = ConversionPipeline(
        _config(tmp_path / "out", max_concurrent=1),
        client=client,
        run_logger=RunLogger(sink=sink),
    )

    with pytest.raises(UnauthorizedError):
        pipeline.run(three_chapter_book)

    assert len(client.calls) == 1
    assert not (tmp_path / "out" / "1.mp3").exists()
    state = RunStateStore(tmp_path / "out").load()
    assert state is not None
    assert set(state.failed) == {0}
    assert "event=failure error_type=UnauthorizedError" in sink.getvalue()


def test_gate_bounds_in_flight_requests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """With the real client, concurrent chapters never exceed the in-flight cap."""

    state = {"in_flight": 0, "peak": 0}
    lock = threading.Lock()

    class _Response:
        status_code = 200
        content = b"ID3"
        headers: dict[str, str] = {}

    def _slow_post(url: str, **kwargs: object) -> _Response:
        with lock:
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
        time.sleep(0.02)
        with lock:
            state["in_flight"] -= 1
        return _Response()

    monkeypatch.setattr("linkin_lark.tts.elevenlabs_client.requests.post", _slow_post)
    book = ParseResult(
        chapters=tuple(
            Chapter(title=f"Chapter {index}", content=f"Text {index}.", ordinal=index)
            for index in range(6)
        ),
        source="book.pdf",
        kind="pdf",
    )
    details: list[str] = []
    pipeline = ConversionPipeline(
        _config(
            tmp_path / "out",
            api_key="test-key",
            max_concurrent=2,
            requests_per_interval=10,
            interval_seconds=0.01,
        ),
        progress_callback=lambda event, chapter, detail: details.append(f"{event}:{detail}"),
    )

    summary = pipeline.run(book)

    assert summary.succeeded is True
    assert summary.converted == (0, 1, 2, 3, 4, 5)
    assert 1 <= state["peak"] <= 2
    assert (tmp_path / "out" / "6.mp3").read_bytes() == b"ID3"
    starts = [detail for detail in details if detail.startswith("start:")]
    assert len(starts) == 6
    assert all("active " in detail and "queued " in detail for detail in starts)


class _RecordingStateStore(RunStateStore):
    """State store that keeps a copy of every saved chapter outcome."""

    def __init__(self, output_dir: Path) -> None:
        super().__init__(output_dir)
        self.snapshots: list[tuple[set[int], set[int]]] = []

    def save(self, state: RunState) -> None:
        self.snapshots.append((set(state.completed), set(state.failed)))
        super().save(state)


def test_rate_limited_chapter_completes_after_retries(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Two 429 responses should be waited out before the chapter is recorded as done."""

    rate_limited_left = {"Second": 2}
    lock = threading.Lock()

    class _Response:
        def __init__(self, status_code: int, headers: dict[str, str]) -> None:
            self.status_code = status_code
            self.content = b"ID3" if status_code == 200 else b""
            self.headers = headers

    def _post(url: str, **kwargs: object) -> _Response:
        first_word = kwargs["json"]["text"].split()[0]  # type: ignore[index]
        with lock:
            if rate_limited_left.get(first_word, 0) > 0:
                rate_limited_left[first_word] -= 1
                return _Response(429, {"Retry-After": "2"})
        return _Response(200, {})

    monkeypatch.setattr("linkin_lark.tts.elevenlabs_client.requests.post", _post)
    sleeps: list[float] = []
    client = ElevenLabsSpeechClient(
        api_key="test-key",
        gate=ConcurrencyGate(max_concurrent=1, requests_per_interval=100, interval_seconds=0.0),
        backoff=BackoffPolicy(max_retries=3),
        sleeper=sleeps.append,
    )
    book = ParseResult(
        chapters=(
            Chapter(title="One", content="First chapter text.", ordinal=0),
            Chapter(title="Two", content="Second chapter text.", ordinal=1),
            Chapter(title="Three", content="Third chapter text.", ordinal=2),
        ),
        source="book.pdf",
        kind="pdf",
    )
    store = _RecordingStateStore(tmp_path / "out")
    pipeline = ConversionPipeline(
        _config(tmp_path / "out", max_concurrent=1),
        client=client,
        state_store=store,
    )

    summary = pipeline.run(book)

    assert sleeps == [2.0, 2.0]
    assert client.retry_attempt_count == 2
    assert summary.succeeded is True
    assert summary.converted == (0, 1, 2)
    assert (tmp_path / "out" / "2.mp3").read_bytes() == b"ID3"
    completed, failed = store.snapshots[-1]
    assert completed == {0, 1, 2}
    assert failed == set()
    assert all(1 not in failed_ordinals for _, failed_ordinals in store.snapshots)


def test_unexpected_error_fails_only_its_chapter(
    tmp_path: Path, fake_speech_client, three_chapter_book: ParseResult
) -> None:
    """An unclassified exception should be recorded for its chapter, not end the run."""

    client = fake_speech_client(
        fail_marker="tale", error_factory=lambda: RuntimeError("decoder exploded")
    )
    pipeline = ConversionPipeline(_config(tmp_path / "out"), client=client)

    summary = pipeline.run(three_chapter_book)

    assert summary.succeeded is False
    assert summary.converted == (0, 1)
    assert [failure.ordinal for failure in summary.failed] == [2]
    assert summary.failed[0].error == "RuntimeError: decoder exploded"
    assert (tmp_path / "out" / "2.mp3").exists()
    state = RunStateStore(tmp_path / "out").load()
    assert state is not None
    assert state.completed == {0, 1}
    assert set(state.failed) == {2}
