"""Shared fixtures for end-to-end conversion tests."""

from __future__ import annotations

from collections.abc import Callable
import threading

import pytest

from linkin_lark.models.datatypes import AudioResult, Chapter, ParseResult
from linkin_lark.tts.elevenlabs_client import ServerError
from linkin_lark.tts.voices import VoiceConfig


class FakeSpeechClient:
    """Thread-safe speech client double returning `[<length>]` audio per request."""

    def __init__(
        self,
        fail_marker: str | None = None,
        error_factory: Callable[[], Exception] | None = None,
    ) -> None:
        """Initialize with an optional text marker that triggers a failure."""

        self.fail_marker = fail_marker
        self.error_factory = error_factory or (
            lambda: ServerError("ElevenLabs server error (HTTP 503).", status_code=503)
        )
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def synthesize(self, text: str, voice: VoiceConfig) -> AudioResult:
        """Record the request and return deterministic fake audio."""

        with self._lock:
            self.calls.append(text)
        if self.fail_marker is not None and self.fail_marker in text:
            raise self.error_factory()
        return AudioResult(audio=f"[{len(text)}]".encode("ascii"), characters=len(text))


@pytest.fixture
def fake_speech_client() -> Callable[..., FakeSpeechClient]:
    """Return a factory for fresh fake speech clients."""

    return FakeSpeechClient


@pytest.fixture
def three_chapter_book() -> ParseResult:
    """A book of 5000, 15000, and 3000 characters."""

    return ParseResult(
        chapters=(
            Chapter(title="Opening", content="word " * 1000, ordinal=0),
            Chapter(title="Middle", content="word " * 3000, ordinal=1),
            Chapter(title="Ending", content="tale " * 600, ordinal=2),
        ),
        source="book.pdf",
        kind="pdf",
    )
