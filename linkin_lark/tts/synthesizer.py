"""Chapter-level synthesis built on the chunker and speech client.

Responsibilities:
- Define the protocol for text-unit speech clients.
- Synthesize a chapter chunk by chunk, strictly in source order.
- Recombine chunk audio into one chapter result.
"""

from __future__ import annotations

from typing import Callable, Protocol

from ..models.datatypes import AudioResult, Chapter, TextChunk
from ..text.chunking import TextChunker
from .voices import VoiceConfig


class SpeechClient(Protocol):
    """Protocol for provider clients that synthesize one text unit."""

    def synthesize(self, text: str, voice: VoiceConfig) -> AudioResult:
        """Synthesize one text unit into audio."""


class ChapterSynthesizer:
    """Convert a whole chapter into one `AudioResult` (all-or-nothing)."""

    def __init__(
        self,
        client: SpeechClient,
        voice: VoiceConfig,
        chunker: TextChunker | None = None,
        on_chunk: Callable[[TextChunk, int], None] | None = None,
    ) -> None:
        """Initialize chapter synthesis with a client, voice, and chunk ceiling."""

        self.client = client
        self.voice = voice
        self.chunker = chunker if chunker is not None else TextChunker()
        self._on_chunk = on_chunk

    def synthesize_chapter(self, chapter: Chapter) -> AudioResult:
        """Synthesize every chunk of a chapter sequentially and concatenate.

        Any chunk failure propagates unchanged; no partial chapter audio is
        returned.
        """

        chunks = self.chunker.to_chunks(chapter)
        if len(chunks) == 1:
            return self.client.synthesize(chunks[0].text, self.voice)

        parts: list[AudioResult] = []
        for chunk in chunks:
            if self._on_chunk is not None:
                self._on_chunk(chunk, len(chunks))
            parts.append(self.client.synthesize(chunk.text, self.voice))
        return AudioResult.concatenate(parts)
