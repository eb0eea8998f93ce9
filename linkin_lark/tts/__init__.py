"""Text-to-speech components.

This package contains the backoff policy, the admission gate, the ElevenLabs
client, and the chapter synthesizer used by the conversion pipeline.
"""

from .backoff import BackoffPolicy, FailureKind, parse_retry_after
from .elevenlabs_client import (
    ClientError,
    ElevenLabsSpeechClient,
    RateLimitedError,
    ServerError,
    SynthesisError,
    TransportError,
    UnauthorizedError,
)
from .rate_limiter import ConcurrencyGate
from .synthesizer import ChapterSynthesizer, SpeechClient
from .voices import VoiceConfig

__all__ = [
    "BackoffPolicy",
    "ChapterSynthesizer",
    "ClientError",
    "ConcurrencyGate",
    "ElevenLabsSpeechClient",
    "FailureKind",
    "RateLimitedError",
    "ServerError",
    "SpeechClient",
    "SynthesisError",
    "TransportError",
    "UnauthorizedError",
    "VoiceConfig",
    "parse_retry_after",
]
