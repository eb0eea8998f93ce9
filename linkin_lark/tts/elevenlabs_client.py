"""ElevenLabs HTTP client for chapter speech synthesis.

Responsibilities:
- Send one text-to-speech request per text unit to the ElevenLabs REST API.
- Classify every failure once, at the HTTP boundary, into a typed `SynthesisError`.
- Retry rate-limited, server, and transport failures through `BackoffPolicy`,
  taking a fresh `ConcurrencyGate` permit for every attempt.
"""

from __future__ import annotations

import json
import re
import threading
import time
from typing import Any, Callable

import requests

from ..errors import ConfigurationError
from ..models.datatypes import AudioResult
from .backoff import BackoffPolicy, FailureKind, parse_retry_after
from .rate_limiter import ConcurrencyGate
from .voices import VoiceConfig

DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1"
DEFAULT_OUTPUT_FORMAT = "mp3_44100_128"


class SynthesisError(RuntimeError):
    """Raised when a speech request fails; `failure_kind` drives retry decisions."""

    failure_kind: FailureKind = FailureKind.CLIENT_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        """Initialize provider error metadata for chapter-level diagnostics."""

        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        """Return whether this failure kind may be retried at all."""

        return BackoffPolicy.is_retryable(self.failure_kind)


class UnauthorizedError(SynthesisError):
    """HTTP 401: the API key is invalid; fatal for the whole run."""

    failure_kind = FailureKind.UNAUTHORIZED


class RateLimitedError(SynthesisError):
    """HTTP 429, optionally carrying the server's retry hint in seconds."""

    failure_kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        status_code: int | None = 429,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, status_code=status_code, attempts=attempts)
        self.retry_after = retry_after


class ServerError(SynthesisError):
    """HTTP 5xx from the provider."""

    failure_kind = FailureKind.SERVER_ERROR


class ClientError(SynthesisError):
    """Any other non-2xx response; never retried."""

    failure_kind = FailureKind.CLIENT_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
        attempts: int = 1,
    ) -> None:
        super().__init__(message, status_code=status_code, attempts=attempts)
        self.body = body


class TransportError(SynthesisError):
    """Network or timeout failure before any response was received."""

    failure_kind = FailureKind.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, attempts=attempts)
        self.cause = cause


class ElevenLabsSpeechClient:
    """Minimal requests-based ElevenLabs text-to-speech client with bounded retries."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        api_key: str | None,
        gate: ConcurrencyGate | None = None,
        backoff: BackoffPolicy | None = None,
        base_url: str = DEFAULT_BASE_URL,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
        timeout_seconds: float = 60.0,
        sleeper: Callable[[float], None] | None = None,
        on_retry: Callable[[int, SynthesisError, float], None] | None = None,
    ) -> None:
        """Initialize client settings; the gate and backoff policy may be shared."""

        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.gate = gate if gate is not None else ConcurrencyGate()
        self.backoff = backoff if backoff is not None else BackoffPolicy()
        self.base_url = base_url.rstrip("/")
        self.output_format = output_format
        self.timeout_seconds = timeout_seconds
        self._sleeper = sleeper if sleeper is not None else time.sleep
        self._on_retry = on_retry
        self._retry_lock = threading.Lock()
        self.retry_attempt_count = 0

    def synthesize(self, text: str, voice: VoiceConfig) -> AudioResult:
        """Synthesize one text unit, retrying transient failures within budget.

        Raises:
            ConfigurationError: If no API key is configured.
            SynthesisError: Typed terminal failure after classification/retries.
        """

        self._require_api_key()
        attempt = 0
        while True:
            try:
                with self.gate.acquire():
                    audio = self._post_speech(text, voice)
                return AudioResult(audio=audio, characters=len(text))
            except SynthesisError as exc:
                exc.attempts = attempt + 1
                if not self.backoff.allows_retry(attempt, exc.failure_kind):
                    raise self._terminal_error(exc, attempt) from exc
                retry_after = exc.retry_after if isinstance(exc, RateLimitedError) else None
                delay = self.backoff.next_delay(attempt, exc.failure_kind, retry_after) or 0.0
                with self._retry_lock:
                    self.retry_attempt_count += 1
                if self._on_retry is not None:
                    self._on_retry(attempt + 1, exc, delay)
                self._sleeper(delay)
                attempt += 1

    def _require_api_key(self) -> None:
        """Require API key presence before issuing requests."""

        if not self.api_key:
            raise ConfigurationError(
                "ElevenLabs API key not found.",
                hint=(
                    "Set `ELEVENLABS_API_KEY`, pass `--api-key`, or store one with "
                    "`linkin-lark credentials --set-api-key`."
                ),
            )

    def _post_speech(self, text: str, voice: VoiceConfig) -> bytes:
        """Issue one HTTP call and return audio bytes or raise a classified error."""

        endpoint = f"{self.base_url}/text-to-speech/{voice.voice_id}"
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        payload: dict[str, Any] = {
            "text": text,
            "model_id": voice.model_id,
            "voice_settings": voice.voice_settings(),
        }
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                params={"output_format": self.output_format},
                json=payload,
                timeout=self.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise TransportError("ElevenLabs request timed out.", cause=exc) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"ElevenLabs request transport error: {self._short_message(str(exc))}",
                cause=exc,
            ) from exc

        status_code = int(response.status_code)
        if 200 <= status_code < 300:
            audio = bytes(response.content)
            if not audio:
                raise ClientError(
                    "ElevenLabs speech response is empty.",
                    status_code=status_code,
                )
            return audio
        raise self._classify_response(response)

    @classmethod
    def _classify_response(cls, response: requests.Response) -> SynthesisError:
        """Convert a non-2xx response into exactly one typed failure."""

        status_code = int(response.status_code)
        body = cls._decode_body(response)
        provider_message = cls._extract_provider_message(body)
        suffix = f": {provider_message}" if provider_message else "."

        if status_code == 401:
            return UnauthorizedError(
                f"ElevenLabs authentication failed (HTTP 401){suffix}",
                status_code=status_code,
            )
        if status_code == 429:
            retry_after_header = response.headers.get("Retry-After")
            retry_after = parse_retry_after(retry_after_header)
            hint = f" Retry after {retry_after_header}." if retry_after_header else ""
            return RateLimitedError(
                f"ElevenLabs rate limit exceeded (HTTP 429).{hint}",
                retry_after=retry_after,
                status_code=status_code,
            )
        if status_code >= 500:
            return ServerError(
                f"ElevenLabs server error (HTTP {status_code}){suffix}",
                status_code=status_code,
            )
        return ClientError(
            f"ElevenLabs request failed (HTTP {status_code}){suffix}",
            status_code=status_code,
            body=provider_message,
        )

    def _terminal_error(self, exc: SynthesisError, attempt: int) -> SynthesisError:
        """Return the error to surface once no further attempt will be made."""

        if not exc.retryable:
            return exc
        message = f"{exc} Gave up after {attempt + 1} attempt(s); retries exhausted."
        if isinstance(exc, RateLimitedError):
            terminal: SynthesisError = RateLimitedError(
                message,
                retry_after=exc.retry_after,
                status_code=exc.status_code,
                attempts=attempt + 1,
            )
        elif isinstance(exc, TransportError):
            terminal = TransportError(message, cause=exc.cause, attempts=attempt + 1)
        else:
            terminal = type(exc)(message, status_code=exc.status_code, attempts=attempt + 1)
        return terminal

    @staticmethod
    def _decode_body(response: requests.Response) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        try:
            return bytes(response.content).decode("utf-8", errors="replace").strip()
        except (TypeError, ValueError):
            return ""

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk_[A-Za-z0-9]{16,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)xi-api-key[\"':\s]+[A-Za-z0-9_-]{12,}",
            "xi-api-key [redacted-key]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> str:
        """Extract a concise provider-facing message from a JSON error body."""

        if not body:
            return ""
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body))

        message: str | None = None
        if isinstance(payload, dict):
            detail = payload.get("detail")
            if isinstance(detail, dict):
                value = detail.get("message")
                if isinstance(value, str) and value.strip():
                    message = value.strip()
            elif isinstance(detail, str) and detail.strip():
                message = detail.strip()
        if message is None:
            message = body
        return cls._short_message(cls._redact_sensitive_tokens(message))
