"""Retry classification and backoff policy for speech requests.

Responsibilities:
- Define the typed failure classification produced at the HTTP boundary.
- Map (attempt, classification, retry hint) to a wait duration.
- Bound retries per logical unit of work with a fixed retry budget.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum

from ..parsing import normalize_optional_string


class FailureKind(str, Enum):
    """Outcome classification for one failed speech request."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    TRANSPORT_ERROR = "transport_error"


_RETRYABLE_KINDS = frozenset(
    {FailureKind.RATE_LIMITED, FailureKind.SERVER_ERROR, FailureKind.TRANSPORT_ERROR}
)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a `Retry-After` header value into seconds.

    Accepts delta-seconds (`"2"`) or an HTTP-date. Results are clamped to at
    least one second; unparseable or missing values return `None`.
    """

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    if normalized.isdigit():
        return max(1.0, float(int(normalized)))

    try:
        retry_at = parsedate_to_datetime(normalized)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    reference = now if now is not None else datetime.now(timezone.utc)
    return max(1.0, (retry_at - reference).total_seconds())


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Pure mapping from retry attempt and failure kind to wait seconds.

    Attributes:
        max_retries: Retries allowed after the first attempt.
        base_delay_seconds: Base for exponential server/transport backoff.
        max_delay_seconds: Ceiling for exponential backoff.
        default_rate_limit_delay_seconds: Wait used for 429 without a usable hint.
    """

    max_retries: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 30.0
    default_rate_limit_delay_seconds: float = 5.0

    @staticmethod
    def is_retryable(kind: FailureKind) -> bool:
        """Return whether a failure kind may ever be retried."""

        return kind in _RETRYABLE_KINDS

    def next_delay(
        self,
        attempt: int,
        kind: FailureKind,
        retry_after: float | None = None,
    ) -> float | None:
        """Return seconds to wait before retrying, or `None` when not retryable.

        Args:
            attempt: 0-based index of the attempt that just failed.
            kind: Classification of that failure.
            retry_after: Server hint in seconds for rate-limited responses.
        """

        if kind == FailureKind.RATE_LIMITED:
            if retry_after is not None:
                return max(1.0, retry_after)
            return self.default_rate_limit_delay_seconds
        if kind in (FailureKind.SERVER_ERROR, FailureKind.TRANSPORT_ERROR):
            return min(self.base_delay_seconds * (2 ** max(0, attempt)), self.max_delay_seconds)
        return None

    def allows_retry(self, attempt: int, kind: FailureKind) -> bool:
        """Return whether another attempt fits the retry budget for this failure."""

        return self.is_retryable(kind) and attempt < self.max_retries
