"""Admission control for speech provider calls.

Responsibilities:
- Bound how many speech requests are in flight at once.
- Bound how many requests start within any sliding time window.
- Admit waiting callers in submission order without busy waiting.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
import threading
from time import monotonic, sleep
from typing import Callable


@dataclass(slots=True)
class ConcurrencyGate:
    """Thread-safe gate enforcing a concurrency cap and a start-rate cap.

    A new call is admitted only when fewer than `max_concurrent` calls are in
    flight and fewer than `requests_per_interval` calls started during the last
    `interval_seconds`. With `requests_per_interval=1` this is a minimum spacing
    of `interval_seconds` between call starts.
    """

    max_concurrent: int = 3
    requests_per_interval: int = 1
    interval_seconds: float = 1.2
    clock: Callable[[], float] = monotonic
    sleeper: Callable[[float], None] = sleep
    _condition: threading.Condition = field(default_factory=threading.Condition, init=False)
    _in_flight: int = field(default=0, init=False)
    _recent_starts: deque[float] = field(default_factory=deque, init=False)
    _next_ticket: int = field(default=0, init=False)
    _serving_ticket: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("`max_concurrent` must be at least 1.")
        if self.requests_per_interval < 1:
            raise ValueError("`requests_per_interval` must be at least 1.")
        if self.interval_seconds < 0:
            raise ValueError("`interval_seconds` must not be negative.")

    @property
    def in_flight(self) -> int:
        """Return the number of currently admitted calls."""

        with self._condition:
            return self._in_flight

    @property
    def waiting(self) -> int:
        """Return the number of callers queued for admission."""

        with self._condition:
            return self._next_ticket - self._serving_ticket

    @contextmanager
    def acquire(self) -> Iterator[None]:
        """Block until admitted, then hold a permit for the body of the `with` block."""

        self._admit()
        try:
            yield
        finally:
            self._release()

    def _admit(self) -> None:
        with self._condition:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving_ticket or self._in_flight >= self.max_concurrent:
                self._condition.wait()

        # Head of the queue: only this caller may start next, so the rate wait
        # can happen outside the lock without another caller overtaking.
        while True:
            with self._condition:
                now = self.clock()
                wait_seconds = self._rate_wait_seconds(now)
                if wait_seconds <= 0.0:
                    self._recent_starts.append(now)
                    self._in_flight += 1
                    self._serving_ticket += 1
                    self._condition.notify_all()
                    return
            self.sleeper(wait_seconds)

    def _rate_wait_seconds(self, now: float) -> float:
        """Return how long the head caller must wait to respect the start-rate cap."""

        if self.interval_seconds <= 0.0:
            return 0.0
        while self._recent_starts and now - self._recent_starts[0] >= self.interval_seconds:
            self._recent_starts.popleft()
        if len(self._recent_starts) < self.requests_per_interval:
            return 0.0
        return self._recent_starts[0] + self.interval_seconds - now

    def _release(self) -> None:
        with self._condition:
            self._in_flight -= 1
            self._condition.notify_all()
